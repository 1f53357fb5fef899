# utils/alerts.py
import logging
import smtplib
from email.message import EmailMessage
from typing import List

from config import settings

logger = logging.getLogger(__name__)


def _smtp_configured() -> bool:
    return bool(settings.SMTP_HOST and settings.SMTP_USER and settings.SMTP_PASS)


def _build_message(product: dict) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = f"Low stock alert - {product['name']}"
    msg["From"] = settings.SMTP_FROM or settings.SMTP_USER
    msg["To"] = settings.SMTP_USER
    msg.set_content(
        f"Product {product['name']} ({product['code']}) is running low.\n\n"
        f"Current stock: {product['quantity']}\n"
        f"Minimum stock: {product['min_stock']}\n"
        f"Location: {product.get('location') or '-'}\n"
    )
    return msg


def notify_low_stock(products: List[dict]) -> None:
    """
    Best-effort alert for products at or below their minimum stock.

    Runs outside any stock transaction (as a background task); delivery
    problems are logged and never reach the caller.
    """
    for product in products:
        logger.warning(
            "Low stock: %s (%s) quantity=%s min_stock=%s",
            product["name"], product["code"], product["quantity"], product["min_stock"],
        )

    if not products or not _smtp_configured():
        return

    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
            smtp.starttls()
            smtp.login(settings.SMTP_USER, settings.SMTP_PASS)
            for product in products:
                smtp.send_message(_build_message(product))
    except (smtplib.SMTPException, OSError):
        logger.exception("Could not send low stock alert e-mail")
