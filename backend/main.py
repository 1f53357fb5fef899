# backend/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

load_dotenv()

from config import settings
from database import init_db

# Routers
from routes.auth import router as auth_router
from routes.users import router as users_router
from routes.logs import router as logs_router
from routes.products import router as products_router
from routes.movements import router as movements_router
from routes.brands import router as brands_router
from routes.product_models import router as models_router
from routes.suppliers import router as suppliers_router
from routes.locations import router as locations_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def create_app(create_tables: bool = True) -> FastAPI:
    if create_tables:
        init_db()

    app = FastAPI(title="Inventory API", version="1.0.0")

    # CORS: local Vite dev server plus the configured frontend
    origins = {"http://localhost:5173", "http://127.0.0.1:5173", settings.FRONTEND_URL}
    app.add_middleware(
        CORSMiddleware,
        allow_origins=sorted(origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Malformed input is a client error like any other validation failure
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    for router in (
        auth_router,
        users_router,
        logs_router,
        products_router,
        movements_router,
        brands_router,
        models_router,
        suppliers_router,
        locations_router,
    ):
        app.include_router(router, prefix=API_PREFIX)

    @app.get(f"{API_PREFIX}/health")
    def health():
        return {"status": "OK", "message": "Inventory API is running"}

    logger.info("Inventory API ready")
    return app


app = create_app()
