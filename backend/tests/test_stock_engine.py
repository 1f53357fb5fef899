import threading

import pytest
from sqlalchemy.exc import OperationalError

import services.stock as stock
from database import SessionLocal
from models.movement import Movement, MovementBatch, MovementType
from services.errors import (
    DuplicateCodeError,
    InsufficientStockError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from services.stock import apply_batch


def _lines(*pairs):
    return [{"product_id": product_id, "quantity": quantity} for product_id, quantity in pairs]


def _batch_count(db):
    db.expire_all()
    return db.query(MovementBatch).count()


def test_entrada_adds_stock_and_records_batch(db, admin, make_product, stock_of):
    product = make_product(quantity=10)

    batch = apply_batch(db, _lines((product.id, 5)), MovementType.ENTRADA, user_id=admin.id, reason="Compra")

    assert stock_of(product.id) == 15
    assert batch.code == "MOV-000001"
    assert batch.type is MovementType.ENTRADA
    assert batch.total_quantity == 5
    assert batch.reason == "Compra"
    assert [(m.product_id, m.quantity) for m in batch.movements] == [(product.id, 5)]


def test_salida_of_whole_stock_leaves_zero(db, admin, make_product, stock_of):
    product = make_product(quantity=10)

    apply_batch(db, _lines((product.id, 10)), "SALIDA", user_id=admin.id)

    assert stock_of(product.id) == 0


def test_salida_beyond_stock_changes_nothing(db, admin, make_product, stock_of):
    product = make_product(quantity=10, name="Laptop Dell")

    with pytest.raises(InsufficientStockError) as exc_info:
        apply_batch(db, _lines((product.id, 11)), MovementType.SALIDA, user_id=admin.id)

    assert exc_info.value.available == 10
    assert exc_info.value.requested == 11
    assert exc_info.value.product_name == "Laptop Dell"
    assert stock_of(product.id) == 10
    assert _batch_count(db) == 0


def test_failing_second_line_rolls_back_the_first(db, admin, make_product, stock_of):
    first = make_product(quantity=10)
    second = make_product(quantity=4)

    with pytest.raises(InsufficientStockError) as exc_info:
        apply_batch(db, _lines((first.id, 3), (second.id, 10)), MovementType.SALIDA, user_id=admin.id)

    assert exc_info.value.product_id == second.id
    assert exc_info.value.available == 4
    assert stock_of(first.id) == 10
    assert stock_of(second.id) == 4
    assert _batch_count(db) == 0
    assert db.query(Movement).count() == 0


def test_multi_line_batch_totals_and_order(db, admin, make_product, stock_of):
    a = make_product(quantity=0)
    b = make_product(quantity=2)

    batch = apply_batch(db, _lines((b.id, 3), (a.id, 7)), MovementType.ENTRADA, user_id=admin.id)

    assert batch.total_quantity == 10
    assert [m.product_id for m in batch.movements] == [b.id, a.id]
    assert stock_of(a.id) == 7
    assert stock_of(b.id) == 5


def test_same_product_twice_sees_previous_line(db, admin, make_product, stock_of):
    product = make_product(quantity=5)

    apply_batch(db, _lines((product.id, 3), (product.id, 2)), MovementType.SALIDA, user_id=admin.id)
    assert stock_of(product.id) == 0

    product = make_product(quantity=5)
    with pytest.raises(InsufficientStockError) as exc_info:
        apply_batch(db, _lines((product.id, 3), (product.id, 3)), MovementType.SALIDA, user_id=admin.id)
    assert exc_info.value.available == 2
    assert stock_of(product.id) == 5


def test_unknown_product_is_not_found_and_atomic(db, admin, make_product, stock_of):
    product = make_product(quantity=3)

    with pytest.raises(NotFoundError) as exc_info:
        apply_batch(db, _lines((product.id, 1), (9999, 1)), MovementType.ENTRADA, user_id=admin.id)

    assert exc_info.value.product_id == 9999
    assert stock_of(product.id) == 3
    assert _batch_count(db) == 0


@pytest.mark.parametrize(
    "items, message",
    [
        ([], "At least one movement is required"),
        (None, "At least one movement is required"),
        ([{"product_id": 1}], "Movement #1 is incomplete"),
        ([{"quantity": 2}], "Movement #1 is incomplete"),
        ([{"product_id": 1, "quantity": 0}], "Quantity of movement #1 is invalid"),
        ([{"product_id": 1, "quantity": -4}], "Quantity of movement #1 is invalid"),
        ([{"product_id": 1, "quantity": 1.5}], "Quantity of movement #1 is invalid"),
        ([{"product_id": 1, "quantity": True}], "Quantity of movement #1 is invalid"),
        ([{"product_id": 1, "quantity": 1}, {"product_id": 1, "quantity": "2"}], "Quantity of movement #2 is invalid"),
    ],
)
def test_rejects_malformed_lines(db, admin, make_product, stock_of, items, message):
    product = make_product(quantity=5)

    with pytest.raises(ValidationError, match=message):
        apply_batch(db, items, MovementType.ENTRADA, user_id=admin.id)

    assert stock_of(product.id) == 5
    assert _batch_count(db) == 0


def test_rejects_unknown_type(db, admin, make_product):
    product = make_product(quantity=5)

    with pytest.raises(ValidationError, match="ENTRADA or SALIDA"):
        apply_batch(db, _lines((product.id, 1)), "AJUSTE", user_id=admin.id)


def test_supplied_code_is_used_and_duplicates_rejected(db, admin, make_product, stock_of):
    product = make_product(quantity=5)

    batch = apply_batch(db, _lines((product.id, 1)), MovementType.ENTRADA, user_id=admin.id, code="MOV-MANUAL")
    assert batch.code == "MOV-MANUAL"

    with pytest.raises(DuplicateCodeError) as exc_info:
        apply_batch(db, _lines((product.id, 1)), MovementType.ENTRADA, user_id=admin.id, code="MOV-MANUAL")

    assert exc_info.value.code == "MOV-MANUAL"
    assert stock_of(product.id) == 6
    assert _batch_count(db) == 1


def test_generated_code_collision_is_retried(db, admin, make_product, stock_of, monkeypatch):
    product = make_product(quantity=5)
    apply_batch(db, _lines((product.id, 1)), MovementType.ENTRADA, user_id=admin.id)

    real_generate = stock.generate_movement_code
    calls = []

    def stale_then_fresh(session):
        calls.append(1)
        # First candidate is one another writer already committed
        return "MOV-000001" if len(calls) == 1 else real_generate(session)

    monkeypatch.setattr(stock, "generate_movement_code", stale_then_fresh)

    batch = apply_batch(db, _lines((product.id, 2)), MovementType.ENTRADA, user_id=admin.id)

    assert len(calls) == 2
    assert batch.code == "MOV-000002"
    # The failed attempt's stock change was rolled back before retrying
    assert stock_of(product.id) == 8


def test_storage_failure_is_wrapped_and_rolled_back(db, admin, make_product, stock_of, monkeypatch):
    product = make_product(quantity=5)
    other = make_product(quantity=5)
    real_adjust = stock._adjust_stock

    def flaky(session, product_id, quantity, movement_type):
        if product_id == other.id:
            raise OperationalError("UPDATE products", {}, Exception("disk I/O error"))
        return real_adjust(session, product_id, quantity, movement_type)

    monkeypatch.setattr(stock, "_adjust_stock", flaky)

    with pytest.raises(StorageError):
        apply_batch(db, _lines((product.id, 1), (other.id, 1)), MovementType.SALIDA, user_id=admin.id)

    assert stock_of(product.id) == 5
    assert _batch_count(db) == 0


def test_concurrent_salidas_cannot_oversell(admin, make_product, stock_of):
    product = make_product(quantity=5)
    product_id, user_id = product.id, admin.id
    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def take_three():
        session = SessionLocal()
        try:
            barrier.wait()
            try:
                batch = apply_batch(session, _lines((product_id, 3)), MovementType.SALIDA, user_id=user_id)
                result = ("ok", batch.code)
            except InsufficientStockError as exc:
                result = ("insufficient", exc.available)
        finally:
            session.close()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=take_three) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(kind for kind, _ in outcomes) == ["insufficient", "ok"]
    assert ("insufficient", 2) in outcomes

    assert stock_of(product_id) == 2
    check = SessionLocal()
    try:
        assert check.query(MovementBatch).count() == 1
    finally:
        check.close()
