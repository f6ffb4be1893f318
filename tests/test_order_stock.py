"""Tests for order stock actions (reserve, release, commit, restock)."""

from decimal import Decimal

from stockledger.models.document import DocumentStatus, ReferenceType, StockDocument
from stockledger.models.stock import StockMovement
from stockledger.services.order_stock_service import (
    OrderLineItem,
    OrderStockService,
    StockAction,
)
from stockledger.services.stock_ledger import find_inventory_item


def _line(product, qty, name=None):
    return OrderLineItem(product_id=product.id, quantity=Decimal(qty), product_name=name or product.name)


def _inventory(db_session, product, warehouse):
    db_session.expire_all()
    return find_inventory_item(db_session, product.id, warehouse.id, for_update=False)


def _run(db_session, order_id, action, lines, warehouse):
    return OrderStockService(db_session).execute(
        order_id=order_id, action=action, items=lines, warehouse_id=warehouse.id,
    )


class TestReserve:

    def test_reserve_all_available_stock(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="10")

        result = OrderStockService(db_session).execute(
            order_id=1, action=StockAction.RESERVE, items=[_line(product, 10)], warehouse_id=warehouse.id,
        )

        assert result.success is True
        assert len(result.applied) == 1
        assert result.skipped == []
        item = _inventory(db_session, product, warehouse)
        assert item.reserved_qty == Decimal("10.00")
        assert item.available_qty == Decimal("0.00")
        assert item.on_hand_qty == Decimal("10.00")

    def test_insufficient_line_is_skipped_others_applied(
        self, db_session, product, other_product, warehouse, make_stock
    ):
        make_stock(product, warehouse, on_hand="3")
        make_stock(other_product, warehouse, on_hand="20")

        result = OrderStockService(db_session).execute(
            order_id=7,
            action=StockAction.RESERVE,
            items=[_line(product, 5), _line(other_product, 4)],
            warehouse_id=warehouse.id,
        )

        assert result.success is True
        assert [a.product_id for a in result.applied] == [other_product.id]
        assert len(result.skipped) == 1
        assert result.skipped[0].product_id == product.id
        assert "Insufficient available stock" in result.skipped[0].reason

        skipped_item = _inventory(db_session, product, warehouse)
        assert skipped_item.reserved_qty == Decimal("0.00")
        assert skipped_item.available_qty == Decimal("3.00")
        applied_item = _inventory(db_session, other_product, warehouse)
        assert applied_item.reserved_qty == Decimal("4.00")

    def test_reserved_never_exceeds_on_hand(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="6")
        service = OrderStockService(db_session)

        for order_id in range(1, 5):
            service.execute(
                order_id=order_id, action=StockAction.RESERVE,
                items=[_line(product, 2)], warehouse_id=warehouse.id,
            )

        item = _inventory(db_session, product, warehouse)
        assert item.reserved_qty == Decimal("6.00")
        assert item.reserved_qty <= item.on_hand_qty
        assert item.available_qty == Decimal("0.00")

    def test_repeating_action_does_not_double_reserve(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="10")
        service = OrderStockService(db_session)

        service.execute(order_id=3, action=StockAction.RESERVE, items=[_line(product, 4)],
                        warehouse_id=warehouse.id)
        again = service.execute(order_id=3, action=StockAction.RESERVE, items=[_line(product, 4)],
                                warehouse_id=warehouse.id)

        assert again.applied == []
        assert "already applied" in again.skipped[0].reason
        assert _inventory(db_session, product, warehouse).reserved_qty == Decimal("4.00")

    def test_missing_inventory_row_is_skipped(self, db_session, product, warehouse):
        result = OrderStockService(db_session).execute(
            order_id=1, action=StockAction.RESERVE, items=[_line(product, 1)], warehouse_id=warehouse.id,
        )

        assert result.success is True
        assert result.applied == []
        assert "No inventory record" in result.skipped[0].reason
        assert result.document_id is None

    def test_line_without_product_is_skipped(self, db_session, warehouse):
        result = OrderStockService(db_session).execute(
            order_id=1,
            action=StockAction.RESERVE,
            items=[OrderLineItem(product_id=None, quantity=Decimal("1"), product_name="Gone")],
            warehouse_id=warehouse.id,
        )
        assert result.applied == []
        assert result.skipped[0].product_name == "Gone"

    def test_atomic_reserve_rolls_back_everything(
        self, db_session, product, other_product, warehouse, make_stock
    ):
        make_stock(product, warehouse, on_hand="3")
        make_stock(other_product, warehouse, on_hand="20")

        result = OrderStockService(db_session).execute(
            order_id=9,
            action=StockAction.RESERVE,
            items=[_line(other_product, 4), _line(product, 5)],
            warehouse_id=warehouse.id,
            atomic=True,
        )

        assert result.success is False
        assert result.applied == []
        assert result.errors
        assert _inventory(db_session, other_product, warehouse).reserved_qty == Decimal("0.00")
        assert db_session.query(StockMovement).count() == 0
        assert db_session.query(StockDocument).count() == 0


class TestRelease:

    def test_release_returns_the_orders_reservation(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="10")
        _run(db_session, 2, StockAction.RESERVE, [_line(product, 6)], warehouse)

        result = _run(db_session, 2, StockAction.RELEASE, [_line(product, 6)], warehouse)

        assert result.applied[0].quantity == Decimal("6.00")
        item = _inventory(db_session, product, warehouse)
        assert item.reserved_qty == Decimal("0.00")
        assert item.available_qty == Decimal("10.00")

    def test_release_is_capped_by_what_the_order_holds(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="10")
        _run(db_session, 1, StockAction.RESERVE, [_line(product, 4)], warehouse)
        _run(db_session, 2, StockAction.RESERVE, [_line(product, 2)], warehouse)

        result = _run(db_session, 2, StockAction.RELEASE, [_line(product, 5)], warehouse)

        assert result.applied[0].quantity == Decimal("2.00")
        item = _inventory(db_session, product, warehouse)
        assert item.reserved_qty == Decimal("4.00")
        assert item.available_qty == Decimal("6.00")

    def test_release_with_nothing_reserved_is_skipped(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="10")

        result = _run(db_session, 2, StockAction.RELEASE, [_line(product, 5)], warehouse)

        assert result.success is True
        assert result.applied == []
        assert "No reserved stock" in result.skipped[0].reason
        assert _inventory(db_session, product, warehouse).reserved_qty == Decimal("0.00")

    def test_skipped_reserve_cannot_release_another_orders_stock(
        self, db_session, product, warehouse, make_stock
    ):
        make_stock(product, warehouse, on_hand="5")
        _run(db_session, 1, StockAction.RESERVE, [_line(product, 5)], warehouse)
        skipped = _run(db_session, 2, StockAction.RESERVE, [_line(product, 5)], warehouse)
        assert skipped.applied == []

        release = _run(db_session, 2, StockAction.RELEASE, [_line(product, 5)], warehouse)
        third = _run(db_session, 3, StockAction.RESERVE, [_line(product, 5)], warehouse)

        assert release.applied == []
        assert third.applied == []
        item = _inventory(db_session, product, warehouse)
        assert item.reserved_qty == Decimal("5.00")
        assert item.available_qty == Decimal("0.00")

    def test_reserve_again_after_release(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="10")
        _run(db_session, 4, StockAction.RESERVE, [_line(product, 3)], warehouse)
        _run(db_session, 4, StockAction.RELEASE, [_line(product, 3)], warehouse)

        again = _run(db_session, 4, StockAction.RESERVE, [_line(product, 3)], warehouse)

        assert len(again.applied) == 1
        assert _inventory(db_session, product, warehouse).reserved_qty == Decimal("3.00")
        keys = [m.idempotency_key for m in db_session.query(StockMovement).order_by(StockMovement.id)]
        prefix = f"order:4:{warehouse.id}:0:{product.id}:"
        assert keys == [f"{prefix}RESERVE:1", f"{prefix}RELEASE:1", f"{prefix}RESERVE:2"]


class TestCommit:

    def test_commit_consumes_reserved_and_on_hand(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="10")
        _run(db_session, 5, StockAction.RESERVE, [_line(product, 4)], warehouse)

        result = _run(db_session, 5, StockAction.COMMIT, [_line(product, 4)], warehouse)

        assert result.success is True
        item = _inventory(db_session, product, warehouse)
        assert item.on_hand_qty == Decimal("6.00")
        assert item.reserved_qty == Decimal("0.00")
        assert item.available_qty == Decimal("6.00")

    def test_commit_without_reservation_uses_available(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="5")
        _run(db_session, 1, StockAction.RESERVE, [_line(product, 1)], warehouse)

        result = _run(db_session, 5, StockAction.COMMIT, [_line(product, 3)], warehouse)

        assert result.applied
        item = _inventory(db_session, product, warehouse)
        assert item.on_hand_qty == Decimal("2.00")
        assert item.reserved_qty == Decimal("1.00")
        assert item.available_qty == Decimal("1.00")

    def test_unreserved_order_cannot_ship_another_orders_reservation(
        self, db_session, product, warehouse, make_stock
    ):
        make_stock(product, warehouse, on_hand="5")
        _run(db_session, 1, StockAction.RESERVE, [_line(product, 5)], warehouse)

        other = _run(db_session, 2, StockAction.COMMIT, [_line(product, 5)], warehouse)
        own = _run(db_session, 1, StockAction.COMMIT, [_line(product, 5)], warehouse)

        assert other.applied == []
        assert "Insufficient stock to ship" in other.skipped[0].reason
        assert len(own.applied) == 1
        item = _inventory(db_session, product, warehouse)
        assert item.on_hand_qty == Decimal("0.00")
        assert item.reserved_qty == Decimal("0.00")

    def test_commit_twice_is_skipped(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="10")
        _run(db_session, 5, StockAction.COMMIT, [_line(product, 2)], warehouse)

        again = _run(db_session, 5, StockAction.COMMIT, [_line(product, 2)], warehouse)

        assert again.applied == []
        assert "already applied" in again.skipped[0].reason
        assert _inventory(db_session, product, warehouse).on_hand_qty == Decimal("8.00")

    def test_commit_more_than_on_hand_is_skipped(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="2")

        result = _run(db_session, 5, StockAction.COMMIT, [_line(product, 3)], warehouse)

        assert result.applied == []
        assert "Insufficient stock to ship" in result.skipped[0].reason
        assert _inventory(db_session, product, warehouse).on_hand_qty == Decimal("2.00")


class TestRestock:

    def test_restock_creates_inventory_row(self, db_session, product, warehouse):
        result = OrderStockService(db_session).execute(
            order_id=8, action=StockAction.RESTOCK, items=[_line(product, 2)], warehouse_id=warehouse.id,
        )

        assert len(result.applied) == 1
        item = _inventory(db_session, product, warehouse)
        assert item.on_hand_qty == Decimal("2.00")
        assert item.available_qty == Decimal("2.00")


class TestAuditDocument:

    def test_one_posted_document_per_execution(
        self, db_session, product, other_product, warehouse, make_stock, admin_user
    ):
        make_stock(product, warehouse, on_hand="10")
        make_stock(other_product, warehouse, on_hand="10")

        result = OrderStockService(db_session).execute(
            order_id=42,
            action=StockAction.RESERVE,
            items=[_line(product, 1), _line(other_product, 2)],
            warehouse_id=warehouse.id,
            created_by=admin_user.id,
        )

        documents = db_session.query(StockDocument).all()
        assert len(documents) == 1
        document = documents[0]
        assert document.id == result.document_id
        assert document.status == DocumentStatus.POSTED.value
        assert document.reference_type == ReferenceType.ORDER.value
        assert document.reference_id == 42
        assert document.code.startswith("RES-")

        movements = db_session.query(StockMovement).order_by(StockMovement.id).all()
        assert len(movements) == 2
        assert all(m.document_id == document.id for m in movements)
        assert all(m.ref_type == "order" and m.ref_id == 42 for m in movements)
        assert movements[0].idempotency_key == f"order:42:{warehouse.id}:0:{product.id}:RESERVE:1"
        assert movements[0].created_by == admin_user.id

    def test_result_serializes_camel_case(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="1")

        result = OrderStockService(db_session).execute(
            order_id=1, action=StockAction.RESERVE, items=[_line(product, 1)], warehouse_id=warehouse.id,
        )
        payload = result.to_dict()

        assert payload["action"] == "RESERVE"
        assert payload["applied"][0]["productId"] == product.id
        assert payload["applied"][0]["quantity"] == "1.00"
        assert payload["documentId"] == result.document_id
