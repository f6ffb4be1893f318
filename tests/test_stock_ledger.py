"""Tests for the ledger primitives."""

import re
from decimal import Decimal

import pytest

from stockledger.models.stock import MovementType, StockMovement
from stockledger.services.exceptions import InsufficientStockError
from stockledger.services.stock_ledger import (
    MovementPlan,
    apply_movement,
    find_inventory_item,
    generate_document_code,
    to_qty,
)


class TestApplyMovement:

    def test_creates_inventory_row_on_first_receipt(self, db_session, product, warehouse):
        plan = MovementPlan(
            product_id=product.id,
            warehouse_id=warehouse.id,
            movement_type=MovementType.RECEIPT,
            idempotency_key="test:receipt:1",
            qty_change_on_hand=Decimal("12"),
        )
        movement, created = apply_movement(db_session, plan)
        db_session.commit()

        assert created is True
        item = find_inventory_item(db_session, product.id, warehouse.id)
        assert item.on_hand_qty == Decimal("12.00")
        assert item.reserved_qty == Decimal("0.00")
        assert item.available_qty == Decimal("12.00")
        assert movement.balance_on_hand_after == Decimal("12.00")

    def test_same_key_is_applied_once(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="5")
        plan = MovementPlan(
            product_id=product.id,
            warehouse_id=warehouse.id,
            movement_type=MovementType.RECEIPT,
            idempotency_key="test:receipt:dup",
            qty_change_on_hand=Decimal("3"),
        )
        first, created_first = apply_movement(db_session, plan)
        second, created_second = apply_movement(db_session, plan)
        db_session.commit()

        assert created_first is True
        assert created_second is False
        assert first.id == second.id
        item = find_inventory_item(db_session, product.id, warehouse.id)
        assert item.on_hand_qty == Decimal("8.00")
        assert db_session.query(StockMovement).count() == 1

    def test_rejects_negative_available_without_changes(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="10", reserved="8")
        plan = MovementPlan(
            product_id=product.id,
            warehouse_id=warehouse.id,
            movement_type=MovementType.ISSUE,
            idempotency_key="test:issue:1",
            qty_change_on_hand=Decimal("-5"),
        )
        with pytest.raises(InsufficientStockError) as exc_info:
            apply_movement(db_session, plan)

        assert exc_info.value.status_code == 400
        assert exc_info.value.details["available"] == "2.00"
        item = find_inventory_item(db_session, product.id, warehouse.id)
        assert item.on_hand_qty == Decimal("10.00")
        assert db_session.query(StockMovement).count() == 0

    def test_allow_negative_overrides_check(self, db_session, product, warehouse, make_stock):
        make_stock(product, warehouse, on_hand="1")
        plan = MovementPlan(
            product_id=product.id,
            warehouse_id=warehouse.id,
            movement_type=MovementType.ADJUSTMENT,
            idempotency_key="test:adj:neg",
            qty_change_on_hand=Decimal("-3"),
        )
        apply_movement(db_session, plan, allow_negative=True)
        item = find_inventory_item(db_session, product.id, warehouse.id)
        assert item.on_hand_qty == Decimal("-2.00")

    def test_syncs_product_stock_quantity(self, db_session, product, warehouse, second_warehouse, make_stock):
        make_stock(product, warehouse, on_hand="4", reserved="1")
        make_stock(product, second_warehouse, on_hand="6")
        plan = MovementPlan(
            product_id=product.id,
            warehouse_id=warehouse.id,
            movement_type=MovementType.RECEIPT,
            idempotency_key="test:sync",
            qty_change_on_hand=Decimal("2"),
        )
        apply_movement(db_session, plan)
        db_session.commit()
        db_session.refresh(product)

        # (4 + 2 - 1) + 6
        assert product.stock_quantity == Decimal("11.00")


def test_to_qty_rounds_to_two_places():
    assert to_qty(3) == Decimal("3.00")
    assert to_qty("1.239") == Decimal("1.24")
    assert to_qty(Decimal("0.5")) == Decimal("0.50")


def test_document_code_format():
    code = generate_document_code("REC")
    assert re.fullmatch(r"REC-\d{8}-[A-Z0-9]{6}", code)
    assert generate_document_code("REC") != code
