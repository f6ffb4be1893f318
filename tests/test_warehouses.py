"""Tests for warehouse service and default warehouse resolution."""

import pytest

from stockledger.models.audit import InventoryAuditLog
from stockledger.models.warehouse import Warehouse
from stockledger.services.exceptions import ValidationFailedError
from stockledger.services.warehouse_service import (
    WarehouseService,
    ensure_default_warehouse,
    set_default,
)


def _defaults(db_session):
    db_session.expire_all()
    return db_session.query(Warehouse).filter(Warehouse.is_default.is_(True)).all()


class TestEnsureDefaultWarehouse:

    def test_returns_existing_default(self, db_session, warehouse, second_warehouse):
        assert ensure_default_warehouse(db_session).id == warehouse.id

    def test_prefers_main_code(self, db_session):
        db_session.add_all([
            Warehouse(code="AAA", name="First", is_default=False),
            Warehouse(code="MAIN", name="Main", is_default=False),
        ])
        db_session.commit()

        result = ensure_default_warehouse(db_session)
        db_session.commit()

        assert result.code == "MAIN"
        assert [w.code for w in _defaults(db_session)] == ["MAIN"]

    def test_falls_back_to_first_warehouse(self, db_session):
        db_session.add_all([
            Warehouse(code="EAST", name="East", is_default=False),
            Warehouse(code="WEST", name="West", is_default=False),
        ])
        db_session.commit()

        result = ensure_default_warehouse(db_session)

        assert result.code == "EAST"
        assert result.is_default is True

    def test_creates_main_when_empty(self, db_session):
        result = ensure_default_warehouse(db_session)
        db_session.commit()

        assert result.code == "MAIN"
        assert result.name == "Main Warehouse"
        assert len(_defaults(db_session)) == 1

    def test_clears_stray_defaults(self, db_session):
        db_session.add_all([
            Warehouse(code="ONE", name="One", is_default=True),
            Warehouse(code="TWO", name="Two", is_default=True),
        ])
        db_session.commit()

        result = ensure_default_warehouse(db_session)
        db_session.commit()

        assert result.code == "ONE"
        assert [w.code for w in _defaults(db_session)] == ["ONE"]


def test_set_default_moves_flag(db_session, warehouse, second_warehouse):
    set_default(db_session, second_warehouse)
    db_session.commit()

    assert [w.id for w in _defaults(db_session)] == [second_warehouse.id]


class TestWarehouseService:

    def test_first_warehouse_becomes_default(self, db_session, admin_user):
        warehouse = WarehouseService(db_session, admin_user.id).create_warehouse("main", "Main")
        assert warehouse.code == "MAIN"
        assert warehouse.is_default is True

    def test_duplicate_code_rejected(self, db_session, warehouse):
        with pytest.raises(ValidationFailedError, match="already exists"):
            WarehouseService(db_session).create_warehouse("MAIN", "Again")

    def test_create_with_default_takes_flag(self, db_session, warehouse):
        created = WarehouseService(db_session).create_warehouse("SOUTH", "South", is_default=True)

        assert [w.id for w in _defaults(db_session)] == [created.id]

    def test_cannot_unset_current_default(self, db_session, warehouse):
        with pytest.raises(ValidationFailedError, match="Cannot unset the default"):
            WarehouseService(db_session).update_warehouse(warehouse.id, is_default=False)
        assert len(_defaults(db_session)) == 1

    def test_exactly_one_default_after_update_sequence(self, db_session, warehouse, second_warehouse):
        third = Warehouse(code="WEST", name="West", is_default=False)
        db_session.add(third)
        db_session.commit()
        service = WarehouseService(db_session)

        sequence = [
            (second_warehouse.id, True),
            (third.id, True),
            (third.id, True),
            (warehouse.id, False),
            (warehouse.id, True),
            (second_warehouse.id, False),
        ]
        for warehouse_id, flag in sequence:
            try:
                service.update_warehouse(warehouse_id, is_default=flag)
            except ValidationFailedError:
                db_session.rollback()
            assert len(_defaults(db_session)) == 1

        assert _defaults(db_session)[0].id == warehouse.id

    def test_update_name_and_address(self, db_session, warehouse, admin_user):
        updated = WarehouseService(db_session, admin_user.id).update_warehouse(
            warehouse.id, name="Central", address="1 Dock Road",
        )
        assert updated.name == "Central"
        assert updated.address == "1 Dock Road"
        assert updated.is_default is True

    def test_update_writes_audit_entry(self, db_session, warehouse, admin_user):
        WarehouseService(db_session, admin_user.id).update_warehouse(warehouse.id, name="Central")

        entry = db_session.query(InventoryAuditLog).filter_by(
            entity_type="warehouse", action="update",
        ).one()
        assert entry.entity_id == str(warehouse.id)
        assert entry.before["name"] == "Main Warehouse"
        assert entry.after["name"] == "Central"
        assert entry.created_by == admin_user.id

    def test_inactive_warehouse_cannot_become_default(self, db_session, warehouse, second_warehouse):
        service = WarehouseService(db_session)
        second_warehouse.active = False
        db_session.commit()

        with pytest.raises(ValidationFailedError, match="inactive warehouse cannot be the default"):
            service.update_warehouse(second_warehouse.id, is_default=True)
        with pytest.raises(ValidationFailedError, match="inactive warehouse cannot be the default"):
            service.update_warehouse(second_warehouse.id, is_default=True, active=False)

        assert [w.id for w in _defaults(db_session)] == [warehouse.id]

    def test_reactivate_and_default_together(self, db_session, warehouse, second_warehouse):
        second_warehouse.active = False
        db_session.commit()

        WarehouseService(db_session).update_warehouse(second_warehouse.id, is_default=True, active=True)

        assert [w.id for w in _defaults(db_session)] == [second_warehouse.id]


class TestLocations:

    def test_default_location_flag_moves(self, db_session, warehouse):
        service = WarehouseService(db_session)
        first = service.create_location(warehouse.id, "A-01", is_default=True)
        second = service.create_location(warehouse.id, "B-01", is_default=True)

        db_session.expire_all()
        defaults = [loc.id for loc in service.list_locations(warehouse.id) if loc.is_default]
        assert defaults == [second.id]
        assert first.is_default is False

    def test_create_writes_audit_entry(self, db_session, warehouse, admin_user):
        location = WarehouseService(db_session, admin_user.id).create_location(warehouse.id, " A-01 ", name="Aisle A")

        assert location.code == "A-01"
        entry = db_session.query(InventoryAuditLog).filter_by(entity_type="warehouse_location").one()
        assert entry.action == "create"
        assert entry.entity_id == str(location.id)

    def test_duplicate_code_rejected(self, db_session, warehouse):
        service = WarehouseService(db_session)
        service.create_location(warehouse.id, "A-01")

        with pytest.raises(ValidationFailedError, match="already exists"):
            service.create_location(warehouse.id, "A-01")
