"""Pytest configuration and fixtures."""

import os

# Keep the app's own engine in memory; tests use their own engine below
os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockledger.core.rbac import UserRole
from stockledger.core.security import create_access_token, get_password_hash
from stockledger.db.base import Base
from stockledger.db.session import get_db
from stockledger.main import app
# Import all models to ensure they're registered with Base.metadata
from stockledger.models import *  # noqa: F401,F403
from stockledger.models.order import Order, OrderItem, OrderStatus
from stockledger.models.product import Product
from stockledger.models.stock import InventoryItem
from stockledger.models.user import User
from stockledger.models.warehouse import Warehouse

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiting during tests to avoid flaky failures
    from stockledger.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


def _make_user(db: Session, role: UserRole, email: str) -> User:
    user = User(
        email=email,
        password_hash=get_password_hash("testpass123"),
        role=role,
        name=f"Test {role.value.title()}",
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _headers(user: User) -> dict:
    token = create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role.value}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_user(db_session: Session) -> User:
    return _make_user(db_session, UserRole.ADMIN, "admin@example.com")


@pytest.fixture
def editor_user(db_session: Session) -> User:
    return _make_user(db_session, UserRole.EDITOR, "editor@example.com")


@pytest.fixture
def customer_user(db_session: Session) -> User:
    return _make_user(db_session, UserRole.CUSTOMER, "customer@example.com")


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    """Authentication headers for an ADMIN."""
    return _headers(admin_user)


@pytest.fixture
def editor_headers(editor_user: User) -> dict:
    """Authentication headers for an EDITOR."""
    return _headers(editor_user)


@pytest.fixture
def customer_headers(customer_user: User) -> dict:
    """Authentication headers for a CUSTOMER."""
    return _headers(customer_user)


@pytest.fixture
def warehouse(db_session: Session) -> Warehouse:
    """The default warehouse."""
    wh = Warehouse(code="MAIN", name="Main Warehouse", is_default=True, active=True)
    db_session.add(wh)
    db_session.commit()
    db_session.refresh(wh)
    return wh


@pytest.fixture
def second_warehouse(db_session: Session) -> Warehouse:
    wh = Warehouse(code="NORTH", name="North Depot", is_default=False, active=True)
    db_session.add(wh)
    db_session.commit()
    db_session.refresh(wh)
    return wh


@pytest.fixture
def product(db_session: Session) -> Product:
    """A product with no stock yet."""
    p = Product(name="Cordless Drill", sku="DRL-001", unit="pcs", active=True)
    db_session.add(p)
    db_session.commit()
    db_session.refresh(p)
    return p


@pytest.fixture
def other_product(db_session: Session) -> Product:
    p = Product(name="Safety Gloves", sku="GLV-002", unit="pcs", active=True)
    db_session.add(p)
    db_session.commit()
    db_session.refresh(p)
    return p


@pytest.fixture
def make_stock(db_session: Session):
    """Factory creating an inventory row with the given on-hand/reserved quantities."""
    def _make(product: Product, warehouse: Warehouse, on_hand="0", reserved="0",
              reorder_point="0") -> InventoryItem:
        on_hand = Decimal(on_hand)
        reserved = Decimal(reserved)
        item = InventoryItem(
            product_id=product.id,
            warehouse_id=warehouse.id,
            on_hand_qty=on_hand,
            reserved_qty=reserved,
            available_qty=on_hand - reserved,
            reorder_point_qty=Decimal(reorder_point),
            reorder_qty=Decimal("0"),
        )
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item

    return _make


@pytest.fixture
def make_order(db_session: Session):
    """Factory creating an order with ``(product, quantity)`` lines."""
    counter = {"n": 0}

    def _make(lines, status: OrderStatus = OrderStatus.PENDING_CONFIRMATION,
              warehouse_id=None) -> Order:
        counter["n"] += 1
        order = Order(
            order_number=f"ORD-{counter['n']:04d}",
            status=status.value,
            customer_email="buyer@example.com",
            warehouse_id=warehouse_id,
            items=[
                OrderItem(
                    product_id=p.id if p is not None else None,
                    product_name=p.name if p is not None else "Deleted product",
                    quantity=qty,
                    unit_price=Decimal("10.00"),
                )
                for p, qty in lines
            ],
        )
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order

    return _make
