# tests/conftest.py
"""
Pytest fixtures for ledger tests.

- owner / owner_actor: OWNER role, allowed everything
- viewer / viewer_actor: VIEWER role with its default grants
- usd (default currency) and eur, one cash register per currency
- two warehouses, two products, a customer and a supplier
- two partners (60% / 40%) and a service
- post: create + confirm in one call, asserting both succeed
"""

from datetime import date
from decimal import Decimal

import pytest
from django.conf import settings
from django.contrib.auth import get_user_model

from accounts.authz import actor_for_user
from accounts.models import UserAccess
from accounts.permissions import grant_role_defaults
from accounting.commands import confirm_transaction, create_draft
from references.models import (
    CashRegister,
    Counterparty,
    Currency,
    Partner,
    Product,
    Service,
    Warehouse,
)


User = get_user_model()

DOC_DATE = date(2026, 3, 1)


@pytest.fixture(autouse=True, scope="session")
def _testing_settings():
    """Ensure test-only settings are enabled for read-model guards and Celery."""
    settings.TESTING = True
    from ledger_backend.celery import app

    app.conf.task_always_eager = True


# =============================================================================
# Users & actors
# =============================================================================

def _user_with_role(email, name, role):
    user = User.objects.create_user(email=email, password="testpass123", name=name)
    access = UserAccess.objects.create(user=user, role=role, is_active=True)
    grant_role_defaults(access)
    return user


@pytest.fixture
def owner(db):
    return _user_with_role("owner@test.com", "Test Owner", UserAccess.Role.OWNER)


@pytest.fixture
def owner_actor(owner):
    return actor_for_user(owner)


@pytest.fixture
def viewer(db):
    return _user_with_role("viewer@test.com", "Test Viewer", UserAccess.Role.VIEWER)


@pytest.fixture
def viewer_actor(viewer):
    return actor_for_user(viewer)


@pytest.fixture
def employee(db):
    """A user on the payroll (salary sub-ledger subject); no ledger access."""
    return User.objects.create_user(email="staff@test.com", password="testpass123", name="Sam Staff")


# =============================================================================
# Reference data
# =============================================================================

@pytest.fixture
def usd(db):
    return Currency.objects.create(
        code="USD", name="US Dollar", symbol="$",
        exchange_rate=Decimal("1"), decimal_places=2, is_default=True,
    )


@pytest.fixture
def eur(db):
    return Currency.objects.create(
        code="EUR", name="Euro", symbol="€",
        exchange_rate=Decimal("1.100000"), decimal_places=2,
    )


@pytest.fixture
def till(usd):
    return CashRegister.objects.create(name="Main till", currency=usd)


@pytest.fixture
def euro_safe(eur):
    return CashRegister.objects.create(name="Euro safe", currency=eur)


@pytest.fixture
def warehouse(db):
    return Warehouse.objects.create(name="Main warehouse")


@pytest.fixture
def branch(db):
    return Warehouse.objects.create(name="Branch")


@pytest.fixture
def widget(db):
    return Product.objects.create(name="Widget", sku="W-1")


@pytest.fixture
def gadget(db):
    return Product.objects.create(name="Gadget", sku="G-1")


@pytest.fixture
def customer(db):
    return Counterparty.objects.create(name="Acme Retail", kind=Counterparty.Kind.CUSTOMER)


@pytest.fixture
def supplier(db):
    return Counterparty.objects.create(name="Bolt Supplies", kind=Counterparty.Kind.SUPPLIER)


@pytest.fixture
def partners(db):
    return [
        Partner.objects.create(name="Alice", share_percentage=Decimal("60")),
        Partner.objects.create(name="Bob", share_percentage=Decimal("40")),
    ]


@pytest.fixture
def delivery(db):
    return Service.objects.create(name="Delivery", default_price=Decimal("25"))


# =============================================================================
# Document helpers
# =============================================================================

@pytest.fixture
def post(owner_actor):
    """Create a draft and confirm it; returns the confirmed Transaction."""

    def _post(**data):
        data.setdefault("date", DOC_DATE)
        created = create_draft(owner_actor, **data)
        assert created.success, created.exception.as_dict() if created.exception else created.error
        confirmed = confirm_transaction(owner_actor, created.data.pk)
        assert confirmed.success, confirmed.exception.as_dict() if confirmed.exception else confirmed.error
        return confirmed.data

    return _post


@pytest.fixture
def stocked(post, usd, supplier, warehouse, widget):
    """20 widgets bought at 50.00 on credit into the main warehouse."""
    return post(
        type="purchase",
        currency_id=usd.pk,
        counterparty_id=supplier.pk,
        items=[{"product_id": widget.pk, "warehouse_id": warehouse.pk, "quantity": "20", "price": "50"}],
    )
