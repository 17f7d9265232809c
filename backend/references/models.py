# references/models.py
"""
Reference data models.

Each row is owned by back-office staff. Ledger documents only point at
them; balances keyed by these rows live in the projections app.
"""

from decimal import Decimal, ROUND_HALF_UP

from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models


class ActiveQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)


class Currency(models.Model):
    """
    A currency the business trades in.

    exchange_rate converts an amount of this currency into the default
    currency (amount * exchange_rate). It is informational and only used
    for summary totals; balances are never converted.
    """

    code = models.CharField(max_length=3, unique=True)
    name = models.CharField(max_length=100)
    symbol = models.CharField(max_length=10, blank=True, default="")
    exchange_rate = models.DecimalField(
        max_digits=18,
        decimal_places=6,
        default=Decimal("1"),
        validators=[MinValueValidator(Decimal("0.000001"))],
    )
    decimal_places = models.PositiveSmallIntegerField(
        default=2,
        validators=[MaxValueValidator(6)],
    )
    is_default = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        ordering = ["code"]
        verbose_name_plural = "Currencies"

    def __str__(self):
        return self.code

    @property
    def minor_unit(self) -> Decimal:
        return Decimal(1).scaleb(-self.decimal_places)

    def quantize(self, amount: Decimal) -> Decimal:
        return Decimal(amount).quantize(self.minor_unit, rounding=ROUND_HALF_UP)

    def to_default(self, amount: Decimal) -> Decimal:
        return Decimal(amount) * self.exchange_rate

    @classmethod
    def get_default(cls):
        return cls.objects.filter(is_default=True).first()


class CashRegister(models.Model):
    """A till, safe or bank account holding money in exactly one currency."""

    class Kind(models.TextChoices):
        CASH = "cash", "Cash"
        BANK = "bank", "Bank"
        CARD = "card", "Card"

    name = models.CharField(max_length=150)
    currency = models.ForeignKey(Currency, on_delete=models.PROTECT, related_name="cash_registers")
    kind = models.CharField(max_length=10, choices=Kind.choices, default=Kind.CASH)
    is_active = models.BooleanField(default=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.currency_id and self.currency.code})"


class Warehouse(models.Model):
    name = models.CharField(max_length=150)
    address = models.CharField(max_length=255, blank=True, default="")
    is_active = models.BooleanField(default=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Product(models.Model):
    name = models.CharField(max_length=200)
    sku = models.CharField(max_length=64, blank=True, default="")
    unit = models.CharField(max_length=20, default="pcs")
    is_active = models.BooleanField(default=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Counterparty(models.Model):
    """A customer and/or supplier."""

    class Kind(models.TextChoices):
        CUSTOMER = "customer", "Customer"
        SUPPLIER = "supplier", "Supplier"
        BOTH = "both", "Customer & supplier"

    name = models.CharField(max_length=200)
    kind = models.CharField(max_length=10, choices=Kind.choices, default=Kind.BOTH)
    phone = models.CharField(max_length=50, blank=True, default="")
    is_active = models.BooleanField(default=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "Counterparties"

    def __str__(self):
        return self.name


class Partner(models.Model):
    """Business owner entitled to a share of distributed dividends."""

    name = models.CharField(max_length=200)
    share_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0"),
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
    )
    is_active = models.BooleanField(default=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.share_percentage}%)"


class Service(models.Model):
    name = models.CharField(max_length=200)
    default_price = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0"))
    is_active = models.BooleanField(default=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name
