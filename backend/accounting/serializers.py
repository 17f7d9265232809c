# accounting/serializers.py
"""
Serializers for accounting API.

Note: These serializers are used for:
1. Input shape checks (types, formats)
2. Output formatting

Business rules (required groups, totals, currencies, references) are
checked by accounting.validators inside the command, so every rule
violation comes back in the same error map.
"""

from decimal import Decimal

from rest_framework import serializers

from accounting.models import (
    MONEY_DIGITS,
    MONEY_PLACES,
    QTY_DIGITS,
    QTY_PLACES,
    CashEntry,
    DividendEntry,
    SalaryEntry,
    ServiceEntry,
    StockItem,
    Transaction,
)
from accounting.types import EntryKind, TransactionStatus, TransactionType


def _money(**kwargs):
    return serializers.DecimalField(max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES, **kwargs)


def _qty(**kwargs):
    return serializers.DecimalField(max_digits=QTY_DIGITS, decimal_places=QTY_PLACES, **kwargs)


# =============================================================================
# Input Serializers
# =============================================================================

class StockItemInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    warehouse_id = serializers.IntegerField()
    warehouse_to_id = serializers.IntegerField(required=False, allow_null=True)
    quantity = _qty()
    price = _money(required=False, default=0)


class CashEntryInputSerializer(serializers.Serializer):
    cash_register_id = serializers.IntegerField()
    currency_id = serializers.IntegerField(required=False, allow_null=True)
    amount = _money()


class DividendEntryInputSerializer(serializers.Serializer):
    partner_id = serializers.IntegerField()
    currency_id = serializers.IntegerField(required=False, allow_null=True)
    kind = serializers.ChoiceField(choices=EntryKind.choices, required=False)
    amount = _money()


class SalaryEntryInputSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    currency_id = serializers.IntegerField(required=False, allow_null=True)
    kind = serializers.ChoiceField(choices=EntryKind.choices, required=False)
    amount = _money()


class ServiceEntryInputSerializer(serializers.Serializer):
    service_id = serializers.IntegerField()
    quantity = _qty()
    price = _money(required=False, default=0)
    note = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class TransactionInputSerializer(serializers.Serializer):
    """
    Create/update payload.

    Use partial=True for updates: only the keys sent reach the command,
    and a line group that is sent replaces the stored group.
    """
    type = serializers.ChoiceField(choices=TransactionType.choices)
    date = serializers.DateField()
    currency_id = serializers.IntegerField()
    counterparty_id = serializers.IntegerField(required=False, allow_null=True)
    partner_id = serializers.IntegerField(required=False, allow_null=True)
    description = serializers.CharField(required=False, allow_blank=True)
    total_amount = _money(required=False, allow_null=True)
    paid_amount = _money(required=False, allow_null=True)

    items = StockItemInputSerializer(many=True, required=False)
    cash_entries = CashEntryInputSerializer(many=True, required=False)
    dividend_entries = DividendEntryInputSerializer(many=True, required=False)
    salary_entries = SalaryEntryInputSerializer(many=True, required=False)
    service_entries = ServiceEntryInputSerializer(many=True, required=False)


class TransactionFilterSerializer(serializers.Serializer):
    """List query params; types is a comma separated list of type values."""
    type = serializers.ChoiceField(choices=TransactionType.choices, required=False)
    types = serializers.CharField(required=False)
    status = serializers.ChoiceField(choices=TransactionStatus.choices, required=False)
    counterparty_id = serializers.IntegerField(required=False, min_value=1)
    partner_id = serializers.IntegerField(required=False, min_value=1)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    search = serializers.CharField(required=False, allow_blank=True)

    def validate_types(self, value):
        types = [t for t in value.split(",") if t]
        unknown = sorted(set(types) - set(TransactionType.values))
        if unknown:
            raise serializers.ValidationError(f"Unknown transaction types: {', '.join(unknown)}.")
        return types


class DividendCalculateSerializer(serializers.Serializer):
    amount = _money(min_value=Decimal("0.01"))
    currency_id = serializers.IntegerField()


# =============================================================================
# Output Serializers
# =============================================================================

class StockItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    warehouse_name = serializers.CharField(source="warehouse.name", read_only=True)
    warehouse_to_name = serializers.CharField(source="warehouse_to.name", read_only=True, default=None)

    class Meta:
        model = StockItem
        fields = [
            "line_no", "product", "product_name", "warehouse", "warehouse_name",
            "warehouse_to", "warehouse_to_name", "quantity", "price", "amount",
        ]


class CashEntrySerializer(serializers.ModelSerializer):
    cash_register_name = serializers.CharField(source="cash_register.name", read_only=True)
    currency_code = serializers.CharField(source="currency.code", read_only=True)

    class Meta:
        model = CashEntry
        fields = ["line_no", "cash_register", "cash_register_name", "currency", "currency_code", "amount"]


class DividendEntrySerializer(serializers.ModelSerializer):
    partner_name = serializers.CharField(source="partner.name", read_only=True)
    currency_code = serializers.CharField(source="currency.code", read_only=True)

    class Meta:
        model = DividendEntry
        fields = ["line_no", "partner", "partner_name", "currency", "currency_code", "kind", "amount"]


class SalaryEntrySerializer(serializers.ModelSerializer):
    user_name = serializers.CharField(source="user.name", read_only=True)
    currency_code = serializers.CharField(source="currency.code", read_only=True)

    class Meta:
        model = SalaryEntry
        fields = ["line_no", "user", "user_name", "currency", "currency_code", "kind", "amount"]


class ServiceEntrySerializer(serializers.ModelSerializer):
    service_name = serializers.CharField(source="service.name", read_only=True)

    class Meta:
        model = ServiceEntry
        fields = ["line_no", "service", "service_name", "quantity", "price", "amount", "note"]


class TransactionListSerializer(serializers.ModelSerializer):
    """Header-only representation for list pages."""
    type_label = serializers.CharField(source="get_type_display", read_only=True)
    currency_code = serializers.CharField(source="currency.code", read_only=True)
    counterparty_name = serializers.CharField(source="counterparty.name", read_only=True, default=None)
    partner_name = serializers.CharField(source="partner.name", read_only=True, default=None)
    remaining_amount = _money(read_only=True)

    class Meta:
        model = Transaction
        fields = [
            "id", "public_id", "number", "type", "type_label", "date", "status",
            "currency", "currency_code", "total_amount", "paid_amount", "remaining_amount",
            "counterparty", "counterparty_name", "partner", "partner_name",
            "description", "confirmed_at", "cancelled_at", "created_at", "updated_at",
        ]


class TransactionSerializer(TransactionListSerializer):
    """Full document with every line group."""
    items = StockItemSerializer(many=True, read_only=True)
    cash_entries = CashEntrySerializer(many=True, read_only=True)
    dividend_entries = DividendEntrySerializer(many=True, read_only=True)
    salary_entries = SalaryEntrySerializer(many=True, read_only=True)
    service_entries = ServiceEntrySerializer(many=True, read_only=True)

    class Meta(TransactionListSerializer.Meta):
        fields = TransactionListSerializer.Meta.fields + [
            "created_by", "confirmed_by", "cancelled_by",
            "items", "cash_entries", "dividend_entries", "salary_entries", "service_entries",
        ]
