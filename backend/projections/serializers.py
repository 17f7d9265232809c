# projections/serializers.py
"""
Query-string parsing for the balance endpoints.

Ids, dates and flags are type-checked here so a malformed filter comes
back as a 400 instead of reaching the ORM.
"""

from rest_framework import serializers

MAX_MOVEMENTS = 1000


class BalanceQuerySerializer(serializers.Serializer):
    cash_register_id = serializers.IntegerField(required=False, min_value=1)
    warehouse_id = serializers.IntegerField(required=False, min_value=1)
    product_id = serializers.IntegerField(required=False, min_value=1)
    counterparty_id = serializers.IntegerField(required=False, min_value=1)
    partner_id = serializers.IntegerField(required=False, min_value=1)
    user_id = serializers.IntegerField(required=False, min_value=1)
    currency_id = serializers.IntegerField(required=False, min_value=1)

    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)

    group_by = serializers.ChoiceField(choices=["warehouse", "product"], required=False, default="warehouse")
    include_empty = serializers.BooleanField(required=False, default=False)
    debtors_only = serializers.BooleanField(required=False, default=False)
    creditors_only = serializers.BooleanField(required=False, default=False)

    limit = serializers.IntegerField(required=False, min_value=1, default=200)

    def validate_limit(self, value):
        return min(value, MAX_MOVEMENTS)

    def validate(self, attrs):
        date_from, date_to = attrs.get("date_from"), attrs.get("date_to")
        if date_from and date_to and date_from > date_to:
            raise serializers.ValidationError({"date_to": ["Must not be before date_from."]})
        return attrs
