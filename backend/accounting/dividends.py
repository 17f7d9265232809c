# accounting/dividends.py
"""
Dividend distribution preview.

Splits an amount among the active partners by share percentage, rounded
to the currency's minor unit. The rounding remainder goes to the last
partner (ordered by id) so the shares always add up to the amount.
Nothing is written; the result prefills a dividend accrual form.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List

from references.models import Currency, Partner

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class DividendShare:
    partner_id: int
    partner_name: str
    share_percentage: Decimal
    amount: Decimal

    def to_dict(self) -> dict:
        return {
            "partner_id": self.partner_id,
            "partner_name": self.partner_name,
            "share_percentage": str(self.share_percentage),
            "amount": str(self.amount),
        }


def calculate_distribution(amount: Decimal, currency: Currency) -> List[DividendShare]:
    minor = currency.minor_unit
    amount = Decimal(amount).quantize(minor, rounding=ROUND_HALF_UP)
    partners = list(Partner.objects.active().order_by("id"))

    shares = [
        DividendShare(
            partner_id=p.pk,
            partner_name=p.name,
            share_percentage=p.share_percentage,
            amount=(amount * p.share_percentage / HUNDRED).quantize(minor, rounding=ROUND_HALF_UP),
        )
        for p in partners
    ]
    if not shares:
        return shares

    remainder = amount - sum((s.amount for s in shares), Decimal("0"))
    if remainder:
        last = shares[-1]
        shares[-1] = DividendShare(
            partner_id=last.partner_id,
            partner_name=last.partner_name,
            share_percentage=last.share_percentage,
            amount=last.amount + remainder,
        )
    return shares
