"""
Member pricing and card fee helpers.

The member price is a one-ticket discount: a verified member buying
several tickets pays the member fee for one of them and the regular fee
for the rest.  Card payments can be grossed up so the organization
receives the full price after the processor's percentage and fixed fee.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings

CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class MemberPricing:
    total_fee: Decimal
    has_member_discount: bool
    member_discount_applied: bool
    savings: Decimal
    member_fee_per_ticket: Decimal
    regular_fee_per_ticket: Decimal

    def as_dict(self) -> dict:
        return {
            "total_fee": str(self.total_fee),
            "has_member_discount": self.has_member_discount,
            "member_discount_applied": self.member_discount_applied,
            "savings": str(self.savings),
            "member_fee_per_ticket": str(self.member_fee_per_ticket),
            "regular_fee_per_ticket": str(self.regular_fee_per_ticket),
        }


def calculate_member_pricing(fee, member_fee, tickets: int, is_member_verified: bool) -> MemberPricing:
    regular = _money(fee)
    member = _money(member_fee) if member_fee is not None else regular
    has_discount = regular > 0 and member_fee is not None and member < regular
    applied = has_discount and is_member_verified
    if applied:
        total = member + (tickets - 1) * regular
    else:
        total = tickets * regular
    return MemberPricing(
        total_fee=_money(total),
        has_member_discount=has_discount,
        member_discount_applied=applied,
        savings=regular - member if has_discount else Decimal("0.00"),
        member_fee_per_ticket=member,
        regular_fee_per_ticket=regular,
    )


def event_pricing(event, tickets: int, is_member_verified: bool = False) -> MemberPricing:
    return calculate_member_pricing(event.fee, event.effective_member_fee, tickets, is_member_verified)


def calculate_total_with_card_fee(amount) -> Decimal:
    """Gross up `amount` so that amount == total - (total * rate + fixed)."""
    amount = _money(amount)
    if amount <= 0:
        return Decimal("0.00")
    rate = Decimal(str(settings.STRIPE_FEE_RATE))
    fixed = Decimal(str(settings.STRIPE_FEE_FIXED))
    return _money((amount + fixed) / (1 - rate))


def calculate_card_fee(amount) -> Decimal:
    amount = _money(amount)
    if amount <= 0:
        return Decimal("0.00")
    return calculate_total_with_card_fee(amount) - amount


def to_minor_units(amount) -> int:
    """Decimal dollars to integer cents, the unit Stripe expects."""
    return int((_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))
