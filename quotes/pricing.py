# quotes/pricing.py
"""
Quotation pricing

Totals are derived from the quotation lines every time they are read and are
never stored. All arithmetic is Decimal; rounding is only applied for display
through round_currency().
"""

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

ZERO = Decimal('0.00')
HUNDRED = Decimal('100')
SECONDS_PER_DAY = 86400


def _decimal(value):
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _ceil_days(delta):
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


@dataclass(frozen=True)
class QuotationTotals:
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    is_expired: bool
    days_until_expiry: Optional[int]
    response_time_days: Optional[int]

    def as_dict(self):
        calculator = PricingCalculator()
        return {
            'subtotal': calculator.round_currency(self.subtotal),
            'tax_amount': calculator.round_currency(self.tax_amount),
            'total_amount': calculator.round_currency(self.total_amount),
            'is_expired': self.is_expired,
            'days_until_expiry': self.days_until_expiry,
            'response_time_days': self.response_time_days,
        }


class PricingCalculator:
    """Stateless pricing and validity calculations for quotations"""

    def line_total(self, line):
        """unit_price less the line discount, times quantity"""
        discount = _decimal(line.discount_percent) / HUNDRED
        return _decimal(line.unit_price) * (1 - discount) * _decimal(line.quantity)

    def subtotal(self, lines):
        return sum((self.line_total(line) for line in lines), ZERO)

    def tax_amount(self, subtotal, tax_rate):
        return _decimal(subtotal) * _decimal(tax_rate) / HUNDRED

    def total_amount(self, subtotal, tax_amount, shipping_cost):
        return _decimal(subtotal) + _decimal(tax_amount) + _decimal(shipping_cost)

    def is_expired(self, quotation, now):
        if not quotation.valid_until:
            return False
        return quotation.valid_until < now and quotation.status in ('sent', 'expired')

    def days_until_expiry(self, quotation, now):
        if not quotation.valid_until:
            return None
        return _ceil_days(quotation.valid_until - now)

    def response_time_days(self, quotation):
        """Days between sending and the customer's answer"""
        responded_at = quotation.accepted_at or quotation.declined_at
        if not quotation.sent_at or not responded_at:
            return None
        return _ceil_days(responded_at - quotation.sent_at)

    def summarize(self, quotation, now, lines=None):
        if lines is None:
            lines = quotation.items.all()
        subtotal = self.subtotal(lines)
        tax_amount = self.tax_amount(subtotal, quotation.tax_rate)
        return QuotationTotals(
            subtotal=subtotal,
            tax_amount=tax_amount,
            total_amount=self.total_amount(subtotal, tax_amount, quotation.shipping_cost),
            is_expired=self.is_expired(quotation, now),
            days_until_expiry=self.days_until_expiry(quotation, now),
            response_time_days=self.response_time_days(quotation),
        )

    def round_currency(self, amount):
        """Round currency to 2 decimal places"""
        if amount is None:
            return ZERO
        return Decimal(str(amount)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
