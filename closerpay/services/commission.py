from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any

from ..models import CommissionType
from ..utils import to_decimal

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def calculate_commission(amount: Any, commission_type: Any, commission_value: Any) -> Decimal:
    """
    Commission earned on one payment.

    percentage: amount * value / 100; any other type is a flat fee of value,
    whatever the amount. Unparseable amounts or configuration values count as
    zero, so the result is always a finite Decimal rounded to cents.
    """
    value = to_decimal(commission_value) or Decimal("0")
    with localcontext() as ctx:
        ctx.prec = 60
        try:
            if commission_type != CommissionType.PERCENTAGE.value:
                return value.quantize(CENTS, rounding=ROUND_HALF_UP)
            base = to_decimal(amount) or Decimal("0")
            return (base * value / Decimal(100)).quantize(CENTS, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            return ZERO
