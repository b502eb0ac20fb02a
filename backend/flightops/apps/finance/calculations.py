"""
Invoice calculations.

All money is Decimal, rounded to cents half away from zero after every
single arithmetic step. Rounding only at the end lets a long invoice drift a
cent away from the sum of its printed line totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Union

from flightops.errors import InvalidPrice, InvalidQuantity, InvalidTaxRate

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, float, str]


def _to_decimal(value: Number, error_cls, field: str) -> Decimal:
    if isinstance(value, bool):
        raise error_cls.for_field(field, f"{field} must be a number")
    try:
        # str() first so floats keep their shortest repr instead of binary noise.
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise error_cls.for_field(field, f"{field} must be a number")
    if not result.is_finite():
        raise error_cls.for_field(field, f"{field} must be finite")
    return result


def round_money(value: Number) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ItemAmounts:
    amount: Decimal
    tax_amount: Decimal
    rate_inclusive: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax_total: Decimal
    total_amount: Decimal


def calculate_item_amounts(quantity: Number, unit_price: Number, tax_rate: Number = 0) -> ItemAmounts:
    """
    Amounts for one line item from its tax-exclusive unit price.

        rate_inclusive = round(unit_price * (1 + tax_rate))
        amount         = round(quantity * unit_price)
        tax_amount     = round(amount * tax_rate)
        line_total     = round(amount + tax_amount)
    """
    qty = _to_decimal(quantity, InvalidQuantity, "quantity")
    price = _to_decimal(unit_price, InvalidPrice, "unit_price")
    rate = _to_decimal(0 if tax_rate is None else tax_rate, InvalidTaxRate, "tax_rate")

    if qty <= 0:
        raise InvalidQuantity.for_field("quantity", "quantity must be positive")
    if price < 0:
        raise InvalidPrice.for_field("unit_price", "unit price cannot be negative")
    if rate < 0 or rate > 1:
        raise InvalidTaxRate.for_field("tax_rate", "tax rate must be between 0 and 1")

    rate_inclusive = round_money(price * (1 + rate))
    amount = round_money(qty * price)
    tax_amount = round_money(amount * rate)
    line_total = round_money(amount + tax_amount)
    return ItemAmounts(
        amount=amount,
        tax_amount=tax_amount,
        rate_inclusive=rate_inclusive,
        line_total=line_total,
    )


def _get_value(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def calculate_invoice_totals(items: Iterable[Any]) -> InvoiceTotals:
    """
    Subtotal, tax total and grand total over the items that are not soft
    deleted. Stored `amount` / `tax_amount` win; missing ones are derived from
    quantity, unit_price and tax_rate.
    """
    subtotal = ZERO
    tax_total = ZERO
    for item in items:
        if _get_value(item, "deleted_at") is not None:
            continue
        amount = _get_value(item, "amount")
        if amount is None:
            amount = round_money(
                _to_decimal(_get_value(item, "quantity"), InvalidQuantity, "quantity")
                * _to_decimal(_get_value(item, "unit_price"), InvalidPrice, "unit_price")
            )
        tax_amount = _get_value(item, "tax_amount")
        if tax_amount is None:
            rate = _get_value(item, "tax_rate") or 0
            tax_amount = round_money(Decimal(str(amount)) * _to_decimal(rate, InvalidTaxRate, "tax_rate"))

        subtotal = round_money(subtotal + Decimal(str(amount)))
        tax_total = round_money(tax_total + Decimal(str(tax_amount)))

    return InvoiceTotals(
        subtotal=subtotal,
        tax_total=tax_total,
        total_amount=round_money(subtotal + tax_total),
    )


def recalculate_invoice_item(item: Any) -> Any:
    """Write freshly computed derived amounts onto an item (ORM row or dict) and return it."""
    amounts = calculate_item_amounts(
        _get_value(item, "quantity"),
        _get_value(item, "unit_price"),
        _get_value(item, "tax_rate") or 0,
    )
    values = {
        "amount": amounts.amount,
        "tax_amount": amounts.tax_amount,
        "rate_inclusive": amounts.rate_inclusive,
        "line_total": amounts.line_total,
    }
    if isinstance(item, dict):
        item.update(values)
    else:
        for key, value in values.items():
            setattr(item, key, value)
    return item
