# crm_billing/services/billing_calculator.py

from decimal import Decimal
from typing import Iterable, List

from crm_billing.models.billing import CountType, CalculatedBase
from crm_billing.schemas.proforma_schema import CalculatedItem, BillingTotals

ZERO = Decimal("0")


def resolve_quantity(item, active_projects: int, active_users: int) -> Decimal:
    """
    Return the billed quantity for an item given the company's live counts.

    MANUAL uses the stored quantity (0 when unset). CALCULATED subtracts the
    configured offset from the chosen base and never goes below zero.
    """
    count_type = CountType(item.count_type)

    if count_type == CountType.ACTIVE_PROJECTS:
        return Decimal(active_projects)
    if count_type == CountType.ACTIVE_USERS:
        return Decimal(active_users)
    if count_type == CountType.CALCULATED:
        base = active_users if item.calculated_base == CalculatedBase.USERS else active_projects
        subtract = item.calculated_subtract or 0
        return Decimal(max(0, base - subtract))

    manual = item.manual_quantity
    if manual is None:
        return ZERO
    return max(ZERO, Decimal(manual))


def calculate_items(items: Iterable, active_projects: int, active_users: int) -> List[CalculatedItem]:
    calculated = []
    for item in items:
        quantity = resolve_quantity(item, active_projects, active_users)
        price = Decimal(item.price)
        calculated.append(CalculatedItem(
            id=item.id,
            admcloud_item_id=item.admcloud_item_id,
            code=item.code,
            description=item.description,
            price=price,
            count_type=item.count_type,
            manual_quantity=item.manual_quantity,
            calculated_base=item.calculated_base,
            calculated_subtract=item.calculated_subtract,
            calculated_quantity=quantity,
            subtotal=quantity * price,
        ))
    return calculated


def calculate_totals(items: Iterable[CalculatedItem]) -> BillingTotals:
    # Tax is not computed for subscription proformas; it is always zero.
    subtotal = sum((item.subtotal for item in items), ZERO)
    tax_amount = ZERO
    return BillingTotals(
        subtotal=subtotal,
        discount=ZERO,
        tax_amount=tax_amount,
        total=subtotal + tax_amount,
    )
