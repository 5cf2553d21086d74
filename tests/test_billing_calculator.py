from decimal import Decimal
from types import SimpleNamespace

import pytest

from crm_billing.models.billing import CalculatedBase, CountType
from crm_billing.services.billing_calculator import calculate_items, calculate_totals, resolve_quantity


def item(count_type, price="10.00", **fields):
    values = {
        "id": fields.pop("id", "item-1"),
        "admcloud_item_id": "ADM-1",
        "code": "SUB",
        "description": "Suscripción",
        "price": Decimal(price),
        "count_type": count_type,
        "manual_quantity": None,
        "calculated_base": None,
        "calculated_subtract": None,
    }
    values.update(fields)
    return SimpleNamespace(**values)


class TestResolveQuantity:

    def test_manual_uses_stored_quantity(self):
        assert resolve_quantity(item(CountType.MANUAL, manual_quantity=Decimal("3")), 7, 9) == Decimal("3")

    def test_manual_without_quantity_is_zero(self):
        assert resolve_quantity(item(CountType.MANUAL), 7, 9) == Decimal("0")

    def test_active_counts(self):
        assert resolve_quantity(item(CountType.ACTIVE_PROJECTS), 4, 11) == Decimal("4")
        assert resolve_quantity(item(CountType.ACTIVE_USERS), 4, 11) == Decimal("11")

    def test_calculated_subtracts_from_base(self):
        users = item(CountType.CALCULATED, calculated_base=CalculatedBase.USERS, calculated_subtract=2)
        projects = item(CountType.CALCULATED, calculated_base=CalculatedBase.PROJECTS, calculated_subtract=1)
        assert resolve_quantity(users, 10, 5) == Decimal("3")
        assert resolve_quantity(projects, 10, 5) == Decimal("9")

    def test_string_count_types_are_accepted(self):
        assert resolve_quantity(item("ACTIVE_USERS"), 1, 6) == Decimal("6")

    @pytest.mark.parametrize("projects,users,subtract", [(0, 0, 5), (1, 2, 3), (0, 4, 10)])
    def test_never_negative(self, projects, users, subtract):
        for count_type in CountType:
            for base in CalculatedBase:
                candidate = item(
                    count_type,
                    manual_quantity=Decimal("-2"),
                    calculated_base=base,
                    calculated_subtract=subtract,
                )
                assert resolve_quantity(candidate, projects, users) >= 0


class TestTotals:

    def test_projects_and_calculated_users_scenario(self):
        items = [
            item(CountType.ACTIVE_PROJECTS, price="10.00", id="a"),
            item(CountType.CALCULATED, price="20.00", id="b",
                 calculated_base=CalculatedBase.USERS, calculated_subtract=2),
        ]
        calculated = calculate_items(items, active_projects=3, active_users=5)

        assert [c.calculated_quantity for c in calculated] == [Decimal("3"), Decimal("3")]
        assert [c.subtotal for c in calculated] == [Decimal("30.00"), Decimal("60.00")]
        assert calculate_totals(calculated).subtotal == Decimal("90.00")

    def test_total_is_subtotal_plus_zero_tax(self):
        items = [
            item(CountType.MANUAL, price="1500.50", manual_quantity=Decimal("2"), id="a"),
            item(CountType.ACTIVE_USERS, price="12.25", id="b"),
        ]
        totals = calculate_totals(calculate_items(items, 0, 4))

        assert totals.tax_amount == Decimal("0")
        assert totals.total == totals.subtotal + totals.tax_amount
        assert totals.total == Decimal("3050.00")

    def test_empty_item_set(self):
        totals = calculate_totals([])
        assert totals.subtotal == Decimal("0")
        assert totals.total == Decimal("0")

    def test_input_order_is_preserved(self):
        items = [item(CountType.MANUAL, id=str(i), manual_quantity=Decimal(i)) for i in range(5)]
        assert [c.id for c in calculate_items(items, 0, 0)] == ["0", "1", "2", "3", "4"]
