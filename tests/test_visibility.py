from datetime import date, timedelta

from orderflow.dashboard import (
    department_counts,
    filter_orders,
    order_priority,
    paginate,
    priority_counts,
    sort_orders,
    urgent_orders,
)
from orderflow.visibility import assigned_to_me, completed_orders, order_visible_to, visible_orders


def _date(days):
    return (date.today() + timedelta(days=days)).isoformat()


def item(stage, department=None, substage=None, assigned_to_id=None, days=10, completed=False):
    return {
        "current_stage": stage,
        "assigned_department": department,
        "current_substage": substage,
        "assigned_to_id": assigned_to_id,
        "delivery_date": _date(days),
        "is_completed": completed,
        "product_name": "Card",
    }


def order(number, *items, completed=False, archived=False):
    return {
        "order_number": number,
        "customer_name": f"Customer {number}",
        "delivery_date": _date(10),
        "created_at": f"2024-01-{int(number) % 28 + 1:02d}T00:00:00",
        "is_completed": completed,
        "is_archived": archived,
        "items": list(items),
    }


ADMIN = {"id": 1, "role": "admin"}
SALES = {"id": 2, "role": "sales"}
DESIGNER = {"id": 3, "role": "design"}
PRINTER = {"id": 4, "role": "production", "production_stage": "printing"}
PRODUCTION = {"id": 5, "role": "production"}

ORDERS = [
    order("1", item("design", "design", assigned_to_id=3)),
    order("2", item("prepress", "prepress", days=1)),
    order("3", item("production", "production", substage="printing", days=4)),
    order("4", item("production", "production", substage="cutting")),
    # Legacy row: no assigned_department
    order("5", item("design", None)),
    order("6", item("completed", "production", completed=True), completed=True),
    order("7", item("design", "design"), archived=True),
]


def numbers(rows):
    return sorted(o["order_number"] for o in rows)


def test_admin_and_sales_see_every_active_order():
    assert numbers(visible_orders(ORDERS, ADMIN)) == ["1", "2", "3", "4", "5"]
    assert numbers(visible_orders(ORDERS, SALES)) == ["1", "2", "3", "4", "5"]


def test_department_sees_own_items_including_legacy_rows():
    assert numbers(visible_orders(ORDERS, DESIGNER)) == ["1", "5"]


def test_production_specialty_narrows_to_substage():
    assert numbers(visible_orders(ORDERS, PRINTER)) == ["3"]
    assert numbers(visible_orders(ORDERS, PRODUCTION)) == ["3", "4"]


def test_assignment_does_not_narrow_department_view():
    mine = assigned_to_me(visible_orders(ORDERS, DESIGNER), DESIGNER)
    assert numbers(mine) == ["1"]


def test_completed_view():
    assert numbers(completed_orders(ORDERS, ADMIN)) == ["6"]
    assert numbers(completed_orders(ORDERS, PRODUCTION)) == ["6"]
    assert completed_orders(ORDERS, DESIGNER) == []


def test_order_visible_to():
    assert order_visible_to(ORDERS[0], DESIGNER)
    assert not order_visible_to(ORDERS[1], DESIGNER)
    assert order_visible_to(ORDERS[5], PRODUCTION)


def test_filters_and_search():
    active = visible_orders(ORDERS, ADMIN)
    assert numbers(filter_orders(active, stage="production")) == ["3", "4"]
    assert numbers(filter_orders(active, department="design")) == ["1", "5"]
    assert numbers(filter_orders(active, priority="high")) == ["2"]
    assert numbers(filter_orders(active, search="customer 3")) == ["3"]


def test_priority_sort_puts_urgent_first():
    active = visible_orders(ORDERS, ADMIN)
    ordered = [o["order_number"] for o in sort_orders(active)]
    assert ordered[:2] == ["2", "3"]
    assert order_priority(ORDERS[1]) == "high"


def test_counts_and_urgent():
    active = visible_orders(ORDERS, ADMIN)
    counts = department_counts(ORDERS)
    assert counts["design"] == 3
    assert counts["completed"] == 1
    assert priority_counts(active) == {"low": 3, "medium": 1, "high": 1}
    assert numbers(urgent_orders(active)) == ["2"]


def test_paginate_clamps():
    page = paginate(list(range(45)), page=9, per_page=20)
    assert page["page"] == 3
    assert page["items"] == list(range(40, 45))
    assert page["pages"] == 3
