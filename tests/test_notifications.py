from types import SimpleNamespace

from orderflow.constants import Stage
from orderflow.notifications import escalation_recipients, stage_change_recipients


def user(id_, role, department=None, active=True):
    return SimpleNamespace(id=id_, role=role, work_department=department or role, is_active=active)


USERS = [
    user(1, "admin", department="admin"),
    user(2, "admin", department="admin"),
    user(3, "sales"),
    user(4, "design"),
    user(5, "prepress"),
    user(6, "production"),
    user(7, "production", active=False),
    # Admin-appointed outsource coordinator
    user(8, "sales", department="outsource"),
]


def test_stage_change_goes_to_admins_and_owning_department():
    assert stage_change_recipients(USERS, Stage.PREPRESS) == [1, 2, 5]


def test_actor_is_never_notified():
    assert stage_change_recipients(USERS, Stage.DESIGN, actor_id=1) == [2, 4]


def test_sales_joins_at_dispatch_and_completion():
    assert stage_change_recipients(USERS, Stage.COMPLETED) == [1, 2, 3, 6, 8]
    assert stage_change_recipients(USERS, Stage.DISPATCH, actor_id=6) == [1, 2, 3, 8]


def test_department_comes_from_work_department():
    assert stage_change_recipients(USERS, Stage.OUTSOURCE) == [1, 2, 8]


def test_escalation_recipients():
    assert escalation_recipients(USERS, "production") == [1, 2, 6]
    assert escalation_recipients(USERS, None) == [1, 2]
