from types import SimpleNamespace

import pytest

from orderflow.constants import ItemStatus, Stage, SubstageStatus
from orderflow.errors import InvalidTransition, ValidationError
from orderflow.workflow import production


def production_item(sequence=None):
    item = SimpleNamespace(
        current_stage=Stage.PRODUCTION,
        current_status=ItemStatus.PRODUCTION_IN_PROGRESS,
        production_stage_sequence=None,
        current_substage=None,
        substage_status=None,
        is_ready_for_production=False,
    )
    if sequence:
        production.apply_sequence(item, sequence)
    return item


def test_validate_sequence_rules():
    assert production.validate_sequence([" Printing", "CUTTING"]) == ["printing", "cutting"]
    with pytest.raises(ValidationError):
        production.validate_sequence([])
    with pytest.raises(ValidationError):
        production.validate_sequence(["printing", "printing"])
    with pytest.raises(ValidationError):
        production.validate_sequence(["laminating"])
    with pytest.raises(ValidationError):
        production.validate_sequence("printing")


def test_custom_catalogue():
    assert production.validate_sequence(["laminating"], ["laminating", "printing"]) == ["laminating"]


def test_apply_sequence_queues_first_substage():
    item = production_item(["printing", "cutting"])
    assert item.current_substage == "printing"
    assert item.substage_status == SubstageStatus.PENDING
    assert item.is_ready_for_production


def test_walk_through_sequence_to_ready_for_dispatch():
    item = production_item(["printing", "cutting"])

    assert production.start_substage(item) == "printing"
    with pytest.raises(InvalidTransition):
        production.start_substage(item)

    outcome = production.complete_substage(item)
    assert (outcome.completed, outcome.next_substage, outcome.ready_for_dispatch) == ("printing", "cutting", False)
    assert item.current_status == ItemStatus.PRODUCTION_IN_PROGRESS

    outcome = production.complete_substage(item)
    assert outcome.ready_for_dispatch and outcome.next_substage is None
    assert item.current_status == ItemStatus.READY_FOR_DISPATCH
    assert item.substage_status == SubstageStatus.COMPLETED

    with pytest.raises(InvalidTransition):
        production.complete_substage(item)


def test_start_rejects_substage_outside_sequence():
    item = production_item(["printing"])
    with pytest.raises(ValidationError):
        production.start_substage(item, "embossing")


def test_item_without_sequence_uses_catalogue():
    item = production_item()
    assert production.start_substage(item) == "foiling"


def test_set_sequence_keeps_current_substage_when_still_listed():
    item = production_item(["printing", "cutting"])
    production.start_substage(item)
    production.set_sequence(item, ["foiling", "printing"])
    assert item.current_substage == "printing"
    assert item.substage_status == SubstageStatus.IN_PROGRESS

    production.set_sequence(item, ["packing"])
    assert item.current_substage == "packing"
    assert item.substage_status == SubstageStatus.PENDING


def test_substages_only_in_production():
    item = production_item(["printing"])
    item.current_stage = Stage.PREPRESS
    with pytest.raises(InvalidTransition):
        production.complete_substage(item)
