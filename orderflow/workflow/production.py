"""
orderflow/workflow/production.py

Production sub-steps.

Each production item carries its own ordered sequence of substages (chosen when it enters
production). Completing a substage moves to the next one; completing the last one marks the
item ready for dispatch.

Functions here mutate the item in memory only; services commit and record the timeline.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..constants import PRODUCTION_SUBSTAGES, ItemStatus, Stage, SubstageStatus
from ..errors import InvalidTransition, ValidationError


@dataclass
class SubstageOutcome:
    completed: str
    next_substage: Optional[str]
    ready_for_dispatch: bool


def validate_sequence(sequence, catalogue: Iterable[str] = PRODUCTION_SUBSTAGES) -> List[str]:
    """Normalized, non-empty sequence of known, non-repeating substages."""
    if not isinstance(sequence, (list, tuple)):
        raise ValidationError("Production sequence must be a list of stages")

    cleaned = [str(s).strip().lower().replace(" ", "_") for s in sequence if str(s).strip()]
    if not cleaned:
        raise ValidationError("Select at least one production stage")

    catalogue = tuple(catalogue)
    unknown = [s for s in cleaned if s not in catalogue]
    if unknown:
        raise ValidationError(f"Unknown production stage(s): {', '.join(unknown)}")

    if len(set(cleaned)) != len(cleaned):
        raise ValidationError("Production stages must not repeat")

    return cleaned


def item_sequence(item, catalogue: Iterable[str] = PRODUCTION_SUBSTAGES) -> List[str]:
    """The item's own sequence, or the full catalogue for items set up without one."""
    return list(item.production_stage_sequence or catalogue)


def _require_production(item) -> None:
    if item.current_stage != Stage.PRODUCTION:
        raise InvalidTransition(f"Item is not in production (stage {item.current_stage})")


def apply_sequence(item, sequence: List[str]) -> None:
    """Production setup: store the sequence and queue its first substage."""
    item.production_stage_sequence = list(sequence)
    item.current_substage = sequence[0]
    item.substage_status = SubstageStatus.PENDING
    item.is_ready_for_production = True


def set_sequence(item, sequence, catalogue: Iterable[str] = PRODUCTION_SUBSTAGES) -> List[str]:
    """Replace the sequence of an item already in production."""
    _require_production(item)
    cleaned = validate_sequence(sequence, catalogue)
    item.production_stage_sequence = cleaned
    if item.current_substage not in cleaned:
        item.current_substage = cleaned[0]
        item.substage_status = SubstageStatus.PENDING
    item.is_ready_for_production = True
    return cleaned


def start_substage(item, substage: str | None = None, catalogue: Iterable[str] = PRODUCTION_SUBSTAGES) -> str:
    _require_production(item)
    sequence = item_sequence(item, catalogue)
    target = str(substage or item.current_substage or sequence[0]).strip().lower()

    if target not in sequence:
        raise ValidationError(f"{target} is not part of this item's production sequence")
    if item.current_substage == target and item.substage_status == SubstageStatus.IN_PROGRESS:
        raise InvalidTransition(f"{target} is already in progress")

    item.current_substage = target
    item.substage_status = SubstageStatus.IN_PROGRESS
    return target


def complete_substage(item, catalogue: Iterable[str] = PRODUCTION_SUBSTAGES) -> SubstageOutcome:
    """
    Finish the current substage.

    Last substage -> status ready_for_dispatch (no separate status change needed).
    Otherwise     -> current_substage advances to the next entry, pending.
    """
    _require_production(item)
    if item.current_status == ItemStatus.READY_FOR_DISPATCH and item.substage_status == SubstageStatus.COMPLETED:
        raise InvalidTransition("Production is already complete for this item")

    sequence = item_sequence(item, catalogue)
    current = item.current_substage or sequence[0]
    if current not in sequence:
        raise ValidationError(f"{current} is not part of this item's production sequence")

    index = sequence.index(current)
    if index == len(sequence) - 1:
        item.current_substage = current
        item.substage_status = SubstageStatus.COMPLETED
        item.current_status = ItemStatus.READY_FOR_DISPATCH
        return SubstageOutcome(completed=current, next_substage=None, ready_for_dispatch=True)

    following = sequence[index + 1]
    item.current_substage = following
    item.substage_status = SubstageStatus.PENDING
    return SubstageOutcome(completed=current, next_substage=following, ready_for_dispatch=False)
