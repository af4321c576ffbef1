"""Milestone percentage invariants.

Within one application the milestone percentages may never add up to more
than 100, and each milestone's price is ``application.price * percentage / 100``.
Milestones without a percentage count as 0.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from grantflow.core.errors import InvariantViolationError, NotFoundError
from grantflow.core.money import MoneyAmount

MAX_TOTAL_PERCENTAGE = MoneyAmount.parse(100)


@dataclass(frozen=True)
class MilestoneAllocation:
    ok: bool
    computed_price: MoneyAmount
    total_percentage: MoneyAmount


def parse_percentage(value) -> MoneyAmount:
    """Parse a single percentage and check it lies within [0, 100]."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return MoneyAmount.zero()
    percentage = MoneyAmount.parse(value, field="percentage")
    if percentage.is_negative() or percentage > MAX_TOTAL_PERCENTAGE:
        raise InvariantViolationError(f"Milestone percentage must be between 0 and 100, got {percentage}")
    return percentage


def validate_percentages(percentages: Iterable) -> MoneyAmount:
    """Return the total of ``percentages`` or raise if the set breaks the 100% ceiling."""
    total = MoneyAmount.sum(parse_percentage(p) for p in percentages)
    if total > MAX_TOTAL_PERCENTAGE:
        raise InvariantViolationError(
            f"Milestone percentages would add up to {total}%, which exceeds 100%"
        )
    return total


def compute_milestone_price(application_price, percentage) -> MoneyAmount:
    return MoneyAmount.parse(application_price or "0", field="application price").percent(parse_percentage(percentage))


def validate_and_price(
    existing_milestones: Sequence,
    changed_milestone_id: int,
    new_percentage,
    application_price,
) -> MilestoneAllocation:
    """
    Check the milestone set that would result from giving ``changed_milestone_id``
    the ``new_percentage``, and price the changed milestone.

    ``existing_milestones`` are objects exposing ``id`` and ``percentage``.
    """
    if not any(m.id == changed_milestone_id for m in existing_milestones):
        raise NotFoundError(f"Milestone {changed_milestone_id} does not belong to this application")

    if new_percentage is None:
        raise InvariantViolationError("Milestone percentage is required")
    new_value = parse_percentage(new_percentage)

    hypothetical = [
        new_value if m.id == changed_milestone_id else m.percentage
        for m in existing_milestones
    ]
    total = validate_percentages(hypothetical)

    return MilestoneAllocation(
        ok=True,
        computed_price=compute_milestone_price(application_price, new_value),
        total_percentage=total,
    )
