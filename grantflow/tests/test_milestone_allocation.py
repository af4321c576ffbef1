"""
Tests for the milestone percentage ceiling and price computation
"""
from types import SimpleNamespace

import pytest

from grantflow.core.errors import InvariantViolationError, NotFoundError
from grantflow.services.milestone_allocation import (
    compute_milestone_price,
    validate_and_price,
    validate_percentages,
)


def _milestones(*percentages):
    return [SimpleNamespace(id=i + 1, percentage=p) for i, p in enumerate(percentages)]


class TestValidateAndPrice:
    def test_update_exceeding_hundred_is_rejected(self):
        milestones = _milestones("40", "30", None)
        with pytest.raises(InvariantViolationError, match="110"):
            validate_and_price(milestones, 3, "40", "5000")

    def test_update_within_ceiling_is_priced(self):
        milestones = _milestones("40", "30", None)
        allocation = validate_and_price(milestones, 3, "30", "5000")
        assert allocation.ok
        assert str(allocation.computed_price) == "1500"
        assert str(allocation.total_percentage) == "100"

    def test_replaces_current_percentage_of_changed_milestone(self):
        milestones = _milestones("60", "40")
        allocation = validate_and_price(milestones, 1, "50", "1000")
        assert str(allocation.total_percentage) == "90"
        assert str(allocation.computed_price) == "500"

    def test_fractional_percentages_are_exact(self):
        milestones = _milestones("33.33", "33.33", "0")
        allocation = validate_and_price(milestones, 3, "33.34", "999")
        assert str(allocation.total_percentage) == "100"
        assert str(allocation.computed_price) == "333.0666"

    def test_unknown_milestone(self):
        with pytest.raises(NotFoundError):
            validate_and_price(_milestones("10"), 99, "10", "1000")

    def test_percentage_is_required(self):
        with pytest.raises(InvariantViolationError):
            validate_and_price(_milestones("10"), 1, None, "1000")

    @pytest.mark.parametrize("percentage", ["-1", "100.01", "abc"])
    def test_out_of_range_percentage(self, percentage):
        with pytest.raises(InvariantViolationError):
            validate_and_price(_milestones("10"), 1, percentage, "1000")


class TestValidatePercentages:
    def test_missing_percentages_count_as_zero(self):
        assert str(validate_percentages([None, "", "25"])) == "25"

    def test_sum_below_hundred_is_allowed(self):
        assert str(validate_percentages(["10", "20"])) == "30"

    def test_sum_above_hundred(self):
        with pytest.raises(InvariantViolationError):
            validate_percentages(["50", "50", "0.5"])


def test_price_with_missing_application_price():
    assert str(compute_milestone_price(None, "50")) == "0"
