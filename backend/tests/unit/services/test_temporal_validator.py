"""
Tests for temporal validation.

WHY: Date rules are evaluated against a single "today"; each check is
exercised on its boundary, and the order violations are reported in is
fixed so clients can rely on it.
"""

from datetime import date

from homebid.services.temporal_validator import (
    ProposalSchedule,
    validate_project_dates,
    validate_schedule,
)


TODAY = date(2025, 1, 1)


def schedule(**overrides) -> ProposalSchedule:
    values = {
        "deposit_due_on": date(2025, 1, 5),
        "proposed_start_date": date(2025, 1, 10),
        "proposed_end_date": date(2025, 2, 10),
        "expiry_date": date(2025, 1, 8),
    }
    values.update(overrides)
    return ProposalSchedule(**values)


def rules(violations) -> list:
    return [v.rule for v in violations]


class TestValidateSchedule:
    def test_valid_schedule(self):
        assert validate_schedule(schedule(), TODAY) == []

    def test_today_is_allowed_everywhere(self):
        """Dates equal to today pass the not-in-past checks."""
        result = validate_schedule(
            schedule(deposit_due_on=TODAY, proposed_start_date=TODAY, expiry_date=TODAY),
            TODAY,
        )
        assert result == []

    def test_deposit_due_in_past(self):
        result = validate_schedule(schedule(deposit_due_on=date(2024, 12, 31)), TODAY)
        assert rules(result) == ["deposit_due_not_in_past"]
        assert result[0].field == "deposit_due_on"

    def test_start_in_past(self):
        result = validate_schedule(
            schedule(proposed_start_date=date(2024, 12, 31), expiry_date=date(2024, 12, 31)),
            TODAY,
        )
        assert rules(result) == ["start_not_in_past", "expiry_not_in_past"]

    def test_end_must_be_after_start(self):
        result = validate_schedule(schedule(proposed_end_date=date(2025, 1, 10)), TODAY)
        assert rules(result) == ["end_after_start"]

    def test_expiry_after_start(self):
        """
        Test an offer that would still be open after work starts.

        WHY: Start 2025-01-10 with expiry 2025-01-15 is the documented
        failing case.
        """
        result = validate_schedule(schedule(expiry_date=date(2025, 1, 15)), TODAY)
        assert rules(result) == ["expiry_on_or_before_start"]
        assert result[0].field == "expiry_date"

    def test_expiry_on_start_day_allowed(self):
        assert validate_schedule(schedule(expiry_date=date(2025, 1, 10)), TODAY) == []

    def test_violations_collected_in_order(self):
        result = validate_schedule(
            ProposalSchedule(
                deposit_due_on=date(2024, 12, 1),
                proposed_start_date=date(2024, 12, 20),
                proposed_end_date=date(2024, 12, 10),
                expiry_date=date(2024, 12, 25),
            ),
            TODAY,
        )
        assert rules(result) == [
            "deposit_due_not_in_past",
            "start_not_in_past",
            "end_after_start",
            "expiry_not_in_past",
            "expiry_on_or_before_start",
        ]

    def test_to_dict(self):
        violation = validate_schedule(schedule(expiry_date=date(2025, 1, 15)), TODAY)[0]
        assert violation.to_dict() == {
            "field": "expiry_date",
            "rule": "expiry_on_or_before_start",
            "message": "Proposal must expire on or before the proposed start date",
        }


class TestValidateProjectDates:
    def test_valid(self):
        assert validate_project_dates(date(2025, 1, 10), date(2025, 1, 11), TODAY) == []

    def test_decision_must_follow_expiry(self):
        result = validate_project_dates(date(2025, 1, 10), date(2025, 1, 10))
        assert rules(result) == ["decision_after_expiry"]

    def test_past_expiry_only_checked_with_today(self):
        assert validate_project_dates(date(2024, 12, 1), date(2024, 12, 5)) == []
        result = validate_project_dates(date(2024, 12, 1), date(2024, 12, 5), TODAY)
        assert rules(result) == ["expiry_not_in_past"]
