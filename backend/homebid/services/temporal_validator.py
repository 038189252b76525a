"""
Temporal validation for proposal and project schedules.

WHAT: Pure functions checking date ordering rules against "today" and
against each other.

WHY: A proposal's schedule must make sense at the moment it is
submitted: the deposit is not already overdue, work starts in the
future and ends after it starts, and the offer lapses no later than the
proposed start (otherwise a homeowner could accept an offer whose
timeline had already begun).

HOW: Every check runs against the single ``today`` passed in, and all
violations are collected in a fixed order so a client can show each one
next to its field. No I/O, no clock access.
"""

from dataclasses import dataclass, asdict
from datetime import date
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class RuleViolation:
    """
    One failed business rule.

    Attributes:
        field: Field the violation is reported against
        rule: Stable machine-readable rule id
        message: Human-readable explanation
    """

    field: str
    rule: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProposalSchedule:
    """The date fields of a proposal that temporal rules inspect."""

    deposit_due_on: date
    proposed_start_date: date
    proposed_end_date: date
    expiry_date: date


def validate_schedule(schedule: ProposalSchedule, today: date) -> List[RuleViolation]:
    """
    Validate a proposal schedule.

    Checks, in order:
    1. deposit_due_on >= today
    2. proposed_start_date >= today
    3. proposed_end_date > proposed_start_date
    4. expiry_date >= today
    5. expiry_date <= proposed_start_date

    Args:
        schedule: Dates to check
        today: Snapshot of the current date

    Returns:
        Violations in check order; empty when the schedule is valid
    """
    violations: List[RuleViolation] = []

    if schedule.deposit_due_on < today:
        violations.append(
            RuleViolation(
                field="deposit_due_on",
                rule="deposit_due_not_in_past",
                message="Deposit due date cannot be in the past",
            )
        )

    if schedule.proposed_start_date < today:
        violations.append(
            RuleViolation(
                field="proposed_start_date",
                rule="start_not_in_past",
                message="Proposed start date cannot be in the past",
            )
        )

    if schedule.proposed_end_date <= schedule.proposed_start_date:
        violations.append(
            RuleViolation(
                field="proposed_end_date",
                rule="end_after_start",
                message="Proposed end date must be after the proposed start date",
            )
        )

    if schedule.expiry_date < today:
        violations.append(
            RuleViolation(
                field="expiry_date",
                rule="expiry_not_in_past",
                message="Expiry date cannot be in the past",
            )
        )

    if schedule.expiry_date > schedule.proposed_start_date:
        violations.append(
            RuleViolation(
                field="expiry_date",
                rule="expiry_on_or_before_start",
                message="Proposal must expire on or before the proposed start date",
            )
        )

    return violations


def validate_project_dates(
    expiry_date: date,
    decision_date: date,
    today: Optional[date] = None,
) -> List[RuleViolation]:
    """
    Validate a project's bidding window.

    Args:
        expiry_date: Last date proposals are accepted
        decision_date: Date the homeowner intends to decide
        today: When given, expiry_date must not be in the past

    Returns:
        Violations in check order
    """
    violations: List[RuleViolation] = []

    if today is not None and expiry_date < today:
        violations.append(
            RuleViolation(
                field="expiry_date",
                rule="expiry_not_in_past",
                message="Project expiry date cannot be in the past",
            )
        )

    if decision_date <= expiry_date:
        violations.append(
            RuleViolation(
                field="decision_date",
                rule="decision_after_expiry",
                message="Decision date must be after the project expiry date",
            )
        )

    return violations
