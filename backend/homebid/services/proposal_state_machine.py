"""
Proposal state machine.

WHAT: The single authority on proposal statuses, the legal edges between
them, who may trigger each edge, and what each edge writes.

WHY: Every status write in the system goes through this module, so an
illegal change (a contractor accepting their own bid, anything leaving
a terminal state) cannot happen by accident in a route handler.

HOW:
- TRANSITIONS maps (from, to) to the actor kinds allowed to trigger it.
- check_transition() decides: no-op, allowed, or InvalidStateTransitionError.
- apply_transition() mutates the ORM object (status, timestamps,
  is_selected, rejection metadata) and never touches the database.
- actor_for() resolves a Principal to an actor kind by ownership, and
  raises AuthorizationError when the principal has no stake in the proposal.

Transition table:

    draft      -> submitted   contractor
    submitted  -> viewed      homeowner, system (first read)
    submitted  -> accepted    homeowner (via the acceptance coordinator)
    viewed     -> accepted    homeowner (via the acceptance coordinator)
    submitted  -> rejected    homeowner
    viewed     -> rejected    homeowner
    draft      -> withdrawn   contractor
    submitted  -> withdrawn   contractor
    submitted  -> expired     system
    viewed     -> expired     system
"""

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from homebid.core.auth import Principal
from homebid.core.exceptions import (
    AuthorizationError,
    InvalidStateTransitionError,
    ProposalNotEditableError,
)
from homebid.models.proposal import (
    Proposal,
    ProposalStatus,
    RejectionReason,
    TERMINAL_STATUSES,
    EDITABLE_STATUSES,
)


class Actor(str, Enum):
    """Who is triggering a transition, relative to the proposal."""

    CONTRACTOR = "contractor"
    HOMEOWNER = "homeowner"
    SYSTEM = "system"


S = ProposalStatus

TRANSITIONS: Dict[Tuple[ProposalStatus, ProposalStatus], FrozenSet[Actor]] = {
    (S.DRAFT, S.SUBMITTED): frozenset({Actor.CONTRACTOR}),
    (S.SUBMITTED, S.VIEWED): frozenset({Actor.HOMEOWNER, Actor.SYSTEM}),
    (S.SUBMITTED, S.ACCEPTED): frozenset({Actor.HOMEOWNER}),
    (S.VIEWED, S.ACCEPTED): frozenset({Actor.HOMEOWNER}),
    (S.SUBMITTED, S.REJECTED): frozenset({Actor.HOMEOWNER}),
    (S.VIEWED, S.REJECTED): frozenset({Actor.HOMEOWNER}),
    (S.DRAFT, S.WITHDRAWN): frozenset({Actor.CONTRACTOR}),
    (S.SUBMITTED, S.WITHDRAWN): frozenset({Actor.CONTRACTOR}),
    (S.SUBMITTED, S.EXPIRED): frozenset({Actor.SYSTEM}),
    (S.VIEWED, S.EXPIRED): frozenset({Actor.SYSTEM}),
}


def allowed_targets(current: ProposalStatus, actor: Actor) -> FrozenSet[ProposalStatus]:
    """Statuses the actor may move a proposal to from ``current``."""
    return frozenset(
        target
        for (source, target), actors in TRANSITIONS.items()
        if source == current and actor in actors
    )


def check_transition(
    current: ProposalStatus,
    target: ProposalStatus,
    actor: Actor,
) -> bool:
    """
    Decide whether a transition should be applied.

    Args:
        current: Proposal's current status
        target: Requested status
        actor: Who is asking

    Returns:
        False for the no-op case (target equals current), True when the
        edge exists and the actor may trigger it

    Raises:
        InvalidStateTransitionError: Terminal source, missing edge, or
            an actor that may not trigger the edge
    """
    if current == target:
        return False

    if current in TERMINAL_STATUSES:
        raise InvalidStateTransitionError(
            message=f"Proposal is {current.value} and can no longer change status",
            current_state=current.value,
            requested_state=target.value,
        )

    actors = TRANSITIONS.get((current, target))
    if actors is None:
        raise InvalidStateTransitionError(
            message=f"Cannot move a proposal from {current.value} to {target.value}",
            current_state=current.value,
            requested_state=target.value,
        )

    if actor not in actors:
        raise InvalidStateTransitionError(
            message=f"A {actor.value} cannot move a proposal from {current.value} to {target.value}",
            current_state=current.value,
            requested_state=target.value,
            actor=actor.value,
        )

    return True


def apply_transition(
    proposal: Proposal,
    target: ProposalStatus,
    actor: Actor,
    at: datetime,
    actor_id: Optional[int] = None,
    reason: Optional[RejectionReason] = None,
    notes: Optional[str] = None,
) -> bool:
    """
    Validate and apply a transition to a proposal in memory.

    Side effects per target:
    - submitted: submitted_date
    - viewed: viewed_date
    - accepted: accepted_date, is_selected=True
    - rejected: rejected_date, rejected_by, rejection_reason, rejection_reason_notes
    - withdrawn: withdrawn_date
    - expired: nothing beyond the status
    last_updated is set on every applied transition.

    Args:
        proposal: Proposal to mutate
        target: Requested status
        actor: Actor kind
        at: Timestamp from the injected clock
        actor_id: Acting user id (None for system)
        reason: Rejection reason (rejected only)
        notes: Rejection notes (rejected only)

    Returns:
        True if the proposal changed, False for the no-op case

    Raises:
        InvalidStateTransitionError: See check_transition
    """
    if not check_transition(proposal.status, target, actor):
        return False

    proposal.status = target
    proposal.last_updated = at
    if actor_id is not None:
        proposal.last_modified_by = actor_id

    if target == ProposalStatus.SUBMITTED:
        proposal.submitted_date = at
    elif target == ProposalStatus.VIEWED:
        proposal.viewed_date = at
    elif target == ProposalStatus.ACCEPTED:
        proposal.accepted_date = at
        proposal.is_selected = True
    elif target == ProposalStatus.REJECTED:
        proposal.rejected_date = at
        proposal.rejected_by = actor_id
        proposal.rejection_reason = reason
        proposal.rejection_reason_notes = notes
    elif target == ProposalStatus.WITHDRAWN:
        proposal.withdrawn_date = at

    return True


def ensure_editable(proposal: Proposal) -> None:
    """
    Raise unless the proposal's content may still change.

    Raises:
        ProposalNotEditableError: Status is viewed or terminal
    """
    if proposal.status not in EDITABLE_STATUSES:
        raise ProposalNotEditableError(
            message=f"Proposal is {proposal.status.value}; content can only change while draft or submitted",
            proposal_id=proposal.id,
            current_state=proposal.status.value,
        )


def actor_for(proposal: Proposal, principal: Principal) -> Actor:
    """
    Resolve the principal's relationship to a proposal.

    Args:
        proposal: Target proposal
        principal: Authenticated caller

    Returns:
        Actor.CONTRACTOR for the submitting contractor, Actor.HOMEOWNER
        for the project owner

    Raises:
        AuthorizationError: The principal owns neither side
    """
    if principal.is_contractor and proposal.contractor_id == principal.user_id:
        return Actor.CONTRACTOR
    if principal.is_homeowner and proposal.homeowner_id == principal.user_id:
        return Actor.HOMEOWNER

    raise AuthorizationError(
        message="You are not a party to this proposal",
        user_id=principal.user_id,
        proposal_id=proposal.id,
    )
