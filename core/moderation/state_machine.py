"""
Listing Status State Machine

States: pending, approved, rejected. Listings start pending.

Transitions (actor -> action -> result):
- ADMIN -> approve  -> approved  (from pending; badge set, review stamped)
- ADMIN -> reject   -> rejected  (from pending; badge cleared, review stamped)
- ADMIN -> reopen   -> pending   (from approved/rejected; badge cleared, review stamped)
- OWNER -> resubmit -> pending   (from pending/rejected; badge and review cleared)

Transitions are pure: they return a new Listing and the field-level
changes, and never touch the input or the store. A rejected transition
raises before anything is built, so nothing is partially applied.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Final, Optional

from core.moderation.errors import Forbidden, InvalidTransition
from core.moderation.schema import (
    BadgeValue,
    Identity,
    Listing,
    ListingStatus,
    Role,
    utc_now,
)


class ListingAction(Enum):
    """Actions that move a listing between statuses."""

    APPROVE = "approve"
    REJECT = "reject"
    REOPEN = "reopen"
    RESUBMIT = "resubmit"


@dataclass(frozen=True)
class TransitionRule:
    """Legal sources, target and actor for one action."""

    sources: frozenset[ListingStatus]
    target: ListingStatus
    admin_only: bool
    owner_only: bool = False


TRANSITIONS: Final[dict[ListingAction, TransitionRule]] = {
    ListingAction.APPROVE: TransitionRule(
        sources=frozenset({ListingStatus.PENDING}),
        target=ListingStatus.APPROVED,
        admin_only=True,
    ),
    ListingAction.REJECT: TransitionRule(
        sources=frozenset({ListingStatus.PENDING}),
        target=ListingStatus.REJECTED,
        admin_only=True,
    ),
    ListingAction.REOPEN: TransitionRule(
        sources=frozenset({ListingStatus.APPROVED, ListingStatus.REJECTED}),
        target=ListingStatus.PENDING,
        admin_only=True,
    ),
    ListingAction.RESUBMIT: TransitionRule(
        sources=frozenset({ListingStatus.PENDING, ListingStatus.REJECTED}),
        target=ListingStatus.PENDING,
        admin_only=False,
        owner_only=True,
    ),
}

# Admin status requests map onto actions
_ADMIN_ACTION_FOR_STATUS: Final[dict[ListingStatus, ListingAction]] = {
    ListingStatus.APPROVED: ListingAction.APPROVE,
    ListingStatus.REJECTED: ListingAction.REJECT,
    ListingStatus.PENDING: ListingAction.REOPEN,
}

# Fields whose changes are reported (and audited) for a transition
TRACKED_FIELDS: Final[tuple[str, ...]] = ("status", "badge")


@dataclass(frozen=True)
class TransitionResult:
    """New listing state and the tracked fields that changed."""

    listing: Listing
    action: Optional[ListingAction]
    changes: dict[str, dict[str, Any]]

    @property
    def is_noop(self) -> bool:
        return not self.changes


def action_for_status(target: ListingStatus) -> ListingAction:
    """Map an admin's requested status to the action that reaches it."""
    return _ADMIN_ACTION_FOR_STATUS[target]


def _badge_value(badge: Optional[BadgeValue]) -> Optional[str]:
    return badge.value if badge else None


def _tracked_changes(before: Listing, after: Listing) -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    if before.status != after.status:
        changes["status"] = {"old": before.status.value, "new": after.status.value}
    if before.badge != after.badge:
        changes["badge"] = {"old": _badge_value(before.badge), "new": _badge_value(after.badge)}
    return changes


def check_transition(listing: Listing, action: ListingAction, actor: Identity) -> TransitionRule:
    """
    Validate actor and source state for an action.

    Raises:
        Forbidden: Actor may not perform this action
        InvalidTransition: Listing's status does not allow it
    """
    rule = TRANSITIONS[action]

    if rule.admin_only and actor.role != Role.ADMIN:
        raise Forbidden(f"Authorization required: only admins can {action.value} listings.")
    if rule.owner_only and actor.uid != listing.owner_id:
        raise Forbidden(f"Only the listing owner can {action.value} this listing.")

    if listing.status not in rule.sources:
        allowed = ", ".join(sorted(s.value for s in rule.sources))
        raise InvalidTransition(
            f"Cannot {action.value} listing {listing.listing_id}: status is "
            f"{listing.status.value}, expected one of: {allowed}"
        )
    return rule


def transition(
    listing: Listing,
    action: ListingAction,
    actor: Identity,
    computed_badge: Optional[BadgeValue] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """
    Apply an action to a listing.

    Args:
        listing: Current persisted state
        action: Requested action
        actor: Verified caller
        computed_badge: Badge from the badge engine; required for approve
        now: Timestamp to stamp (defaults to current UTC time)

    Returns:
        TransitionResult with the new listing and tracked changes

    Raises:
        Forbidden, InvalidTransition
    """
    rule = check_transition(listing, action, actor)
    now = now or utc_now()

    if action == ListingAction.APPROVE:
        if computed_badge is None:
            raise ValueError("approve requires a computed badge")
        updated = replace(
            listing,
            status=rule.target,
            badge=computed_badge,
            admin_reviewed_at=now,
            updated_at=now,
        )
    elif action == ListingAction.RESUBMIT:
        updated = replace(
            listing,
            status=rule.target,
            badge=None,
            admin_reviewed_at=None,
            updated_at=now,
        )
    else:
        # reject and reopen
        updated = replace(
            listing,
            status=rule.target,
            badge=None,
            admin_reviewed_at=now,
            updated_at=now,
        )

    return TransitionResult(listing=updated, action=action, changes=_tracked_changes(listing, updated))


def plan_status_change(
    listing: Listing,
    target: ListingStatus,
    actor: Identity,
    computed_badge: Optional[BadgeValue] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """
    Plan an admin status request.

    Asking for pending on a listing that is already pending is a no-op
    (no changes, nothing to write). Every other request goes through
    `transition`, so approving or rejecting a non-pending listing fails.
    """
    if actor.role != Role.ADMIN:
        raise Forbidden("Authorization required: only admins can update status.")
    if target == ListingStatus.PENDING and listing.status == ListingStatus.PENDING:
        return TransitionResult(listing=listing, action=None, changes={})
    return transition(listing, action_for_status(target), actor, computed_badge, now)
