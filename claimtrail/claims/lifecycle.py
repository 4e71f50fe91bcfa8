"""Claim status lifecycle graph.

    SUBMITTED -> UNDER_REVIEW -> (INVESTIGATING) -> APPROVED -> PAID -> CLOSED
         \\            \\                 \\               \\
          +------------+-----------------+---------------+--> REJECTED

Forward moves may skip optional stages.  ``CLOSED`` and ``REJECTED`` are
terminal.  There is no reopen path.

``FLAGGED_FRAUD`` is not part of the graph: it overrides the effective
status of a claim whose fraud score crossed the threshold while the
substantive lifecycle status keeps moving independently.
"""

from __future__ import annotations

from claimtrail.api.models import ClaimStatus
from claimtrail.exceptions import InvalidTransitionError

DEFAULT_FRAUD_FLAG_THRESHOLD = 0.8

LIFECYCLE_ORDER: tuple[ClaimStatus, ...] = (
    ClaimStatus.SUBMITTED,
    ClaimStatus.UNDER_REVIEW,
    ClaimStatus.INVESTIGATING,
    ClaimStatus.APPROVED,
    ClaimStatus.PAID,
    ClaimStatus.CLOSED,
)

TERMINAL_STATUSES: frozenset[ClaimStatus] = frozenset({ClaimStatus.CLOSED, ClaimStatus.REJECTED})

# Rejection is a decision; once money has moved it is no longer available.
_REJECTABLE: frozenset[ClaimStatus] = frozenset(
    {ClaimStatus.SUBMITTED, ClaimStatus.UNDER_REVIEW, ClaimStatus.INVESTIGATING, ClaimStatus.APPROVED}
)

_RANK = {status: i for i, status in enumerate(LIFECYCLE_ORDER)}


def is_terminal(status: ClaimStatus) -> bool:
    return ClaimStatus(status) in TERMINAL_STATUSES


def can_transition(current: ClaimStatus, target: ClaimStatus) -> bool:
    """Whether the lifecycle may move from *current* to *target*."""
    current = ClaimStatus(current)
    target = ClaimStatus(target)
    if ClaimStatus.FLAGGED_FRAUD in (current, target):
        return False
    if current in TERMINAL_STATUSES:
        return False
    if target == ClaimStatus.REJECTED:
        return current in _REJECTABLE
    return _RANK[target] > _RANK[current]


def allowed_targets(current: ClaimStatus) -> list[ClaimStatus]:
    """Every lifecycle status reachable from *current* in one move."""
    return [s for s in (*LIFECYCLE_ORDER, ClaimStatus.REJECTED) if can_transition(current, s)]


def check_transition(current: ClaimStatus, target: ClaimStatus) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> target`` is allowed."""
    if not can_transition(current, target):
        current_value = ClaimStatus(current).value
        target_value = ClaimStatus(target).value
        if is_terminal(current):
            reason = f"claim is in terminal status {current_value}"
        else:
            reason = f"{current_value} -> {target_value} is not a forward transition"
        raise InvalidTransitionError(
            f"Cannot move claim to {target_value}: {reason}",
            current=current_value,
            target=target_value,
        )


def exceeds_fraud_threshold(score: float, threshold: float = DEFAULT_FRAUD_FLAG_THRESHOLD) -> bool:
    """Strictly greater than: a score equal to the threshold does not flag."""
    return score > threshold


def effective_status(lifecycle_status: ClaimStatus, fraud_flagged: bool) -> ClaimStatus:
    """Status exposed to readers: the fraud override wins over the lifecycle."""
    if fraud_flagged:
        return ClaimStatus.FLAGGED_FRAUD
    return ClaimStatus(lifecycle_status)
