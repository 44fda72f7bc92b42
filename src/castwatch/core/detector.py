"""Change detection (core domain).

Decides, for one freshly observed item, whether it needs an initial
notification, a status change notification, or nothing.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import AbstractSet, Optional

from castwatch.core.models import (
    Decision,
    Item,
    ItemState,
    LifecycleState,
    NotificationKind,
)


def _is_go_live(previous: Optional[LifecycleState], current: LifecycleState) -> bool:
    return previous is LifecycleState.UPCOMING and current is LifecycleState.LIVE


def evaluate(
    item: Item,
    prior_state: Optional[ItemState],
    prior_markers: AbstractSet[NotificationKind],
    source_name: str,
    now: Optional[datetime] = None,
) -> Decision:
    """Return the notification decision for an observed item.

    Rules, in order:
    - No initial marker yet: notify ``initial``, whatever the lifecycle state.
    - Stored state is ``upcoming``, item is now ``live`` and no status change
      marker exists: notify ``status_change``.
    - Otherwise nothing is sent.

    The returned decision always carries the state to upsert so a later
    transition is measured against the most recent observation. Regressions
    such as ``live -> upcoming`` are recorded as-is and never raise.
    """

    now = now or datetime.now(timezone.utc)
    previous = prior_state.lifecycle_state if prior_state else None

    state = ItemState(
        id=item.id,
        lifecycle_state=item.lifecycle_state,
        title=item.title,
        source_name=source_name,
        last_updated_at=now,
        created_at=prior_state.created_at if prior_state else None,
    )

    if NotificationKind.INITIAL not in prior_markers:
        kind: Optional[NotificationKind] = NotificationKind.INITIAL
    elif _is_go_live(previous, item.lifecycle_state) and (
        NotificationKind.STATUS_CHANGE not in prior_markers
    ):
        kind = NotificationKind.STATUS_CHANGE
    else:
        kind = None

    return Decision(kind=kind, state=state, previous_state=previous)
