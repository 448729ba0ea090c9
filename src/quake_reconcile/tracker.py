"""Upsert & change tracking against the persisted store.

Sole writer of persisted events. Each resolved event is classified as new,
updated or unchanged; only material changes bump the revision counter.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from quake_reconcile.models import (
    MATERIAL_FIELDS,
    PersistedEvent,
    ResolvedEvent,
    utc_now,
)
from quake_reconcile.store import EventStore

logger = logging.getLogger(__name__)

FLOAT_EPSILON = 1e-6

NEW = "new"
UPDATED = "updated"
UNCHANGED = "unchanged"


@dataclass
class ChangeSummary:
    new: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        return {NEW: len(self.new), UPDATED: len(self.updated), UNCHANGED: len(self.unchanged)}


def _same(a, b) -> bool:
    if isinstance(a, float) or isinstance(b, float):
        if a is None or b is None:
            return a is b
        return math.isclose(a, b, rel_tol=0.0, abs_tol=FLOAT_EPSILON)
    if isinstance(a, (tuple, list)) and isinstance(b, (tuple, list)):
        return tuple(a) == tuple(b)
    return a == b


def changed_fields(existing: PersistedEvent, incoming: ResolvedEvent) -> list[str]:
    """Material fields whose values differ beyond floating-point noise."""
    return [
        name for name in MATERIAL_FIELDS
        if not _same(getattr(existing, name), getattr(incoming, name))
    ]


class ChangeTracker:
    """Diffs a run's catalog against persisted state and writes through."""

    def __init__(self, store: EventStore):
        self.store = store

    def classify(self, existing: Optional[PersistedEvent], incoming: ResolvedEvent) -> str:
        if existing is None:
            return NEW
        return UPDATED if changed_fields(existing, incoming) else UNCHANGED

    def apply(
        self,
        catalog: Sequence[ResolvedEvent],
        seen_at: Optional[datetime] = None,
    ) -> ChangeSummary:
        """Persist ``catalog``. Store failures propagate to the caller."""
        seen_at = seen_at or utc_now()
        summary = ChangeSummary()
        # Records owned by this run: their own ids, plus those already matched
        claimed = {event.id for event in catalog}

        with self.store.writer() as writer:
            for event in catalog:
                existing = writer.find(event.id, event.member_ids, exclude=claimed)
                if existing is not None:
                    claimed.add(existing.id)
                outcome = self.classify(existing, event)

                if outcome == NEW:
                    writer.insert(PersistedEvent.from_resolved(event, seen_at))
                    summary.new.append(event.id)
                elif outcome == UPDATED:
                    diff = changed_fields(existing, event)
                    writer.replace(PersistedEvent.from_resolved(
                        event,
                        seen_at,
                        record_id=existing.id,
                        aliases=existing.aliases,
                        ingested_at=existing.ingested_at,
                        revision=existing.revision + 1,
                    ))
                    summary.updated.append(existing.id)
                    logger.debug("%s updated (rev %d): %s", existing.id, existing.revision + 1, diff)
                else:
                    writer.replace(existing.touch(seen_at, event.member_ids))
                    summary.unchanged.append(existing.id)

        logger.info("Upsert: %(new)d new, %(updated)d updated, %(unchanged)d unchanged", summary.counts)
        return summary
