"""Error taxonomy for ingestion runs."""

from __future__ import annotations


class MalformedRecord(Exception):
    """A raw provider record that cannot become a canonical event."""

    def __init__(self, source: str, reason: str, source_event_id: str | None = None):
        self.source = source
        self.reason = reason
        self.source_event_id = source_event_id
        super().__init__(f"[{source}] malformed record: {reason}")


class SourceFetchFailure(Exception):
    """A provider that contributed nothing to the current run."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"[{source}] fetch failed: {reason}")


class StoreError(Exception):
    """The persisted store rejected or could not serve a request."""


class LedgerError(StoreError):
    """Illegal transition of a run ledger entry."""


class RunFatalError(Exception):
    """A condition that makes the whole run meaningless."""
