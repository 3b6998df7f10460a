"""Per-conversation time bounds derived from the run's range filter policy."""

from functools import singledispatch

from chat_ingest.schemas.filters import AbsoluteFilter, DepthFilter, IncludeConversationsFilter, RelativeDaysFilter
from chat_ingest.sources.source_interface import SourceRowProvider
from chat_ingest.sources.types import TimeBounds
from chat_ingest.timeutils import seconds_from_datetime

SECONDS_PER_DAY = 24 * 60 * 60


@singledispatch
def compute_bounds(policy: object, chat_id: str, reader: SourceRowProvider) -> TimeBounds | None:
    """Return inclusive time bounds for one conversation, or ``None`` for no bounds."""

    raise TypeError(f"Unsupported range filter policy {type(policy).__name__}")


@compute_bounds.register
def _(policy: IncludeConversationsFilter, chat_id: str, reader: SourceRowProvider) -> TimeBounds | None:
    # Membership is decided by conversation discovery, not by bounds.
    return None


@compute_bounds.register
def _(policy: AbsoluteFilter, chat_id: str, reader: SourceRowProvider) -> TimeBounds | None:
    if policy.since is None and policy.until is None:
        return None
    return TimeBounds(
        since_seconds=seconds_from_datetime(policy.since) if policy.since is not None else None,
        until_seconds=seconds_from_datetime(policy.until) if policy.until is not None else None,
    )


@compute_bounds.register
def _(policy: RelativeDaysFilter, chat_id: str, reader: SourceRowProvider) -> TimeBounds | None:
    latest = reader.latest_message_meta(chat_id)
    if latest is None:
        return None
    until_seconds = latest.ts_seconds
    return TimeBounds(since_seconds=until_seconds - policy.days * SECONDS_PER_DAY, until_seconds=until_seconds)


@compute_bounds.register
def _(policy: DepthFilter, chat_id: str, reader: SourceRowProvider) -> TimeBounds | None:
    if policy.depth <= 0:
        return None
    boundary = reader.nth_recent_boundary(chat_id, policy.depth)
    if boundary is None:
        return None
    return TimeBounds(since_seconds=boundary.ts_seconds)
