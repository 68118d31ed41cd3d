"""Message aggregation pipeline: normalize -> filter -> aggregate.

Pure functions over snapshots of the store; nothing here performs I/O or
keeps state between calls. Raw records come in every historical shape the
application has written (legacy ``timestamp`` instead of ``dateSent``,
missing channel, ...) and leave as uniform ``Row`` objects.
"""

from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable

from shared.models.record import (
    CONTENT_FIELDS,
    Direction,
    DirectionFilter,
    FilterCriteria,
    Row,
    TYPE_ALIASES,
    Timeframe,
    TopCounterpart,
)

MISSING = "-"
UNKNOWN = "Unknown"


def to_datetime(value: Any) -> datetime | None:
    """Parse a stored timestamp: epoch milliseconds, an ISO string or a datetime.

    Returns None for anything unparseable, including unresolved server
    timestamp placeholders such as ``{".sv": "timestamp"}``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            return to_datetime(int(text))
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def subject_of(raw: dict) -> str:
    """Pick the content field named by the record's type, else the generic ``subject``."""
    record_type = raw.get("type")
    field = CONTENT_FIELDS.get(TYPE_ALIASES.get(record_type, record_type), "subject")
    value = raw.get(field)
    return str(value) if value not in (None, "") else MISSING


def normalize(
    raw: dict,
    owner_id: str,
    direction: Direction | str,
    owner_name: str | None = None,
    key: str | None = None,
    now: datetime | None = None,
) -> Row:
    """Map one stored record of any type to a ``Row``.

    ``dateSent`` is always resolved (dateSent, legacy timestamp, createdAt,
    then ``now``) so rows can be totally ordered.
    """
    direction = Direction(direction)
    date_sent = (
        to_datetime(raw.get("dateSent"))
        or to_datetime(raw.get("timestamp"))
        or to_datetime(raw.get("createdAt"))
        or now
        or datetime.now(timezone.utc)
    )

    if direction is Direction.SENT:
        sender = raw.get("sender") or "Self"
        date_received = None
    else:
        sender = raw.get("sender") or raw.get("staffName") or UNKNOWN
        date_received = to_datetime(raw.get("dateReceived"))
    receiver = raw.get("receiver") or MISSING

    return Row(
        key=key,
        record_id=str(raw.get("documentId") or raw.get("id") or MISSING),
        owner_id=owner_id,
        owner_name=owner_name or owner_id,
        direction=direction,
        communication_type=str(raw.get("communicationType") or raw.get("type") or UNKNOWN),
        subject=subject_of(raw),
        sender=str(sender),
        receiver=str(receiver),
        channel=str(raw.get("channel") or UNKNOWN),
        file_format=str(raw.get("fileFormat") or UNKNOWN),
        file_url=raw.get("fileUrl"),
        filename=raw.get("filename"),
        has_attachment=bool(raw.get("hasAttachment") or raw.get("fileUrl")),
        staff_name=raw.get("staffName"),
        date_sent=date_sent,
        date_received=date_received,
    )


def collect_user_rows(uid: str, user_data: dict | None, now: datetime | None = None) -> list[Row]:
    """Normalize the sent and received collections of one ``users/{uid}`` snapshot."""
    if not isinstance(user_data, dict):
        return []
    owner_name = user_data.get("name") or user_data.get("email") or uid
    rows: list[Row] = []
    for direction in (Direction.RECEIVED, Direction.SENT):
        collection = user_data.get(direction.collection) or {}
        if not isinstance(collection, dict):
            continue
        for key, raw in collection.items():
            if isinstance(raw, dict):
                rows.append(normalize(raw, uid, direction, owner_name=owner_name, key=key, now=now))
    return rows


def collect_rows(users_snapshot: dict | None, now: datetime | None = None) -> list[Row]:
    """Normalize every user's collections of a whole ``users`` snapshot."""
    rows: list[Row] = []
    for uid, user_data in (users_snapshot or {}).items():
        rows.extend(collect_user_rows(uid, user_data, now=now))
    return rows


def _localize(tz, day: date) -> datetime:
    midnight = datetime.combine(day, time.min)
    # pytz zones need localize(), zoneinfo and timezone.utc take tzinfo directly
    if hasattr(tz, "localize"):
        return tz.localize(midnight)
    return midnight.replace(tzinfo=tz)


def _local_now(now: datetime | None, tz) -> datetime:
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        return tz.localize(now) if hasattr(tz, "localize") else now.replace(tzinfo=tz)
    return now.astimezone(tz)


def timeframe_start(timeframe: Timeframe | str, now: datetime, tz) -> datetime | None:
    """First instant of a timeframe relative to a local ``now`` (None for "all" and "today")."""
    timeframe = Timeframe(timeframe)
    today = now.date()
    if timeframe is Timeframe.THIS_WEEK:
        # weekday(): Monday=0 ... Sunday=6
        return _localize(tz, today - timedelta(days=(today.weekday() + 1) % 7))
    if timeframe is Timeframe.THIS_MONTH:
        return _localize(tz, today.replace(day=1))
    return None


def _in_timeframe(row: Row, timeframe: Timeframe, now: datetime, tz) -> bool:
    if timeframe is Timeframe.ALL:
        return True
    sent = row.date_sent.astimezone(tz)
    if timeframe is Timeframe.TODAY:
        return sent.date() == now.date()
    return timeframe_start(timeframe, now, tz) <= sent <= now


def filter_rows(
    rows: Iterable[Row],
    criteria: FilterCriteria | None = None,
    now: datetime | None = None,
    tz=None,
) -> list[Row]:
    """Apply the AND-composed criteria and sort newest first.

    The sort is stable, rows sharing a ``date_sent`` keep their input order,
    and the result is the same whatever order the criteria are applied in.

    Args:
        rows: Normalized rows.
        criteria: Filters; None lets everything through.
        now: Reference time for the timeframe; defaults to the current time.
        tz: Local timezone for calendar boundaries; defaults to UTC.
    """
    criteria = criteria or FilterCriteria()
    tz = tz or timezone.utc
    local_now = _local_now(now, tz)

    selected = []
    for row in rows:
        if not _in_timeframe(row, criteria.timeframe, local_now, tz):
            continue
        if criteria.direction is not DirectionFilter.ALL and row.direction.value != criteria.direction.value:
            continue
        if criteria.owner_filter and criteria.owner_filter not in (row.owner_id, row.owner_name):
            continue
        if criteria.type_filter and row.communication_type != criteria.type_filter:
            continue
        selected.append(row)

    # sorted() is stable, also with reverse=True
    return sorted(selected, key=lambda row: row.date_sent, reverse=True)


def aggregate_top_counterparts(rows: Iterable[Row], role: Direction | str, limit: int = 5) -> list[TopCounterpart]:
    """Most frequent counterparts: senders of received rows or receivers of sent rows.

    Counts are grouped by exact name; ties keep first-seen order.
    """
    role = Direction(role)
    field = "sender" if role is Direction.RECEIVED else "receiver"
    names = (getattr(row, field) if isinstance(row, Row) else row.get(field) for row in rows)
    counts = Counter(name if name not in (None, "") else MISSING for name in names)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [TopCounterpart(name=str(name), count=count) for name, count in ranked[:limit]]


def unique_types(rows: Iterable[Row]) -> list[str]:
    """Distinct communication types in first-seen order, for filter pickers."""
    return list(dict.fromkeys(row.communication_type for row in rows))
