"""Normalize LiveKit webhook payloads into one fixed-shape event.

LiveKit and the proxies in front of it do not agree on where the room lives in
the payload. The room object may sit at the top level (``room``), under a
``data`` wrapper, or under a ``payload`` wrapper, and the room id may be
reported as ``room.sid`` or as a flat ``room_sid`` field.

Identity precedence:

1. ``sid`` of the room object
2. flat ``room_sid`` field
3. ``name`` of the room object, ``room.name`` included

Time precedence: numeric ``created_at``, then numeric ``timestamp`` (both epoch
milliseconds), then the moment of receipt. ``occurred_at_source`` records which
one was used.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

UNKNOWN_EVENT = "unknown_event"

SOURCE_CREATED_AT = "created_at"
SOURCE_TIMESTAMP = "timestamp"
SOURCE_RECEIPT = "receipt"

_WRAPPER_KEYS = ("data", "payload")


@dataclass(frozen=True)
class NormalizedEvent:
    kind: str
    occurred_at: datetime
    received_at: datetime
    occurred_at_source: str = SOURCE_RECEIPT
    room_sid: Optional[str] = None
    room_name: Optional[str] = None

    @property
    def identity(self) -> Optional[str]:
        return self.room_sid or self.room_name

    @property
    def occurred_at_is_receipt(self) -> bool:
        return self.occurred_at_source == SOURCE_RECEIPT


def _clean_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _candidates(event: Mapping[str, Any]) -> list:
    """The event itself followed by any dict wrappers, in precedence order."""
    found = [event]
    for key in _WRAPPER_KEYS:
        wrapped = event.get(key)
        if isinstance(wrapped, Mapping):
            found.append(wrapped)
    return found


def _find_room(event: Mapping[str, Any]) -> Mapping[str, Any]:
    for container in _candidates(event):
        room = container.get("room")
        if isinstance(room, Mapping):
            return room
    return {}


def _find_flat(event: Mapping[str, Any], key: str) -> Optional[str]:
    for container in _candidates(event):
        value = _clean_str(container.get(key))
        if value:
            return value
    return None


def _from_epoch_ms(value: float) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _resolve_time(event: Mapping[str, Any], received_at: datetime) -> tuple[datetime, str]:
    for key in (SOURCE_CREATED_AT, SOURCE_TIMESTAMP):
        value = event.get(key)
        if _is_number(value):
            parsed = _from_epoch_ms(value)
            if parsed is not None:
                return parsed, key
    return received_at, SOURCE_RECEIPT


def normalize_event(
    event: Any, received_at: Optional[datetime] = None
) -> NormalizedEvent:
    """Build a :class:`NormalizedEvent`. Never raises; missing fields stay ``None``."""
    received_at = received_at or datetime.now(timezone.utc)
    if not isinstance(event, Mapping):
        event = {}

    kind = _clean_str(event.get("event")) or UNKNOWN_EVENT
    room = _find_room(event)

    room_sid = _clean_str(room.get("sid")) or _find_flat(event, "room_sid")
    room_name = _clean_str(room.get("name"))

    occurred_at, source = _resolve_time(event, received_at)

    return NormalizedEvent(
        kind=kind,
        occurred_at=occurred_at,
        received_at=received_at,
        occurred_at_source=source,
        room_sid=room_sid,
        room_name=room_name,
    )
