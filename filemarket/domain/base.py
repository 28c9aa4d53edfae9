"""Domain building blocks: value objects, entities, aggregates and events."""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Generic, TypeVar
from uuid import UUID, uuid4


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _plain(value: Any) -> Any:
    """Render a field value for logs and serialized payloads."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


# ============================================================================
# Value Object Base
# ============================================================================


@dataclass(frozen=True)
class ValueObject:
    """Immutable value compared by its fields."""


# ============================================================================
# Entity Base
# ============================================================================


IdT = TypeVar("IdT", bound=str)


@dataclass
class Entity(Generic[IdT]):
    """Record with a stable identifier.

    Equality and hashing use ``id`` only, so a listing or payout loaded twice
    compares equal even when one copy carries newer field values.
    """

    id: IdT

    def __eq__(self, other: object) -> bool:
        return isinstance(other, self.__class__) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


# ============================================================================
# Aggregate Root Base
# ============================================================================


@dataclass(kw_only=True, eq=False)
class AggregateRoot(Entity[IdT], Generic[IdT]):
    """Consistency boundary that records domain events.

    Attributes:
        version: Concurrency token. Every mutation bumps it; a repository
            write succeeds only if the stored row still has the version the
            aggregate was read at.
        created_at: Creation time.
        updated_at: Time of the last mutation.
    """

    version: int = field(default=1, compare=False)
    created_at: datetime = field(default_factory=utc_now, compare=False)
    updated_at: datetime = field(default_factory=utc_now, compare=False)
    _events: list["DomainEvent"] = field(
        default_factory=list, init=False, repr=False, compare=False
    )

    def _record_event(self, event: "DomainEvent") -> None:
        self._events.append(event)

    def _touch(self, now: datetime | None = None) -> None:
        self.updated_at = now or utc_now()
        self.version += 1

    def collect_events(self) -> list["DomainEvent"]:
        """Return recorded events and forget them.

        Call after the aggregate was persisted; events of a rejected write
        must be discarded with the aggregate.
        """
        events, self._events = self._events, []
        return events


# ============================================================================
# Domain Event Base
# ============================================================================


_ENVELOPE_FIELDS = frozenset({"event_id", "occurred_at", "aggregate_id", "aggregate_type"})


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened to an aggregate.

    Subclasses set ``event_type`` and declare their payload as dataclass
    fields; everything beyond the envelope fields is the payload.
    """

    event_type: ClassVar[str]

    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=utc_now)
    aggregate_id: str = ""
    aggregate_type: str = ""

    def payload(self) -> dict[str, Any]:
        return {
            f.name: _plain(getattr(self, f.name))
            for f in fields(self)
            if f.name not in _ENVELOPE_FIELDS
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "aggregate_id": self.aggregate_id,
            "aggregate_type": self.aggregate_type,
            "payload": self.payload(),
        }
