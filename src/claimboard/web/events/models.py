"""Event models: SSE broadcast events and domain state changes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class EventType(StrEnum):
    # Task events
    TASK_CREATED = "task_created"
    TASK_CLAIMED = "task_claimed"
    TASK_RELEASED = "task_released"
    TASK_COMPLETED = "task_completed"
    TASK_UPDATED = "task_updated"
    # Card events
    CARD_CREATED = "card_created"
    CARD_STATE = "card_state"
    # Automation
    RULE_APPLIED = "rule_applied"
    # Work sessions
    SESSION_STARTED = "session_started"
    SESSION_CLOSED = "session_closed"
    # Misc
    USER_PRESENCE = "user_presence"
    HEARTBEAT = "heartbeat"


@dataclass
class Event:
    event_type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    channel: str = ""


class ResourceType(StrEnum):
    TASK = "task"
    CARD = "card"


@dataclass(frozen=True)
class DomainEvent:
    """A state change that automation rules react to.

    ``from_state`` and ``to_state`` come from the transition itself, not from
    a later read of the resource.
    """

    resource_type: ResourceType
    resource_id: int
    project_id: int
    org_id: int
    actor_user_id: int | None
    from_state: str | None
    to_state: str
    task_type_id: int | None = None
