"""SSE event system and domain events."""

from .manager import EventManager, event_manager
from .models import DomainEvent, Event, EventType, ResourceType

__all__ = ["EventManager", "event_manager", "Event", "EventType", "DomainEvent", "ResourceType"]
