"""Event bus for phase reporting and ledger notifications.

Lets the client session report progress and republish ledger events without
depending on whoever renders them. Hooks can be sync or async::

    bus = EventBus()
    bus.on(PHASE_STARTED, lambda event: console.print(event.payload["message"]))
    await bus.emit(Event(name=PHASE_STARTED, payload={"message": "Encrypting data..."}))
"""

from __future__ import annotations

import inspect
from collections import defaultdict
from dataclasses import dataclass, field
from time import time
from typing import Any

from loguru import logger

# Client phases
PHASE_STARTED = "phase.started"
PHASE_COMPLETED = "phase.completed"
PHASE_FAILED = "phase.failed"

# Ledger events, republished from transaction receipts
PROFILE_CREATED = "ledger.ProfileCreated"
SLEEP_DATA_SUBMITTED = "ledger.SleepDataSubmitted"
PRIVACY_SETTINGS_UPDATED = "ledger.PrivacySettingsUpdated"
LEADERBOARD_PARTICIPATION_UPDATED = "ledger.LeaderboardParticipationUpdated"

Hook = Any  # Callable[[Event], None] | Callable[[Event], Awaitable[None]]


@dataclass(frozen=True)
class Event:
    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time)
    source: str = ""


class EventBus:
    """Per-session pub/sub keyed by event name."""

    def __init__(self) -> None:
        self._hooks: dict[str, list[Hook]] = defaultdict(list)

    def on(self, event_name: str, hook: Hook) -> None:
        self._hooks[event_name].append(hook)

    async def emit(self, event: Event) -> None:
        """Run every hook registered for ``event.name`` in registration order.

        A failing hook is logged and never aborts the operation that emitted.
        """
        for hook in list(self._hooks.get(event.name, [])):
            try:
                if inspect.iscoroutinefunction(hook):
                    await hook(event)
                else:
                    hook(event)
            except Exception as exc:
                logger.warning(f"Event hook failed for {event.name}: {exc}")
