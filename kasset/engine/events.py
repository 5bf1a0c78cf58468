"""
Phase events and the observer capability.

The orchestrator reports every completed pipeline phase to an optional
observer. Observers implement a single method::

    class Recorder:
        def __init__(self):
            self.events = []

        def after_phase_completed(self, event):
            self.events.append(event)

    orchestrator = AssetOrchestrator(chain, node, observer=Recorder())

Observers run synchronously on the calling thread. An observer that raises
is logged and skipped; the operation result is unaffected.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable


class StepStatus(Enum):
    """Completion markers reported after the terminal publish poll."""
    CREATE_ASSET_COMPLETED = "CREATE_ASSET_COMPLETED"
    UPDATE_ASSET_COMPLETED = "UPDATE_ASSET_COMPLETED"


@dataclass
class Event:
    """
    Base class for orchestrator events.

    Events are immutable facts. Each carries a unique id and a timestamp.
    """
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, sort_keys=True)


@dataclass
class PhaseCompleted(Event):
    """Emitted when a create or update pipeline leaves a phase."""
    operation: str = ""
    phase: str = ""
    next_phase: str = ""
    ual: str = ""
    step_status: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


@runtime_checkable
class PhaseObserver(Protocol):
    """Capability accepted by the orchestrator."""

    def after_phase_completed(self, event: PhaseCompleted) -> None:
        ...
