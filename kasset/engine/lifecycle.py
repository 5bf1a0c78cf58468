"""
Publish Pipeline

Create and update run through the same named phases. The pipeline records
every transition and reports each completed phase to the observer.

State Machine:

    BUILD_CONTENT
         │
         ▼
    DERIVE_ASSERTIONS
         │
         ▼
    RESOLVE_STORAGE_ADDRESS
         │
         ▼
    ESTIMATE_BID
         │
         ▼
    SUBMIT_ON_CHAIN
         │
         ▼
    LOCAL_REPLICATE ─────────────▶ FAILED
         │
         ▼
    PUBLISH_OFF_CHAIN
         │
         ▼
       DONE

Leaving LOCAL_REPLICATE for FAILED is the early exit taken when the node
reports that it could not store the assertions locally; nothing is
published in that case.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from kasset.engine.events import PhaseCompleted, PhaseObserver, StepStatus
from kasset.engine.observability import Layer, get_correlation_id, get_logger

logger = get_logger("pipeline", Layer.ORCHESTRATOR)


class AssetPhase(Enum):
    """Phases of a create or update pipeline."""
    BUILD_CONTENT = "build_content"
    DERIVE_ASSERTIONS = "derive_assertions"
    RESOLVE_STORAGE_ADDRESS = "resolve_storage_address"
    ESTIMATE_BID = "estimate_bid"
    SUBMIT_ON_CHAIN = "submit_on_chain"
    LOCAL_REPLICATE = "local_replicate"
    PUBLISH_OFF_CHAIN = "publish_off_chain"
    DONE = "done"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        return self in {AssetPhase.DONE, AssetPhase.FAILED}


@dataclass
class PhaseTransition:
    """Record of a phase transition."""
    from_phase: Optional[AssetPhase]
    to_phase: AssetPhase
    timestamp: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_phase": self.from_phase.value if self.from_phase else None,
            "to_phase": self.to_phase.value,
            "timestamp": self.timestamp,
            "reason": self.reason,
        }


class PublishPipeline:
    """
    Phase bookkeeping for one create or update call.

    Example:
        pipeline = PublishPipeline("create", observer)
        pipeline.advance_to(AssetPhase.DERIVE_ASSERTIONS)
        ...
        pipeline.finish(StepStatus.CREATE_ASSET_COMPLETED, result)
    """

    VALID_TRANSITIONS: Dict[AssetPhase, Set[AssetPhase]] = {
        AssetPhase.BUILD_CONTENT: {AssetPhase.DERIVE_ASSERTIONS},
        AssetPhase.DERIVE_ASSERTIONS: {AssetPhase.RESOLVE_STORAGE_ADDRESS},
        AssetPhase.RESOLVE_STORAGE_ADDRESS: {AssetPhase.ESTIMATE_BID},
        AssetPhase.ESTIMATE_BID: {AssetPhase.SUBMIT_ON_CHAIN},
        AssetPhase.SUBMIT_ON_CHAIN: {AssetPhase.LOCAL_REPLICATE},
        AssetPhase.LOCAL_REPLICATE: {AssetPhase.PUBLISH_OFF_CHAIN, AssetPhase.FAILED},
        AssetPhase.PUBLISH_OFF_CHAIN: {AssetPhase.DONE},
        AssetPhase.DONE: set(),
        AssetPhase.FAILED: set(),
    }

    def __init__(self, operation: str, observer: Optional[PhaseObserver] = None):
        self.operation = operation
        self.observer = observer
        self.ual = ""
        self._phase = AssetPhase.BUILD_CONTENT
        self.transitions: List[PhaseTransition] = []
        self._record_transition(None, AssetPhase.BUILD_CONTENT, f"{operation} started")

    @property
    def phase(self) -> AssetPhase:
        return self._phase

    @property
    def is_complete(self) -> bool:
        return self._phase.is_terminal()

    def can_transition_to(self, target: AssetPhase) -> bool:
        return target in self.VALID_TRANSITIONS.get(self._phase, set())

    def advance_to(
        self,
        target: AssetPhase,
        reason: str = "",
        step_status: Optional[StepStatus] = None,
        result: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Leave the current phase for ``target``.

        Returns False, and changes nothing, when the transition is not
        allowed from the current phase.
        """
        if not self.can_transition_to(target):
            logger.warning(
                "Rejected phase transition",
                operation=self.operation,
                from_phase=self._phase.value,
                to_phase=target.value,
            )
            return False

        old = self._phase
        self._phase = target
        self._record_transition(old, target, reason or f"Advanced to {target.value}")
        self._notify(PhaseCompleted(
            correlation_id=get_correlation_id(),
            operation=self.operation,
            phase=old.value,
            next_phase=target.value,
            ual=self.ual,
            step_status=step_status.value if step_status else None,
            result=result,
        ))
        return True

    def finish(self, step_status: StepStatus, result: Dict[str, Any]) -> bool:
        """Complete the off-chain phase, reporting the completion marker."""
        return self.advance_to(AssetPhase.DONE, "off-chain phase finished", step_status, result)

    def fail(self, reason: str, result: Optional[Dict[str, Any]] = None) -> bool:
        return self.advance_to(AssetPhase.FAILED, reason, result=result)

    def _record_transition(self, from_phase: Optional[AssetPhase], to_phase: AssetPhase, reason: str) -> None:
        self.transitions.append(PhaseTransition(
            from_phase=from_phase,
            to_phase=to_phase,
            timestamp=datetime.now(timezone.utc).isoformat(),
            reason=reason,
        ))

    def _notify(self, event: PhaseCompleted) -> None:
        if self.observer is None:
            return
        try:
            self.observer.after_phase_completed(event)
        except Exception:
            logger.error(
                "Phase observer failed",
                exc_info=True,
                operation=self.operation,
                phase=event.phase,
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "phase": self._phase.value,
            "ual": self.ual,
            "transitions": [t.to_dict() for t in self.transitions],
        }
