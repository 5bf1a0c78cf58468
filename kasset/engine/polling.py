"""
Operation Poller

Bounded fixed-interval polling of asynchronous replication-node operations.

Algorithm:
    Each tick sleeps ``frequency`` seconds, then performs exactly one status
    fetch. ``COMPLETED`` and ``FAILED`` are terminal. With ``max_retries = N``
    at most ``N + 1`` fetches are made; when the budget runs out the last
    observed status is returned with a ``RetryBudgetExceeded`` error
    embedded. Polling never raises for an exhausted budget.

A status payload that does not match ``operation.result.schema.json`` ends
polling with a ``FAILED`` result carrying a ``NodeResponseError``.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from kasset.engine.observability import Layer, get_logger, get_tracer
from kasset.engine.services import NodeEndpoint, NodeService
from kasset.errors import (
    CLIENT_ERROR_TYPE,
    NodeResponseError,
    ResultError,
    RetryBudgetExceeded,
    ValidationError,
)
from kasset.schema import validate_against_schema

logger = get_logger("poller", Layer.POLLING)

OPERATION_RESULT_SCHEMA = "operation.result.schema.json"


class OperationKind(Enum):
    """Asynchronous operation kinds exposed by a replication node."""
    LOCAL_STORE = "local-store"
    PUBLISH = "publish"
    UPDATE = "update"
    GET = "get"
    QUERY = "query"


class OperationState(Enum):
    """Caller-visible operation status."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @classmethod
    def from_wire(cls, status: str) -> "OperationState":
        """Map a node status onto the three caller-visible states.

        Nodes report intermediate phases (``PUBLISH_START`` and the like);
        anything that is not terminal counts as pending.
        """
        upper = status.upper()
        if upper == cls.COMPLETED.value:
            return cls.COMPLETED
        if upper == cls.FAILED.value:
            return cls.FAILED
        return cls.PENDING

    @property
    def is_terminal(self) -> bool:
        return self in (OperationState.COMPLETED, OperationState.FAILED)


@dataclass
class OperationStatus:
    """Operation summary attached to every orchestrator result."""
    operation_id: Optional[str]
    status: OperationState
    data: Any = None
    errors: List[ResultError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "operation_id": self.operation_id,
            "status": self.status.value,
        }
        if self.data is not None:
            out["data"] = self.data
        if self.errors:
            out["errors"] = [e.to_dict() for e in self.errors]
        return out


@dataclass
class OperationResult:
    """Outcome of polling one operation."""
    operation: OperationKind
    operation_id: str
    status: OperationState
    data: Any = None
    raw_status: str = ""
    attempts: int = 0
    errors: List[ResultError] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status == OperationState.COMPLETED

    @property
    def failed(self) -> bool:
        return self.status == OperationState.FAILED

    @property
    def exhausted(self) -> bool:
        return any(e.kind == RetryBudgetExceeded.__name__ for e in self.errors)

    def add_error(self, exc: BaseException) -> None:
        self.errors.append(ResultError.from_exception(exc))

    def summary(self) -> OperationStatus:
        """Caller-facing summary; payload data is kept only when it is a node error."""
        return OperationStatus(
            operation_id=self.operation_id,
            status=self.status,
            data=self.data if _node_reported_error(self.data) else None,
            errors=list(self.errors),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation.value,
            "operation_id": self.operation_id,
            "status": self.status.value,
            "raw_status": self.raw_status,
            "attempts": self.attempts,
            "data": self.data,
            "errors": [e.to_dict() for e in self.errors],
        }


def _node_reported_error(data: Any) -> Optional[ResultError]:
    if isinstance(data, dict) and ("errorType" in data or "errorMessage" in data):
        return ResultError(
            error_type=str(data.get("errorType") or CLIENT_ERROR_TYPE),
            message=str(data.get("errorMessage", "")),
            kind="NodeReportedError",
        )
    return None


class OperationPoller:
    """
    Polls a replication node until an operation reaches a terminal status.

    ``sleep`` is injectable so tests can run without wall-clock delays.
    """

    def __init__(self, node: NodeService, sleep: Callable[[float], None] = time.sleep):
        self.node = node
        self.sleep = sleep

    def wait(
        self,
        target: NodeEndpoint,
        operation: OperationKind,
        operation_id: str,
        max_retries: int,
        frequency: float,
    ) -> OperationResult:
        if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 0:
            raise ValidationError("max_number_of_retries", "must be a non-negative integer", max_retries)
        if isinstance(frequency, bool) or not isinstance(frequency, (int, float)) or frequency < 0:
            raise ValidationError("frequency", "must be a non-negative number", frequency)

        result = OperationResult(
            operation=operation,
            operation_id=operation_id,
            status=OperationState.PENDING,
        )

        with get_tracer().span(
            "poll_operation", Layer.POLLING,
            operation=operation.value, operation_id=operation_id,
        ) as span:
            while result.attempts <= max_retries:
                self.sleep(frequency)
                result.attempts += 1
                response = self.node.get_operation_result(target, operation.value, operation_id)
                span.record_event("fetch", attempt=result.attempts)

                problems = validate_against_schema(response, OPERATION_RESULT_SCHEMA)
                if problems:
                    logger.warning(
                        "Malformed operation result",
                        operation=operation.value,
                        operation_id=operation_id,
                        problems=problems,
                    )
                    result.status = OperationState.FAILED
                    result.data = None
                    result.add_error(NodeResponseError(
                        f"malformed {operation.value} result: {'; '.join(problems)}"
                    ))
                    span.set_status("error", "malformed response")
                    return result

                result.raw_status = response["status"]
                result.status = OperationState.from_wire(response["status"])
                result.data = response.get("data")

                if result.status.is_terminal:
                    if result.failed:
                        reported = _node_reported_error(result.data)
                        if reported is not None:
                            result.errors.append(reported)
                    logger.debug(
                        "Operation reached terminal status",
                        operation=operation.value,
                        operation_id=operation_id,
                        status=result.status.value,
                        attempts=result.attempts,
                    )
                    return result

            result.add_error(RetryBudgetExceeded(operation.value, operation_id, result.attempts))
            span.set_status("exhausted")
            logger.warning(
                "Retry budget exhausted",
                operation=operation.value,
                operation_id=operation_id,
                attempts=result.attempts,
                last_status=result.raw_status,
            )
            return result
