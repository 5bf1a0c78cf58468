"""
Operation poller tests.

The mock node completes operations on the first fetch unless a status
script is queued for the operation kind.
"""

import pytest

from kasset.engine.mock import MockNodeService
from kasset.engine.polling import (
    OperationKind,
    OperationPoller,
    OperationState,
    OperationStatus,
)
from kasset.engine.services import NodeEndpoint
from kasset.errors import ResultError, ValidationError


TARGET = NodeEndpoint("http://localhost", 8900)


@pytest.fixture
def node():
    return MockNodeService()


@pytest.fixture
def poller(node, sleeps):
    return OperationPoller(node, sleep=sleeps)


def _publish(node, statuses=None):
    if statuses is not None:
        node.script("publish", statuses)
    return node.publish(TARGET, "0x" + "11" * 32, ["<urn:a> <urn:p> <urn:b> ."], "hardhat", "0x" + "ab" * 20, 0, 1)


class TestOperationState:

    @pytest.mark.parametrize("wire,expected", [
        ("COMPLETED", OperationState.COMPLETED),
        ("completed", OperationState.COMPLETED),
        ("FAILED", OperationState.FAILED),
        ("PENDING", OperationState.PENDING),
        ("PUBLISH_REPLICATE_START", OperationState.PENDING),
    ])
    def test_from_wire(self, wire, expected):
        assert OperationState.from_wire(wire) is expected

    def test_terminal(self):
        assert OperationState.COMPLETED.is_terminal
        assert OperationState.FAILED.is_terminal
        assert not OperationState.PENDING.is_terminal


class TestOperationPoller:

    def test_completes_on_first_fetch(self, node, poller, sleeps):
        op_id = _publish(node)
        result = poller.wait(TARGET, OperationKind.PUBLISH, op_id, max_retries=3, frequency=0.25)
        assert result.completed
        assert result.attempts == 1
        assert result.errors == []
        assert sleeps.calls == [0.25]

    def test_sleeps_before_every_fetch(self, node, poller, sleeps):
        op_id = _publish(node, ["PENDING", "PUBLISH_START", "COMPLETED"])
        result = poller.wait(TARGET, OperationKind.PUBLISH, op_id, max_retries=5, frequency=2)
        assert result.completed
        assert result.attempts == 3
        assert node.operations[op_id].fetches == 3
        assert sleeps.calls == [2, 2, 2]

    @pytest.mark.parametrize("max_retries", [0, 1, 4])
    def test_at_most_max_retries_plus_one_fetches(self, node, poller, max_retries):
        op_id = _publish(node, ["PENDING"] * 10)
        result = poller.wait(TARGET, OperationKind.PUBLISH, op_id, max_retries=max_retries, frequency=0)
        assert node.operations[op_id].fetches == max_retries + 1
        assert result.attempts == max_retries + 1
        assert result.status == OperationState.PENDING
        assert result.exhausted

    def test_exhaustion_embeds_error(self, node, poller):
        op_id = _publish(node, ["PENDING"] * 3)
        result = poller.wait(TARGET, OperationKind.PUBLISH, op_id, max_retries=1, frequency=0)
        assert [e.kind for e in result.errors] == ["RetryBudgetExceeded"]
        assert result.errors[0].message == "Unable to get results. Max number of retries reached."
        assert result.raw_status == "PENDING"

    def test_failed_is_terminal(self, node, poller):
        op_id = _publish(node, ["PENDING", "FAILED", "COMPLETED"])
        result = poller.wait(TARGET, OperationKind.PUBLISH, op_id, max_retries=5, frequency=0)
        assert result.failed
        assert result.attempts == 2
        assert result.errors == [ResultError("DKG_MOCK_FAILURE", "publish failed", "NodeReportedError")]

    @pytest.mark.parametrize("response", [None, {"data": {}}, {"status": ""}, {"status": 5}, {"status": "COMPLETED", "data": 3}])
    def test_malformed_response_fails(self, node, poller, response):
        op_id = _publish(node, [response])
        result = poller.wait(TARGET, OperationKind.PUBLISH, op_id, max_retries=5, frequency=0)
        assert result.failed
        assert result.attempts == 1
        assert [e.kind for e in result.errors] == ["NodeResponseError"]

    def test_unknown_operation_reported_by_node(self, poller):
        result = poller.wait(TARGET, OperationKind.GET, "get-9999", max_retries=2, frequency=0)
        assert result.failed
        assert result.errors[0].error_type == "DKG_OPERATION_NOT_FOUND"

    @pytest.mark.parametrize("max_retries,frequency", [(-1, 1), (True, 1), ("3", 1), (1, -0.5), (1, "fast")])
    def test_invalid_arguments(self, node, poller, max_retries, frequency):
        op_id = _publish(node)
        with pytest.raises(ValidationError):
            poller.wait(TARGET, OperationKind.PUBLISH, op_id, max_retries=max_retries, frequency=frequency)
        assert node.operations[op_id].fetches == 0


class TestOperationSummary:

    def test_completed_summary_drops_payload(self, node, poller):
        op_id = _publish(node)
        summary = poller.wait(TARGET, OperationKind.PUBLISH, op_id, 0, 0).summary()
        assert summary == OperationStatus(operation_id=op_id, status=OperationState.COMPLETED)
        assert summary.to_dict() == {"operation_id": op_id, "status": "COMPLETED"}

    def test_failed_summary_keeps_node_error(self, node, poller):
        op_id = _publish(node, ["FAILED"])
        summary = poller.wait(TARGET, OperationKind.PUBLISH, op_id, 0, 0).summary()
        d = summary.to_dict()
        assert d["status"] == "FAILED"
        assert d["data"]["errorType"] == "DKG_MOCK_FAILURE"
        assert d["errors"][0]["error_type"] == "DKG_MOCK_FAILURE"

    def test_result_to_dict(self, node, poller):
        op_id = _publish(node)
        d = poller.wait(TARGET, OperationKind.PUBLISH, op_id, 0, 0).to_dict()
        assert d["operation"] == "publish"
        assert d["attempts"] == 1
        assert d["raw_status"] == "COMPLETED"
