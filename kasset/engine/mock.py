"""
In-memory collaborators.

``MockChainService`` and ``MockNodeService`` implement the service
protocols without network access. They keep just enough state to drive
create, get, update and finalization flows end to end, and record every
call for assertions in tests.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from kasset.assertion import extract_private_root
from kasset.engine.bids import derive_agreement_id
from kasset.engine.services import (
    CONTENT_ASSET_STORAGE,
    Blockchain,
    CreateAssetParams,
    NodeEndpoint,
)
from kasset.ual import encode

ZERO_BYTES32 = "0x" + "00" * 32

_GRAPH_RE = re.compile(r"GRAPH\s*<assertion:(0x[0-9a-fA-F]+)>")


# =============================================================================
# MOCK CHAIN
# =============================================================================

@dataclass
class MockAsset:
    owner: str
    assertion_ids: List[str] = field(default_factory=list)
    pending: Optional[str] = None
    immutable: bool = False
    burned: bool = False


class MockChainService:
    """
    Mock chain for testing.

    Simulates asset storage, agreements and a block clock. ``now`` can be
    moved forward with ``advance_epochs``.
    """

    def __init__(
        self,
        contract_address: str = "0x" + "ab" * 20,
        owner: str = "0x" + "11" * 20,
        start_time: int = 1_700_000_000,
        epoch_length: int = 3600,
    ):
        self.contract_address = contract_address
        self.owner = owner
        self.now = start_time
        self.epoch_length = epoch_length
        self.assets: Dict[int, MockAsset] = {}
        self.agreements: Dict[str, Dict[str, int]] = {}
        self.assertion_sizes: Dict[str, int] = {}
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self._next_token_id = 0
        self._lock = threading.Lock()

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def _asset(self, token_id: int) -> MockAsset:
        asset = self.assets.get(token_id)
        if asset is None or asset.burned:
            raise LookupError(f"unknown token id {token_id}")
        return asset

    def _agreement(self, token_id: int) -> Dict[str, int]:
        asset = self._asset(token_id)
        return self.agreements[derive_agreement_id(self.contract_address, token_id, asset.assertion_ids[0])]

    def get_contract_address(self, name: str, blockchain: Blockchain) -> str:
        self._record("get_contract_address", name, blockchain.name)
        if name != CONTENT_ASSET_STORAGE:
            raise LookupError(f"unknown contract {name}")
        return self.contract_address

    def create_asset(self, params: CreateAssetParams, blockchain: Blockchain) -> int:
        self._record("create_asset", params)
        with self._lock:
            token_id = self._next_token_id
            self._next_token_id += 1
        self.assets[token_id] = MockAsset(
            owner=self.owner,
            assertion_ids=[params.public_assertion_id],
            immutable=params.immutable,
        )
        self.assertion_sizes[params.public_assertion_id] = params.assertion_size
        agreement_id = derive_agreement_id(self.contract_address, token_id, params.public_assertion_id)
        self.agreements[agreement_id] = {
            "start_time": self.now,
            "epoch_length": self.epoch_length,
            "epochs_number": params.epochs_num,
            "token_amount": params.token_amount,
            "update_token_amount": 0,
        }
        return token_id

    def update_asset(
        self,
        token_id: int,
        assertion_id: str,
        size: int,
        triples_number: int,
        chunks_number: int,
        token_amount: int,
        blockchain: Blockchain,
    ) -> None:
        self._record("update_asset", token_id, assertion_id, size, triples_number, chunks_number, token_amount)
        asset = self._asset(token_id)
        if asset.immutable:
            raise PermissionError(f"asset {token_id} is immutable")
        asset.pending = assertion_id
        self.assertion_sizes[assertion_id] = size
        self._agreement(token_id)["update_token_amount"] += token_amount

    def has_pending_update(self, token_id: int, blockchain: Blockchain) -> bool:
        self._record("has_pending_update", token_id)
        return self._asset(token_id).pending is not None

    def get_unfinalized_state(self, token_id: int, blockchain: Blockchain) -> str:
        self._record("get_unfinalized_state", token_id)
        return self._asset(token_id).pending or ZERO_BYTES32

    def get_latest_assertion_id(self, token_id: int, blockchain: Blockchain) -> str:
        self._record("get_latest_assertion_id", token_id)
        return self._asset(token_id).assertion_ids[-1]

    def get_assertion_id_by_index(self, token_id: int, index: int, blockchain: Blockchain) -> str:
        self._record("get_assertion_id_by_index", token_id, index)
        return self._asset(token_id).assertion_ids[index]

    def get_assertion_size(self, assertion_id: str, blockchain: Blockchain) -> int:
        self._record("get_assertion_size", assertion_id)
        return self.assertion_sizes.get(assertion_id, 0)

    def get_agreement_data(self, agreement_id: str, blockchain: Blockchain) -> Optional[Dict[str, int]]:
        self._record("get_agreement_data", agreement_id)
        data = self.agreements.get(agreement_id)
        return dict(data) if data is not None else None

    def get_blockchain_timestamp(self, blockchain: Blockchain) -> int:
        self._record("get_blockchain_timestamp")
        return self.now

    def transfer_asset(self, token_id: int, new_owner: str, blockchain: Blockchain) -> None:
        self._record("transfer_asset", token_id, new_owner)
        self._asset(token_id).owner = new_owner

    def get_asset_owner(self, token_id: int, blockchain: Blockchain) -> str:
        self._record("get_asset_owner", token_id)
        return self._asset(token_id).owner

    def burn_asset(self, token_id: int, blockchain: Blockchain) -> None:
        self._record("burn_asset", token_id)
        self._asset(token_id).burned = True

    def extend_asset_storing_period(
        self,
        token_id: int,
        epochs_number: int,
        token_amount: int,
        blockchain: Blockchain,
    ) -> None:
        self._record("extend_asset_storing_period", token_id, epochs_number, token_amount)
        agreement = self._agreement(token_id)
        agreement["epochs_number"] += epochs_number
        agreement["token_amount"] += token_amount

    def add_tokens(self, token_id: int, token_amount: int, blockchain: Blockchain) -> None:
        self._record("add_tokens", token_id, token_amount)
        self._agreement(token_id)["token_amount"] += token_amount

    def add_update_tokens(self, token_id: int, token_amount: int, blockchain: Blockchain) -> None:
        self._record("add_update_tokens", token_id, token_amount)
        self._agreement(token_id)["update_token_amount"] += token_amount

    def cancel_asset_update(self, token_id: int, blockchain: Blockchain) -> None:
        self._record("cancel_asset_update", token_id)
        self._asset(token_id).pending = None
        self._agreement(token_id)["update_token_amount"] = 0

    # -- test controls -------------------------------------------------------

    def finalize(self, token_id: int) -> None:
        """Settle a pending update the way replication finalization would."""
        asset = self._asset(token_id)
        if asset.pending is None:
            return
        asset.assertion_ids.append(asset.pending)
        asset.pending = None
        agreement = self._agreement(token_id)
        agreement["token_amount"] += agreement["update_token_amount"]
        agreement["update_token_amount"] = 0

    def advance_epochs(self, epochs: int) -> None:
        self.now += epochs * self.epoch_length


# =============================================================================
# MOCK NODE
# =============================================================================

ScriptEntry = Union[str, Dict[str, Any], None]


@dataclass
class MockOperation:
    kind: str
    final: Dict[str, Any]
    script: List[ScriptEntry] = field(default_factory=list)
    fetches: int = 0


class MockNodeService:
    """
    Mock replication node for testing.

    Operations complete on the first status fetch unless a script was
    queued for their kind with ``script``. Script entries are consumed one
    per fetch: a status string, a raw response mapping, or ``None`` for an
    empty response. Once the script runs out the natural result is
    returned.
    """

    def __init__(self, bid_suggestion: Union[int, str] = 1000, inline_private: bool = False):
        self.bid_suggestion = bid_suggestion
        self.inline_private = inline_private
        self.assertions: Dict[str, List[str]] = {}
        self.published: Dict[str, str] = {}
        self.pending: Dict[str, str] = {}
        self.operations: Dict[str, MockOperation] = {}
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.bid_requests: List[Dict[str, Any]] = []
        self._scripts: Dict[str, List[List[ScriptEntry]]] = {}
        self._seq = 0
        self._lock = threading.Lock()

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def script(self, kind: str, statuses: List[ScriptEntry]) -> None:
        """Queue the fetch sequence for the next operation of ``kind``."""
        self._scripts.setdefault(kind, []).append(list(statuses))

    def tamper(self, assertion_id: str, statements: List[str]) -> None:
        """Replace stored content so a fetched assertion no longer matches its root."""
        self.assertions[assertion_id] = list(statements)

    def _submit(self, kind: str, data: Any) -> str:
        with self._lock:
            self._seq += 1
            operation_id = f"{kind}-{self._seq:04d}"
            queued = self._scripts.get(kind) or []
            script = queued.pop(0) if queued else []
        self.operations[operation_id] = MockOperation(
            kind=kind,
            final={"status": "COMPLETED", "data": data},
            script=script,
        )
        return operation_id

    def local_store(self, target: NodeEndpoint, assertions: List[Dict[str, Any]]) -> str:
        self._record("local_store", assertions)
        for record in assertions:
            self.assertions[record["assertionId"]] = list(record["assertion"])
        return self._submit("local-store", {})

    def publish(
        self,
        target: NodeEndpoint,
        assertion_id: str,
        assertion: List[str],
        network: str,
        contract: str,
        token_id: int,
        hash_function_id: int,
    ) -> str:
        self._record("publish", assertion_id, network, contract, token_id, hash_function_id)
        self.assertions.setdefault(assertion_id, list(assertion))
        self.published[encode(network, contract, token_id)] = assertion_id
        return self._submit("publish", {})

    def update(
        self,
        target: NodeEndpoint,
        assertion_id: str,
        assertion: List[str],
        network: str,
        contract: str,
        token_id: int,
        hash_function_id: int,
    ) -> str:
        self._record("update", assertion_id, network, contract, token_id, hash_function_id)
        self.assertions.setdefault(assertion_id, list(assertion))
        self.pending[encode(network, contract, token_id)] = assertion_id
        return self._submit("update", {})

    def get(self, target: NodeEndpoint, ual: str, state: str, hash_function_id: int) -> str:
        self._record("get", ual, state, hash_function_id)
        assertion_id = None
        if state == "LATEST":
            assertion_id = self.pending.get(ual)
        assertion_id = assertion_id or self.published.get(ual)
        data: Dict[str, Any] = {}
        if assertion_id and assertion_id in self.assertions:
            statements = list(self.assertions[assertion_id])
            data["assertion"] = statements
            private_root = extract_private_root(statements)
            if self.inline_private and private_root in self.assertions:
                data["privateAssertion"] = list(self.assertions[private_root])
        return self._submit("get", data)

    def query(self, target: NodeEndpoint, query: str, query_type: str, repository: str) -> str:
        self._record("query", query, query_type, repository)
        match = _GRAPH_RE.search(query)
        statements = self.assertions.get(match.group(1), []) if match else []
        return self._submit("query", "\n".join(statements))

    def get_bid_suggestion(
        self,
        target: NodeEndpoint,
        network: str,
        epochs_num: int,
        size_bytes: int,
        contract: str,
        assertion_id: str,
        hash_function_id: int,
    ) -> Union[int, str]:
        self._record("get_bid_suggestion", network, epochs_num, size_bytes, contract, assertion_id)
        self.bid_requests.append({
            "network": network,
            "epochs_num": epochs_num,
            "size_bytes": size_bytes,
            "contract": contract,
            "assertion_id": assertion_id,
            "hash_function_id": hash_function_id,
        })
        return self.bid_suggestion

    def get_operation_result(
        self,
        target: NodeEndpoint,
        operation: str,
        operation_id: str,
    ) -> Optional[Dict[str, Any]]:
        self._record("get_operation_result", operation, operation_id)
        op = self.operations.get(operation_id)
        if op is None or op.kind != operation:
            return {
                "status": "FAILED",
                "data": {"errorType": "DKG_OPERATION_NOT_FOUND", "errorMessage": f"unknown operation {operation_id}"},
            }
        op.fetches += 1
        if op.script:
            entry = op.script.pop(0)
            if entry is None or isinstance(entry, dict):
                return entry
            if entry == "FAILED":
                return {
                    "status": "FAILED",
                    "data": {"errorType": "DKG_MOCK_FAILURE", "errorMessage": f"{op.kind} failed"},
                }
            return {"status": entry, "data": None}
        return dict(op.final)
