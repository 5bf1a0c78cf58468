"""
Collaborator interfaces.

The orchestrator never talks to a network directly. It is handed two
collaborators:

    ChainService    reads and writes on-chain asset state
    NodeService     submits asynchronous operations to a replication node
                    and fetches their status

Concrete transports (JSON-RPC, HTTP) implement these protocols; the
in-memory versions in ``kasset.engine.mock`` are used by the test suite.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Union

from kasset.ual import normalize_network


# Storage contract every asset is minted on.
CONTENT_ASSET_STORAGE = "ContentAssetStorage"


class StoreType(Enum):
    """How a replica stores an assertion handed to local store."""
    TRIPLE = "TRIPLE"
    PENDING = "PENDING"


class QueryType(Enum):
    CONSTRUCT = "CONSTRUCT"
    SELECT = "SELECT"


@dataclass(frozen=True)
class Blockchain:
    """Target network plus the credentials used to sign transactions."""
    name: str
    rpc: str = ""
    public_key: str = ""
    private_key: str = ""

    @property
    def network(self) -> str:
        """Network name as used in locators and node requests."""
        return normalize_network(self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "rpc": self.rpc,
            "public_key": self.public_key,
        }


@dataclass(frozen=True)
class NodeEndpoint:
    """Replication node address."""
    endpoint: str
    port: int
    auth_token: str = ""

    @property
    def url(self) -> str:
        return f"{self.endpoint.rstrip('/')}:{self.port}"


@dataclass(frozen=True)
class StoreRecord:
    """One assertion handed to a node's local store."""
    network: str
    contract: str
    token_id: int
    assertion_id: str
    assertion: List[str]
    store_type: StoreType

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blockchain": self.network,
            "contract": self.contract,
            "tokenId": self.token_id,
            "assertionId": self.assertion_id,
            "assertion": list(self.assertion),
            "storeType": self.store_type.value,
        }


@dataclass(frozen=True)
class CreateAssetParams:
    """Arguments of the on-chain mint transaction."""
    public_assertion_id: str
    assertion_size: int
    triples_number: int
    chunks_number: int
    epochs_num: int
    token_amount: int
    score_function_id: int = 1
    immutable: bool = False


class ChainService(Protocol):
    """
    On-chain collaborator.

    Every call is synchronous from the client's point of view: a write
    returns once the transaction is mined.
    """

    def get_contract_address(self, name: str, blockchain: Blockchain) -> str:
        ...

    def create_asset(self, params: CreateAssetParams, blockchain: Blockchain) -> int:
        """Mint an asset and return its token id."""
        ...

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
        ...

    def has_pending_update(self, token_id: int, blockchain: Blockchain) -> bool:
        ...

    def get_unfinalized_state(self, token_id: int, blockchain: Blockchain) -> str:
        ...

    def get_latest_assertion_id(self, token_id: int, blockchain: Blockchain) -> str:
        ...

    def get_assertion_id_by_index(self, token_id: int, index: int, blockchain: Blockchain) -> str:
        ...

    def get_assertion_size(self, assertion_id: str, blockchain: Blockchain) -> int:
        ...

    def get_agreement_data(self, agreement_id: str, blockchain: Blockchain) -> Dict[str, Any]:
        """Return ``start_time``, ``epoch_length``, ``epochs_number``,
        ``token_amount`` and ``update_token_amount``."""
        ...

    def get_blockchain_timestamp(self, blockchain: Blockchain) -> int:
        ...

    def transfer_asset(self, token_id: int, new_owner: str, blockchain: Blockchain) -> None:
        ...

    def get_asset_owner(self, token_id: int, blockchain: Blockchain) -> str:
        ...

    def burn_asset(self, token_id: int, blockchain: Blockchain) -> None:
        ...

    def extend_asset_storing_period(
        self,
        token_id: int,
        epochs_number: int,
        token_amount: int,
        blockchain: Blockchain,
    ) -> None:
        ...

    def add_tokens(self, token_id: int, token_amount: int, blockchain: Blockchain) -> None:
        ...

    def add_update_tokens(self, token_id: int, token_amount: int, blockchain: Blockchain) -> None:
        ...

    def cancel_asset_update(self, token_id: int, blockchain: Blockchain) -> None:
        ...


class NodeService(Protocol):
    """
    Off-chain replication collaborator.

    Submissions return an operation id; ``get_operation_result`` performs a
    single status fetch for that id and returns ``{"status": ..., "data": ...}``.
    """

    def local_store(self, target: NodeEndpoint, assertions: List[Dict[str, Any]]) -> str:
        ...

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
        ...

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
        ...

    def get(self, target: NodeEndpoint, ual: str, state: str, hash_function_id: int) -> str:
        ...

    def query(self, target: NodeEndpoint, query: str, query_type: str, repository: str) -> str:
        ...

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
        ...

    def get_operation_result(
        self,
        target: NodeEndpoint,
        operation: str,
        operation_id: str,
    ) -> Optional[Dict[str, Any]]:
        ...
