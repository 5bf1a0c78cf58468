"""
Bid Estimator

Computes the token amount needed to fund storage of an assertion.

Create bids are the node's price quote as-is. Update bids account for what
the asset's storage agreement has already committed::

    keyword      = pack(address contract, bytes32 first_root)
    agreement_id = sha256(pack(address contract, uint256 token_id, bytes keyword))
    epochs_left  = epochs_number - floor((now - start_time) / epoch_length)
    delta        = quote(epochs_left, size) - (token_amount + update_token_amount)
    bid          = max(delta, 0)

The first root (assertion index 0) seeds the keyword so the agreement id
stays fixed across updates. An agreement with no epochs left cannot be
topped up and raises ``EstimationError``.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping

from kasset.core import pack_address, pack_bytes32, pack_uint256, sha256_bytes
from kasset.engine.observability import Layer, get_logger
from kasset.engine.services import Blockchain, ChainService, NodeEndpoint, NodeService
from kasset.errors import EstimationError
from kasset.schema import validate_against_schema
from kasset.ual import decode

logger = get_logger("estimator", Layer.BIDS)

AGREEMENT_SCHEMA = "agreement.schema.json"


def agreement_keyword(contract: str, first_assertion_id: str) -> bytes:
    return pack_address(contract) + pack_bytes32(first_assertion_id)


def derive_agreement_id(contract: str, token_id: int, first_assertion_id: str) -> str:
    """Derive the id of the storage agreement for an asset."""
    try:
        payload = (
            pack_address(contract)
            + pack_uint256(token_id)
            + agreement_keyword(contract, first_assertion_id)
        )
    except ValueError as e:
        raise EstimationError(f"cannot derive agreement id: {e}") from e
    return "0x" + sha256_bytes(payload)


def _to_amount(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise EstimationError(f"{what} must be an integer amount, got {value!r}")
    try:
        amount = int(value)
    except (TypeError, ValueError) as e:
        raise EstimationError(f"{what} must be an integer amount, got {value!r}") from e
    if isinstance(value, float) and amount != value:
        raise EstimationError(f"{what} must be an integer amount, got {value!r}")
    if amount < 0:
        raise EstimationError(f"{what} must be non-negative, got {value!r}")
    return amount


@dataclass(frozen=True)
class AgreementData:
    """On-chain storage agreement, read-only on the client side."""
    start_time: int
    epoch_length: int
    epochs_number: int
    token_amount: int
    update_token_amount: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AgreementData":
        problems = validate_against_schema(data, AGREEMENT_SCHEMA)
        if problems:
            raise EstimationError(f"malformed agreement record: {'; '.join(problems)}")
        return cls(
            start_time=int(data["start_time"]),
            epoch_length=int(data["epoch_length"]),
            epochs_number=int(data["epochs_number"]),
            token_amount=int(data["token_amount"]),
            update_token_amount=int(data.get("update_token_amount") or 0),
        )

    @property
    def committed(self) -> int:
        """Tokens already committed to the agreement."""
        return self.token_amount + self.update_token_amount

    def current_epoch(self, now: int) -> int:
        return (now - self.start_time) // self.epoch_length

    def epochs_left(self, now: int) -> int:
        return self.epochs_number - self.current_epoch(now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": self.start_time,
            "epoch_length": self.epoch_length,
            "epochs_number": self.epochs_number,
            "token_amount": self.token_amount,
            "update_token_amount": self.update_token_amount,
        }


class BidEstimator:
    """Bid estimation against a chain and a replication node."""

    def __init__(self, chain: ChainService, node: NodeService):
        self.chain = chain
        self.node = node

    def estimate_create_bid(
        self,
        target: NodeEndpoint,
        blockchain: Blockchain,
        size_bytes: int,
        epochs: int,
        hash_function_id: int,
        contract: str,
        assertion_root: str,
    ) -> int:
        """Price quote for a fresh asset; no local adjustment."""
        quote = self.node.get_bid_suggestion(
            target,
            blockchain.network,
            epochs,
            size_bytes,
            contract,
            assertion_root,
            hash_function_id,
        )
        return _to_amount(quote, "bid suggestion")

    def agreement_for(self, ual: str, blockchain: Blockchain) -> AgreementData:
        """Read the storage agreement of the asset named by ``ual``."""
        parsed = decode(ual)
        first_root = self.chain.get_assertion_id_by_index(parsed.token_id, 0, blockchain)
        agreement_id = derive_agreement_id(parsed.contract, parsed.token_id, first_root)
        data = self.chain.get_agreement_data(agreement_id, blockchain)
        if not isinstance(data, Mapping):
            raise EstimationError(f"no agreement data for {agreement_id}")
        return AgreementData.from_mapping(data)

    def estimate_update_bid(
        self,
        target: NodeEndpoint,
        blockchain: Blockchain,
        ual: str,
        assertion_root: str,
        size_bytes: int,
        hash_function_id: int,
    ) -> int:
        """
        Tokens still needed to fund ``assertion_root`` for the remaining
        epochs of the asset's agreement.

        Never negative.

        Raises:
            EstimationError: the agreement has no epochs left, or a value
                read from the chain or the node is not an amount.
        """
        parsed = decode(ual)
        agreement = self.agreement_for(ual, blockchain)
        now = _to_amount(self.chain.get_blockchain_timestamp(blockchain), "blockchain timestamp")

        epochs_left = agreement.epochs_left(now)
        if epochs_left <= 0:
            raise EstimationError(
                f"storage agreement for {ual} has expired ({epochs_left} epochs left)"
            )

        quote = _to_amount(
            self.node.get_bid_suggestion(
                target,
                blockchain.network,
                epochs_left,
                size_bytes,
                parsed.contract,
                assertion_root,
                hash_function_id,
            ),
            "bid suggestion",
        )
        delta = quote - agreement.committed
        logger.debug(
            "Estimated update bid",
            ual=ual,
            epochs_left=epochs_left,
            quote=quote,
            committed=agreement.committed,
            delta=delta,
        )
        return delta if delta > 0 else 0
