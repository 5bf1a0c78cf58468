"""
Bid estimation tests.

Agreement ids are checked against an independent packing of the same
fields; update bids are driven through the in-memory chain and node.
"""

import hashlib

import pytest

from kasset.engine.bids import AgreementData, BidEstimator, derive_agreement_id
from kasset.engine.mock import MockChainService, MockNodeService
from kasset.engine.services import Blockchain, CreateAssetParams, NodeEndpoint
from kasset.errors import EstimationError
from kasset.ual import encode


CONTRACT = "0x" + "ab" * 20
ROOT = "0x" + "5a" * 32
TARGET = NodeEndpoint("http://localhost", 8900)
HARDHAT = Blockchain("hardhat")


def _expected_agreement_id(contract: str, token_id: int, root: str) -> str:
    address = bytes.fromhex(contract[2:])
    payload = address + token_id.to_bytes(32, "big") + address + bytes.fromhex(root[2:])
    return "0x" + hashlib.sha256(payload).hexdigest()


class TestAgreementId:

    def test_matches_packed_layout(self):
        assert derive_agreement_id(CONTRACT, 7, ROOT) == _expected_agreement_id(CONTRACT, 7, ROOT)

    def test_depends_on_every_input(self):
        base = derive_agreement_id(CONTRACT, 7, ROOT)
        assert derive_agreement_id(CONTRACT, 8, ROOT) != base
        assert derive_agreement_id("0x" + "cd" * 20, 7, ROOT) != base
        assert derive_agreement_id(CONTRACT, 7, "0x" + "5b" * 32) != base

    @pytest.mark.parametrize("contract,token_id,root", [
        ("0x1234", 1, ROOT),
        (CONTRACT, -1, ROOT),
        (CONTRACT, 1, "0x1234"),
    ])
    def test_invalid_inputs(self, contract, token_id, root):
        with pytest.raises(EstimationError):
            derive_agreement_id(contract, token_id, root)


class TestAgreementData:

    def test_epochs_left(self):
        agreement = AgreementData(start_time=1000, epoch_length=100, epochs_number=5, token_amount=10)
        assert agreement.current_epoch(1000) == 0
        assert agreement.epochs_left(1099) == 5
        assert agreement.epochs_left(1250) == 3
        assert agreement.epochs_left(1500) == 0

    def test_committed_includes_update_tokens(self):
        agreement = AgreementData(1000, 100, 5, token_amount=10, update_token_amount=4)
        assert agreement.committed == 14

    def test_from_mapping_accepts_strings(self):
        agreement = AgreementData.from_mapping({
            "start_time": "1000",
            "epoch_length": "100",
            "epochs_number": "5",
            "token_amount": "123456789012345678901234567890",
            "update_token_amount": None,
        })
        assert agreement.token_amount == 123456789012345678901234567890
        assert agreement.update_token_amount == 0
        assert agreement.to_dict()["epoch_length"] == 100

    @pytest.mark.parametrize("data", [
        {"start_time": 1},
        {"start_time": 1, "epoch_length": 0, "epochs_number": 1, "token_amount": 1},
        {"start_time": -1, "epoch_length": 1, "epochs_number": 1, "token_amount": 1},
        {"start_time": 1, "epoch_length": 1, "epochs_number": 1, "token_amount": "1.5"},
    ])
    def test_from_mapping_rejects_malformed(self, data):
        with pytest.raises(EstimationError):
            AgreementData.from_mapping(data)


class TestBidEstimator:

    @pytest.fixture
    def chain(self):
        chain = MockChainService(contract_address=CONTRACT)
        chain.create_asset(
            CreateAssetParams(
                public_assertion_id=ROOT,
                assertion_size=200,
                triples_number=2,
                chunks_number=2,
                epochs_num=5,
                token_amount=1000,
            ),
            HARDHAT,
        )
        return chain

    @pytest.fixture
    def ual(self):
        return encode("hardhat", CONTRACT, 0)

    def test_create_bid_is_quote(self):
        node = MockNodeService(bid_suggestion="2500")
        estimator = BidEstimator(MockChainService(), node)
        bid = estimator.estimate_create_bid(TARGET, HARDHAT, 321, 3, 1, CONTRACT, ROOT)
        assert bid == 2500
        assert node.bid_requests == [{
            "network": "hardhat",
            "epochs_num": 3,
            "size_bytes": 321,
            "contract": CONTRACT,
            "assertion_id": ROOT,
            "hash_function_id": 1,
        }]

    def test_agreement_for_reads_first_root(self, chain, ual):
        agreement = BidEstimator(chain, MockNodeService()).agreement_for(ual, HARDHAT)
        assert agreement.token_amount == 1000
        assert ("get_assertion_id_by_index", (0, 0)) in chain.calls

    def test_update_bid_is_delta(self, chain, ual):
        node = MockNodeService(bid_suggestion=1500)
        bid = BidEstimator(chain, node).estimate_update_bid(TARGET, HARDHAT, ual, ROOT, 300, 1)
        assert bid == 500

    def test_update_bid_counts_update_tokens(self, chain, ual):
        chain.add_update_tokens(0, 300, HARDHAT)
        node = MockNodeService(bid_suggestion=1500)
        assert BidEstimator(chain, node).estimate_update_bid(TARGET, HARDHAT, ual, ROOT, 300, 1) == 200

    def test_update_bid_floors_at_zero(self, chain, ual):
        node = MockNodeService(bid_suggestion="800")
        assert BidEstimator(chain, node).estimate_update_bid(TARGET, HARDHAT, ual, ROOT, 300, 1) == 0

    def test_update_bid_quotes_remaining_epochs(self, chain, ual):
        chain.advance_epochs(2)
        node = MockNodeService(bid_suggestion=1000)
        BidEstimator(chain, node).estimate_update_bid(TARGET, HARDHAT, ual, ROOT, 300, 1)
        assert node.bid_requests[-1]["epochs_num"] == 3

    def test_expired_agreement_raises(self, chain, ual):
        chain.advance_epochs(5)
        node = MockNodeService(bid_suggestion=5000)
        with pytest.raises(EstimationError):
            BidEstimator(chain, node).estimate_update_bid(TARGET, HARDHAT, ual, ROOT, 300, 1)
        assert node.bid_requests == []

    def test_missing_agreement_raises(self, chain, ual):
        chain.agreements.clear()
        with pytest.raises(EstimationError):
            BidEstimator(chain, MockNodeService()).agreement_for(ual, HARDHAT)

    @pytest.mark.parametrize("quote", ["abc", -5, 1.5, True])
    def test_unusable_quote_raises(self, chain, ual, quote):
        node = MockNodeService(bid_suggestion=quote)
        with pytest.raises(EstimationError):
            BidEstimator(chain, node).estimate_update_bid(TARGET, HARDHAT, ual, ROOT, 300, 1)
