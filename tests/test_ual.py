import pytest

from kasset.errors import MalformedLocatorError
from kasset.ual import ParsedUAL, decode, encode, is_valid, normalize_network


CONTRACT = "0x" + "ab" * 20


class TestNormalizeNetwork:

    @pytest.mark.parametrize("name,expected", [
        ("hardhat", "hardhat"),
        ("Hardhat", "hardhat"),
        ("otp", "otp"),
        ("otp:2043", "otp"),
        ("OTP:20430", "otp"),
        ("otp-mainnet", "otp"),
        ("gnosis:100", "gnosis:100"),
    ])
    def test_normalization(self, name, expected):
        assert normalize_network(name) == expected

    @pytest.mark.parametrize("name", ["", "   ", None, 7, "bad name", "-leading"])
    def test_rejects_invalid(self, name):
        with pytest.raises(MalformedLocatorError):
            normalize_network(name)


class TestEncodeDecode:

    def test_round_trip(self):
        ual = encode("hardhat", CONTRACT, 12)
        assert ual == f"did:dkg:hardhat/{CONTRACT}/12"
        assert decode(ual) == ParsedUAL(network="hardhat", contract=CONTRACT, token_id=12)
        assert decode(ual).encode() == ual

    def test_otp_networks_collapse(self):
        ual = encode("otp:2043", CONTRACT, 1)
        assert ual.startswith("did:dkg:otp/")
        assert decode(f"did:dkg:otp:2043/{CONTRACT}/1").network == "otp"

    def test_contract_lowercased(self):
        parsed = decode(f"did:dkg:hardhat/{CONTRACT.upper().replace('0X', '0x')}/3")
        assert parsed.contract == CONTRACT

    def test_legacy_colon_form(self):
        parsed = decode(f"did:dkg:hardhat:{CONTRACT}:5")
        assert parsed == ParsedUAL("hardhat", CONTRACT, 5)

    def test_token_id_as_string(self):
        assert encode("hardhat", CONTRACT, "7").endswith("/7")

    def test_to_dict(self):
        assert decode(encode("hardhat", CONTRACT, 0)).to_dict() == {
            "network": "hardhat",
            "contract": CONTRACT,
            "token_id": 0,
        }

    @pytest.mark.parametrize("ual", [
        None,
        42,
        "",
        "hardhat/0xabc/1",
        f"did:dkg:hardhat/{CONTRACT}",
        f"did:dkg:hardhat/{CONTRACT}/1/2",
        f"did:dkg:hardhat/{CONTRACT}/",
        "did:dkg:hardhat/0x1234/1",
        f"did:dkg:hardhat/{CONTRACT}/-1",
        f"did:dkg:hardhat/{CONTRACT}/abc",
        f"did:dkg:/{CONTRACT}/1",
    ])
    def test_malformed(self, ual):
        with pytest.raises(MalformedLocatorError):
            decode(ual)
        assert not is_valid(ual)

    def test_encode_rejects_bad_parts(self):
        with pytest.raises(MalformedLocatorError):
            encode("hardhat", "0x12", 1)
        with pytest.raises(MalformedLocatorError):
            encode("hardhat", CONTRACT, -1)
        with pytest.raises(MalformedLocatorError):
            encode("hardhat", CONTRACT, True)
