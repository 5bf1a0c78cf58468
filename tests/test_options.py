import pytest

from kasset.engine.config import KassetConfig
from kasset.engine.options import (
    AssetOptions,
    ContentType,
    State,
    ValidationResult,
    Validators,
    resolve_options,
)
from kasset.engine.services import Blockchain
from kasset.errors import ValidationError, ValidationErrors
from kasset.nquads import OutputFormat


class TestResolveOptions:
    """Defaults come from configuration; per-call keys override them."""

    def test_defaults(self, config):
        opts = resolve_options(None, config)
        assert isinstance(opts, AssetOptions)
        assert opts.blockchain == Blockchain("hardhat")
        assert opts.node.endpoint == "http://localhost"
        assert opts.node.port == 8900
        assert opts.max_number_of_retries == 5
        assert opts.frequency == 5.0
        assert opts.local_store_frequency == 0.5
        assert opts.epochs_num == 5
        assert opts.hash_function_id == 1
        assert opts.score_function_id == 1
        assert opts.immutable is False
        assert opts.token_amount is None
        assert opts.state is State.LATEST
        assert opts.content_type is ContentType.ALL
        assert opts.output_format is OutputFormat.JSON_LD
        assert opts.validate is True

    def test_overrides(self, config):
        opts = resolve_options({
            "blockchain": "OTP:2043",
            "port": 9000,
            "max_number_of_retries": 0,
            "frequency": 0.1,
            "epochs_num": 12,
            "token_amount": "42",
            "state": "LATEST_FINALIZED",
            "content_type": "private",
            "output_format": "N-QUADS",
            "validate": False,
        }, config)
        assert opts.blockchain.network == "otp"
        assert opts.node.port == 9000
        assert opts.max_number_of_retries == 0
        assert opts.frequency == 0.1
        assert opts.epochs_num == 12
        assert opts.token_amount == 42
        assert opts.state is State.LATEST_FINALIZED
        assert opts.content_type is ContentType.PRIVATE
        assert opts.output_format is OutputFormat.N_QUADS
        assert opts.validate is False

    def test_enum_values_accepted(self, config):
        opts = resolve_options({"state": State.LATEST_FINALIZED, "output_format": OutputFormat.N_QUADS}, config)
        assert opts.state is State.LATEST_FINALIZED
        assert opts.output_format is OutputFormat.N_QUADS

    def test_blockchain_object(self, config):
        opts = resolve_options({"blockchain": Blockchain("gnosis:100", rpc="http://rpc.local")}, config)
        assert opts.blockchain.name == "gnosis:100"
        assert opts.blockchain.rpc == "http://rpc.local"

    def test_blockchain_credentials_from_config(self, config):
        config.blockchain.public_key.set("0x" + "11" * 20)
        opts = resolve_options({"blockchain": {"name": "hardhat"}}, config)
        assert opts.blockchain.public_key == "0x" + "11" * 20

    def test_config_values_used(self, config):
        config.polling.frequency.set(0.0)
        config.asset.epochs_num.set(2)
        opts = resolve_options({}, config)
        assert opts.frequency == 0.0
        assert opts.epochs_num == 2

    def test_env_overrides_config(self, config, monkeypatch):
        monkeypatch.setenv("KASSET_MAX_RETRIES", "9")
        assert resolve_options({}, config).max_number_of_retries == 9

    def test_to_dict_hides_private_key(self, config):
        opts = resolve_options({"blockchain": {"name": "hardhat", "private_key": "secret"}}, config)
        d = opts.to_dict()
        assert "private_key" not in d["blockchain"]
        assert d["state"] == "LATEST"

    def test_unknown_key(self, config):
        with pytest.raises(ValidationError) as exc:
            resolve_options({"max_retries": 3}, config)
        assert exc.value.field == "max_retries"
        assert exc.value.message == "unknown option"

    @pytest.mark.parametrize("key,value", [
        ("max_number_of_retries", -1),
        ("max_number_of_retries", "3"),
        ("frequency", -1),
        ("epochs_num", 0),
        ("port", 70000),
        ("immutable", "yes"),
        ("token_amount", -5),
        ("token_amount", "1.5"),
        ("state", "NEWEST"),
        ("content_type", "secret"),
        ("output_format", "XML"),
        ("blockchain", ""),
        ("blockchain", {"rpc": "http://x"}),
    ])
    def test_invalid_values(self, config, key, value):
        with pytest.raises(ValidationError) as exc:
            resolve_options({key: value}, config)
        assert exc.value.field.split(".")[0] in (key, "options")

    def test_invalid_network_name(self, config):
        with pytest.raises(ValidationError) as exc:
            resolve_options({"blockchain": "bad name"}, config)
        assert exc.value.field == "blockchain"

    def test_several_problems(self, config):
        with pytest.raises(ValidationErrors) as exc:
            resolve_options({"max_number_of_retries": -1, "epochs_num": 0}, config)
        assert {e.field for e in exc.value.errors} == {"max_number_of_retries", "epochs_num"}

    def test_options_must_be_mapping(self, config):
        with pytest.raises(ValidationError):
            resolve_options(["frequency", 1], config)

    def test_uses_global_config_when_none_given(self):
        assert resolve_options().node.port == KassetConfig().node.port.get()


class TestValidators:

    def test_validate_ual(self):
        ual = "did:dkg:hardhat/0x" + "ab" * 20 + "/1"
        assert Validators.validate_ual(ual).sanitized_value.token_id == 1
        bad = Validators.validate_ual("did:dkg:hardhat")
        assert not bad.is_valid
        assert bad.errors[0].field == "ual"

    def test_validate_address(self):
        result = Validators.validate_address("0x" + "AB" * 20)
        assert result.sanitized_value == "0x" + "ab" * 20
        assert not Validators.validate_address("0x123").is_valid
        assert not Validators.validate_address(None).is_valid

    @pytest.mark.parametrize("value,ok", [(1, True), (10, True), (0, False), (-1, False), (True, False), ("2", False)])
    def test_validate_positive_int(self, value, ok):
        assert Validators.validate_positive_int(value, "n").is_valid is ok

    @pytest.mark.parametrize("value,expected", [(0, 0), (15, 15), ("15", 15)])
    def test_validate_token_amount(self, value, expected):
        assert Validators.validate_token_amount(value).sanitized_value == expected

    @pytest.mark.parametrize("value", [-1, True, 1.5, "x", None])
    def test_validate_token_amount_rejects(self, value):
        assert not Validators.validate_token_amount(value).is_valid

    def test_raise_if_invalid(self):
        ValidationResult.success(1).raise_if_invalid()
        single = ValidationResult.failure([ValidationError("a", "bad")])
        with pytest.raises(ValidationError) as exc:
            single.raise_if_invalid()
        assert not isinstance(exc.value, ValidationErrors)
        many = ValidationResult.failure([ValidationError("a", "bad"), ValidationError("b", "worse")])
        with pytest.raises(ValidationErrors) as exc:
            many.raise_if_invalid()
        assert exc.value.field == "a"
        assert "b: worse" in str(exc.value)
