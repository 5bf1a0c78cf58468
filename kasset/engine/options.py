"""
Per-call option defaulting and argument validation.

Every public orchestrator call accepts an optional ``options`` mapping with
snake_case keys. Missing keys are filled from configuration; present keys
are checked against ``asset.options.schema.json`` and then semantically
(network names, amounts). Any problem raises ``ValidationError`` before a
network call is made.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from kasset.engine.config import KassetConfig, get_config
from kasset.engine.services import Blockchain, NodeEndpoint
from kasset.errors import MalformedLocatorError, ValidationError, ValidationErrors
from kasset.nquads import OutputFormat
from kasset.schema import schema_validator
from kasset.ual import decode, normalize_network

OPTIONS_SCHEMA = "asset.options.schema.json"


class State(Enum):
    """Which assertion of an asset ``get`` reads."""
    LATEST = "LATEST"
    LATEST_FINALIZED = "LATEST_FINALIZED"


class ContentType(Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    ALL = "all"


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        if not self.is_valid:
            if len(self.errors) == 1:
                raise self.errors[0]
            raise ValidationErrors(self.errors)

    @classmethod
    def success(cls, sanitized_value: Any = None) -> "ValidationResult":
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> "ValidationResult":
        return cls(is_valid=False, errors=errors)


class Validators:
    """Argument validators shared by orchestrator operations."""

    HEX40_PATTERN = re.compile(r"^0x[a-f0-9]{40}$")

    @classmethod
    def validate_ual(cls, value: Any, field_name: str = "ual") -> ValidationResult:
        try:
            parsed = decode(value)
        except MalformedLocatorError as e:
            return ValidationResult.failure([ValidationError(field_name, str(e), value)])
        return ValidationResult.success(parsed)

    @classmethod
    def validate_address(cls, value: Any, field_name: str = "address") -> ValidationResult:
        """Validate an account address."""
        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected string, got {type(value).__name__}", value)
            ])
        lower = value.strip().lower()
        if not cls.HEX40_PATTERN.match(lower):
            return ValidationResult.failure([
                ValidationError(field_name, "Must be a valid address (0x + 40 hex)", value)
            ])
        return ValidationResult.success(lower)

    @classmethod
    def validate_positive_int(cls, value: Any, field_name: str) -> ValidationResult:
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            return ValidationResult.failure([
                ValidationError(field_name, "Must be a positive integer", value)
            ])
        return ValidationResult.success(value)

    @classmethod
    def validate_token_amount(cls, value: Any, field_name: str = "token_amount") -> ValidationResult:
        """Token amounts are non-negative integers; digit strings are accepted."""
        if isinstance(value, bool):
            return ValidationResult.failure([ValidationError(field_name, "Must be an integer amount", value)])
        if isinstance(value, str) and value.isdigit():
            return ValidationResult.success(int(value))
        if not isinstance(value, int):
            return ValidationResult.failure([ValidationError(field_name, "Must be an integer amount", value)])
        if value < 0:
            return ValidationResult.failure([ValidationError(field_name, "Must be non-negative", value)])
        return ValidationResult.success(value)


# =============================================================================
# RESOLVED OPTIONS
# =============================================================================

@dataclass(frozen=True)
class AssetOptions:
    """Fully resolved options for one orchestrator call."""
    blockchain: Blockchain
    node: NodeEndpoint
    max_number_of_retries: int
    frequency: float
    local_store_frequency: float
    epochs_num: int
    hash_function_id: int
    score_function_id: int
    immutable: bool
    token_amount: Optional[int]
    state: State
    content_type: ContentType
    output_format: OutputFormat
    validate: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blockchain": self.blockchain.to_dict(),
            "endpoint": self.node.endpoint,
            "port": self.node.port,
            "max_number_of_retries": self.max_number_of_retries,
            "frequency": self.frequency,
            "local_store_frequency": self.local_store_frequency,
            "epochs_num": self.epochs_num,
            "hash_function_id": self.hash_function_id,
            "score_function_id": self.score_function_id,
            "immutable": self.immutable,
            "token_amount": self.token_amount,
            "state": self.state.value,
            "content_type": self.content_type.value,
            "output_format": self.output_format.value,
            "validate": self.validate,
        }


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Blockchain):
        return {
            "name": value.name,
            "rpc": value.rpc,
            "public_key": value.public_key,
            "private_key": value.private_key,
        }
    return value


def _schema_errors(options: Dict[str, Any]) -> List[ValidationError]:
    validator = schema_validator(OPTIONS_SCHEMA)
    known = set(validator.schema.get("properties", {}))
    errors = [
        ValidationError(key, "unknown option", options[key])
        for key in sorted(options)
        if key not in known
    ]
    if errors:
        return errors
    for error in sorted(validator.iter_errors(options), key=lambda e: list(map(str, e.absolute_path))):
        path = [str(p) for p in error.absolute_path]
        field_name = ".".join(path) or "options"
        value = options.get(path[0]) if path else options
        errors.append(ValidationError(field_name, error.message, value))
    return errors


def _blockchain(value: Any, config: KassetConfig) -> Blockchain:
    if value is None:
        value = config.blockchain.name.get()
    if isinstance(value, str):
        value = {"name": value}
    return Blockchain(
        name=value["name"],
        rpc=value.get("rpc") or config.blockchain.rpc.get(),
        public_key=value.get("public_key") or config.blockchain.public_key.get(),
        private_key=value.get("private_key") or config.blockchain.private_key.get(),
    )


def resolve_options(
    options: Optional[Mapping[str, Any]] = None,
    config: Optional[KassetConfig] = None,
) -> AssetOptions:
    """
    Merge per-call options over configuration defaults.

    Raises:
        ValidationError: unknown key, wrong type, out-of-range value or an
            unusable network name. Several problems raise
            ``ValidationErrors``.
    """
    config = config or get_config()
    if options is None:
        options = {}
    if not isinstance(options, Mapping):
        raise ValidationError("options", f"must be a mapping, got {type(options).__name__}", options)

    given = {k: _plain(v) for k, v in options.items()}
    errors = _schema_errors(given)
    if errors:
        ValidationResult.failure(errors).raise_if_invalid()

    def pick(key: str, default: Any) -> Any:
        value = given.get(key)
        return default if value is None else value

    blockchain = _blockchain(given.get("blockchain"), config)
    try:
        normalize_network(blockchain.name)
    except MalformedLocatorError as e:
        raise ValidationError("blockchain", str(e), blockchain.name) from e

    token_amount = given.get("token_amount")
    if token_amount is not None:
        token_amount = Validators.validate_token_amount(token_amount).sanitized_value

    return AssetOptions(
        blockchain=blockchain,
        node=NodeEndpoint(
            endpoint=pick("endpoint", config.node.endpoint.get()),
            port=int(pick("port", config.node.port.get())),
            auth_token=pick("auth_token", config.node.auth_token.get()),
        ),
        max_number_of_retries=int(pick("max_number_of_retries", config.polling.max_number_of_retries.get())),
        frequency=float(pick("frequency", config.polling.frequency.get())),
        local_store_frequency=float(config.polling.local_store_frequency.get()),
        epochs_num=int(pick("epochs_num", config.asset.epochs_num.get())),
        hash_function_id=int(pick("hash_function_id", config.asset.hash_function_id.get())),
        score_function_id=int(pick("score_function_id", config.asset.score_function_id.get())),
        immutable=bool(pick("immutable", config.asset.immutable.get())),
        token_amount=token_amount,
        state=State(pick("state", config.asset.state.get())),
        content_type=ContentType(pick("content_type", config.asset.content_type.get())),
        output_format=OutputFormat(pick("output_format", config.asset.output_format.get())),
        validate=bool(pick("validate", config.asset.validate.get())),
    )
