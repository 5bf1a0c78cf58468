"""kasset: knowledge asset client

Client-side orchestration for knowledge assets: content anchored on a
blockchain and replicated by an off-chain storage network.

Architecture:
    kasset/
    ├── __init__.py      # Package entry, version, public API
    ├── core.py          # Primitives: sha256, JSON, YAML, fixed-width packing
    ├── schema.py        # JSON Schema validation infrastructure
    ├── merkle.py        # Domain-separated Merkle mountain-range root
    ├── assertion.py     # Content → canonical assertion + root
    ├── nquads.py        # N-Quads parsing and output formats
    ├── ual.py           # Universal Asset Locator codec
    ├── errors.py        # Error taxonomy
    └── engine/          # Orchestrator, poller, bids, config, observability

Typical use:

    from kasset import AssetOrchestrator

    orchestrator = AssetOrchestrator(chain, node)
    created = orchestrator.create({"public": {"@type": "Thing", "name": "A"}})
    fetched = orchestrator.get(created.ual, {"content_type": "public"})
"""

__version__ = "0.3.0"

from kasset.assertion import (
    Assertion,
    AssetAssertions,
    PRIVATE_ASSERTION_PREDICATE,
    build_asset_assertions,
    compute_root,
    derive_assertion,
    extract_private_root,
)
from kasset.errors import (
    ConfigError,
    ContentFormatError,
    EstimationError,
    KassetError,
    MalformedLocatorError,
    NodeResponseError,
    ResultError,
    RetryBudgetExceeded,
    RootMismatchError,
    ValidationError,
)
from kasset.ual import ParsedUAL, decode, encode, normalize_network


def __getattr__(name):
    """Lazy import engine modules on first access."""

    if name in ("AssetOrchestrator", "CreateResult", "UpdateResult", "GetResult",
                "OwnerResult", "StatusResult", "derive_repository"):
        from kasset.engine import orchestrator
        return getattr(orchestrator, name)

    if name in ("OperationPoller", "OperationKind", "OperationState",
                "OperationResult", "OperationStatus"):
        from kasset.engine import polling
        return getattr(polling, name)

    if name in ("BidEstimator", "AgreementData", "derive_agreement_id"):
        from kasset.engine import bids
        return getattr(bids, name)

    if name in ("AssetOptions", "State", "ContentType", "resolve_options"):
        from kasset.engine import options
        return getattr(options, name)

    if name in ("Blockchain", "NodeEndpoint", "ChainService", "NodeService"):
        from kasset.engine import services
        return getattr(services, name)

    if name in ("PhaseCompleted", "PhaseObserver", "StepStatus"):
        from kasset.engine import events
        return getattr(events, name)

    if name in ("KassetConfig", "ConfigManager", "get_config"):
        from kasset.engine import config
        return getattr(config, name)

    raise AttributeError(f"module 'kasset' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Identity
    "Assertion",
    "AssetAssertions",
    "PRIVATE_ASSERTION_PREDICATE",
    "build_asset_assertions",
    "compute_root",
    "derive_assertion",
    "extract_private_root",
    # Locator
    "ParsedUAL",
    "decode",
    "encode",
    "normalize_network",
    # Errors
    "KassetError",
    "ContentFormatError",
    "MalformedLocatorError",
    "ValidationError",
    "EstimationError",
    "ConfigError",
    "RetryBudgetExceeded",
    "RootMismatchError",
    "NodeResponseError",
    "ResultError",
    # Engine
    "AssetOrchestrator",
    "OperationPoller",
    "BidEstimator",
    "Blockchain",
    "NodeEndpoint",
    "resolve_options",
]
