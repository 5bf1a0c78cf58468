"""
Asset Lifecycle Orchestrator

Composes identity derivation, locators, bid estimation and operation
polling into the public asset operations:

    create                  derive assertions, mint, store locally, publish
    get                     fetch, validate and format public/private content
    update                  derive assertions, update on chain, store, update
    wait_finalization       poll the chain until a pending update settles
    cancel_update           drop a pending update
    transfer / get_owner    ownership
    burn                    destroy the asset
    extend_storing_period   add epochs to the storage agreement
    add_tokens              top up the finalized state's funding
    add_update_tokens       top up the pending update's funding

Argument and content problems raise before any collaborator is called.
Off-chain outcomes (failed local store, exhausted retries, root mismatches,
formatting failures) are embedded in the returned result instead.

Each call runs on the caller's thread and holds no state shared with other
calls; one orchestrator may serve many assets concurrently.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from kasset.assertion import (
    AssetAssertions,
    build_asset_assertions,
    compute_root,
    extract_private_root,
)
from kasset.engine.bids import BidEstimator
from kasset.engine.config import KassetConfig, get_config
from kasset.engine.events import PhaseObserver, StepStatus
from kasset.engine.lifecycle import AssetPhase, PublishPipeline
from kasset.engine.observability import Layer, get_logger, get_tracer, timed_operation
from kasset.engine.options import AssetOptions, ContentType, State, Validators, resolve_options
from kasset.engine.polling import (
    OperationKind,
    OperationPoller,
    OperationResult,
    OperationState,
    OperationStatus,
)
from kasset.engine.services import (
    CONTENT_ASSET_STORAGE,
    ChainService,
    CreateAssetParams,
    NodeService,
    QueryType,
    StoreRecord,
    StoreType,
)
from kasset.errors import (
    ContentFormatError,
    EstimationError,
    NodeResponseError,
    ResultError,
    RetryBudgetExceeded,
    RootMismatchError,
)
from kasset.nquads import format_assertion, to_nquads
from kasset.ual import ParsedUAL, encode

logger = get_logger("orchestrator", Layer.ORCHESTRATOR)


class GraphLocation(Enum):
    PUBLIC_KG = "PUBLIC_KG"
    LOCAL_KG = "LOCAL_KG"


class GraphState(Enum):
    CURRENT = "CURRENT"
    HISTORICAL = "HISTORICAL"


_REPOSITORIES = {
    (GraphLocation.PUBLIC_KG, GraphState.CURRENT): "publicCurrent",
    (GraphLocation.PUBLIC_KG, GraphState.HISTORICAL): "publicHistory",
    (GraphLocation.LOCAL_KG, GraphState.CURRENT): "privateCurrent",
    (GraphLocation.LOCAL_KG, GraphState.HISTORICAL): "privateHistory",
}


def derive_repository(location: GraphLocation, state: GraphState) -> str:
    """Name of the node repository holding graphs of ``location``/``state``."""
    return _REPOSITORIES[(location, state)]


def private_assertion_query(private_root: str) -> str:
    return (
        "CONSTRUCT { ?s ?p ?o }\n"
        "WHERE {\n"
        "    {\n"
        f"        GRAPH <assertion:{private_root}>\n"
        "        {\n"
        "            ?s ?p ?o .\n"
        "        }\n"
        "    }\n"
        "}"
    )


TOP_UP_REFUSED = (
    "Token amount is bigger than default suggested amount, please specify "
    "exact token_amount if you still want to add more tokens!"
)

ASSERTION_NOT_FOUND = "Unable to find assertion on the network!"


def _completed() -> OperationStatus:
    return OperationStatus(operation_id=None, status=OperationState.COMPLETED)


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class CreateResult:
    ual: str
    public_assertion_id: str
    operation: OperationStatus
    private_assertion_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "ual": self.ual,
            "public_assertion_id": self.public_assertion_id,
            "operation": self.operation.to_dict(),
        }
        if self.private_assertion_id:
            out["private_assertion_id"] = self.private_assertion_id
        return out


@dataclass
class UpdateResult:
    ual: str
    public_assertion_id: str
    operation: OperationStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ual": self.ual,
            "public_assertion_id": self.public_assertion_id,
            "operation": self.operation.to_dict(),
        }


@dataclass
class AssertionView:
    """One fetched partition, formatted, with the problems found in it."""
    assertion_id: str
    assertion: Any
    errors: List[ResultError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out = {"assertion_id": self.assertion_id, "assertion": self.assertion}
        if self.errors:
            out["errors"] = [e.to_dict() for e in self.errors]
        return out


@dataclass
class GetResult:
    ual: str
    content_type: ContentType
    public: Optional[AssertionView] = None
    private: Optional[AssertionView] = None
    operation: Dict[str, OperationStatus] = field(default_factory=dict)

    @property
    def view(self) -> Optional[AssertionView]:
        return self.private if self.content_type == ContentType.PRIVATE else self.public

    @property
    def assertion(self) -> Any:
        return self.view.assertion if self.view else None

    @property
    def assertion_id(self) -> Optional[str]:
        return self.view.assertion_id if self.view else None

    @property
    def errors(self) -> List[ResultError]:
        out: List[ResultError] = []
        for status in self.operation.values():
            out.extend(status.errors)
        for view in (self.public, self.private):
            if view is not None:
                out.extend(view.errors)
        return out

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ual": self.ual}
        if self.content_type == ContentType.ALL:
            if self.public is not None:
                out["public"] = self.public.to_dict()
            if self.private is not None:
                out["private"] = self.private.to_dict()
        elif self.view is not None:
            out.update(self.view.to_dict())
        out["operation"] = {name: status.to_dict() for name, status in self.operation.items()}
        return out


@dataclass
class OwnerResult:
    ual: str
    owner: str
    operation: OperationStatus

    def to_dict(self) -> Dict[str, Any]:
        return {"ual": self.ual, "owner": self.owner, "operation": self.operation.to_dict()}


@dataclass
class StatusResult:
    ual: str
    operation: OperationStatus

    def to_dict(self) -> Dict[str, Any]:
        return {"ual": self.ual, "operation": self.operation.to_dict()}


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class AssetOrchestrator:
    """
    Public entry point for knowledge asset operations.

    Example:
        orchestrator = AssetOrchestrator(chain, node)
        created = orchestrator.create({"public": {"@type": "Thing", "name": "A"}})
        fetched = orchestrator.get(created.ual, {"content_type": "public"})
    """

    def __init__(
        self,
        chain: ChainService,
        node: NodeService,
        config: Optional[KassetConfig] = None,
        observer: Optional[PhaseObserver] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.chain = chain
        self.node = node
        self.config = config or get_config()
        self.observer = observer
        self.sleep = sleep
        self.poller = OperationPoller(node, sleep=sleep)
        self.estimator = BidEstimator(chain, node)
        self.tracer = get_tracer()

    # -- helpers -------------------------------------------------------------

    def _options(self, options: Optional[Mapping[str, Any]]) -> AssetOptions:
        return resolve_options(options, self.config)

    @staticmethod
    def _require_content(content: Any) -> None:
        if not isinstance(content, dict):
            raise ContentFormatError(
                f"asset content must be an object, got {type(content).__name__}"
            )

    @staticmethod
    def _parse(ual: Any) -> ParsedUAL:
        result = Validators.validate_ual(ual)
        result.raise_if_invalid()
        return result.sanitized_value

    def _local_store(
        self,
        opts: AssetOptions,
        assertions: AssetAssertions,
        contract: str,
        token_id: int,
        store_type: StoreType,
    ) -> OperationResult:
        records = [
            StoreRecord(
                network=opts.blockchain.network,
                contract=contract,
                token_id=token_id,
                assertion_id=assertion.root,
                assertion=list(assertion.statements),
                store_type=store_type,
            ).to_dict()
            for assertion in assertions.all()
        ]
        operation_id = self.node.local_store(opts.node, records)
        return self.poller.wait(
            opts.node,
            OperationKind.LOCAL_STORE,
            operation_id,
            opts.max_number_of_retries,
            opts.local_store_frequency,
        )

    def _top_up_estimate(self, opts: AssetOptions, ual: str, assertion_id: str) -> int:
        size = self.chain.get_assertion_size(assertion_id, opts.blockchain)
        return self.estimator.estimate_update_bid(
            opts.node,
            opts.blockchain,
            ual,
            assertion_id,
            size,
            opts.hash_function_id,
        )

    def _format(self, statements: List[str], opts: AssetOptions, errors: List[ResultError]) -> Any:
        try:
            return format_assertion(statements, opts.output_format)
        except ContentFormatError as e:
            errors.append(ResultError.from_exception(e))
            return list(statements)

    # -- create / update -----------------------------------------------------

    @timed_operation(logger, "create")
    def create(self, content: Any, options: Optional[Mapping[str, Any]] = None) -> CreateResult:
        """
        Create a new asset from ``content``.

        ``content`` holds a ``public`` and/or ``private`` partition; a mapping
        with neither key is published as public content.

        Returns the derived UAL even when local storage fails; in that case
        nothing is published and the operation summary is the failed
        local-store status.
        """
        self._require_content(content)
        opts = self._options(options)

        with self.tracer.span("create", Layer.ORCHESTRATOR) as span:
            pipeline = PublishPipeline("create", self.observer)

            pipeline.advance_to(AssetPhase.DERIVE_ASSERTIONS)
            assertions = build_asset_assertions(content)
            public = assertions.public
            span.set_attribute("public_assertion_id", public.root)

            pipeline.advance_to(AssetPhase.RESOLVE_STORAGE_ADDRESS)
            contract = self.chain.get_contract_address(CONTENT_ASSET_STORAGE, opts.blockchain)

            pipeline.advance_to(AssetPhase.ESTIMATE_BID)
            if opts.token_amount is not None:
                token_amount = opts.token_amount
            else:
                token_amount = self.estimator.estimate_create_bid(
                    opts.node,
                    opts.blockchain,
                    public.size_bytes,
                    opts.epochs_num,
                    opts.hash_function_id,
                    contract,
                    public.root,
                )

            pipeline.advance_to(AssetPhase.SUBMIT_ON_CHAIN)
            token_id = self.chain.create_asset(
                CreateAssetParams(
                    public_assertion_id=public.root,
                    assertion_size=public.size_bytes,
                    triples_number=public.triples_number,
                    chunks_number=public.chunks_number,
                    epochs_num=opts.epochs_num,
                    token_amount=token_amount,
                    score_function_id=opts.score_function_id,
                    immutable=opts.immutable,
                ),
                opts.blockchain,
            )
            ual = encode(opts.blockchain.network, contract, token_id)
            pipeline.ual = ual
            span.set_attribute("ual", ual)

            pipeline.advance_to(AssetPhase.LOCAL_REPLICATE)
            stored = self._local_store(opts, assertions, contract, token_id, StoreType.TRIPLE)
            if stored.failed:
                result = CreateResult(
                    ual=ual,
                    public_assertion_id=public.root,
                    operation=stored.summary(),
                    private_assertion_id=assertions.private_root,
                )
                pipeline.fail("local store failed", result.to_dict())
                logger.warning("Local store failed, asset not published", ual=ual)
                return result

            pipeline.advance_to(AssetPhase.PUBLISH_OFF_CHAIN)
            operation_id = self.node.publish(
                opts.node,
                public.root,
                list(public.statements),
                opts.blockchain.network,
                contract,
                token_id,
                opts.hash_function_id,
            )
            published = self.poller.wait(
                opts.node,
                OperationKind.PUBLISH,
                operation_id,
                opts.max_number_of_retries,
                opts.frequency,
            )
            pipeline.finish(
                StepStatus.CREATE_ASSET_COMPLETED,
                {"operation_id": operation_id, "operation_result": published.to_dict()},
            )
            logger.info("Asset created", ual=ual, status=published.status.value)

            return CreateResult(
                ual=ual,
                public_assertion_id=public.root,
                operation=published.summary(),
                private_assertion_id=assertions.private_root,
            )

    @timed_operation(logger, "update")
    def update(self, ual: str, content: Any, options: Optional[Mapping[str, Any]] = None) -> UpdateResult:
        """
        Propose new content for an existing asset.

        The assertions are stored as pending; they become the asset's
        finalized state once the network confirms the update.
        """
        parsed = self._parse(ual)
        self._require_content(content)
        opts = self._options(options)

        with self.tracer.span("update", Layer.ORCHESTRATOR, ual=ual):
            pipeline = PublishPipeline("update", self.observer)
            pipeline.ual = ual

            pipeline.advance_to(AssetPhase.DERIVE_ASSERTIONS)
            assertions = build_asset_assertions(content)
            public = assertions.public

            pipeline.advance_to(AssetPhase.RESOLVE_STORAGE_ADDRESS)
            contract = self.chain.get_contract_address(CONTENT_ASSET_STORAGE, opts.blockchain)

            pipeline.advance_to(AssetPhase.ESTIMATE_BID)
            if opts.token_amount is not None:
                token_amount = opts.token_amount
            else:
                token_amount = self.estimator.estimate_update_bid(
                    opts.node,
                    opts.blockchain,
                    ual,
                    public.root,
                    public.size_bytes,
                    opts.hash_function_id,
                )

            pipeline.advance_to(AssetPhase.SUBMIT_ON_CHAIN)
            self.chain.update_asset(
                parsed.token_id,
                public.root,
                public.size_bytes,
                public.triples_number,
                public.chunks_number,
                token_amount,
                opts.blockchain,
            )

            pipeline.advance_to(AssetPhase.LOCAL_REPLICATE)
            stored = self._local_store(opts, assertions, contract, parsed.token_id, StoreType.PENDING)
            if stored.failed:
                result = UpdateResult(ual=ual, public_assertion_id=public.root, operation=stored.summary())
                pipeline.fail("local store failed", result.to_dict())
                logger.warning("Local store failed, update not sent", ual=ual)
                return result

            pipeline.advance_to(AssetPhase.PUBLISH_OFF_CHAIN)
            operation_id = self.node.update(
                opts.node,
                public.root,
                list(public.statements),
                opts.blockchain.network,
                contract,
                parsed.token_id,
                opts.hash_function_id,
            )
            updated = self.poller.wait(
                opts.node,
                OperationKind.UPDATE,
                operation_id,
                opts.max_number_of_retries,
                opts.frequency,
            )
            pipeline.finish(
                StepStatus.UPDATE_ASSET_COMPLETED,
                {"operation_id": operation_id, "operation_result": updated.to_dict()},
            )
            return UpdateResult(ual=ual, public_assertion_id=public.root, operation=updated.summary())

    # -- get -----------------------------------------------------------------

    @timed_operation(logger, "get")
    def get(self, ual: str, options: Optional[Mapping[str, Any]] = None) -> GetResult:
        """
        Fetch an asset's content.

        With state ``LATEST`` a pending update, if any, is read instead of
        the finalized state. Root mismatches and formatting failures are
        recorded on the affected partition; they never raise.
        """
        parsed = self._parse(ual)
        opts = self._options(options)

        with self.tracer.span("get", Layer.ORCHESTRATOR, ual=ual):
            has_pending = False
            if opts.state == State.LATEST:
                has_pending = self.chain.has_pending_update(parsed.token_id, opts.blockchain)
            if has_pending:
                public_id = self.chain.get_unfinalized_state(parsed.token_id, opts.blockchain)
            else:
                public_id = self.chain.get_latest_assertion_id(parsed.token_id, opts.blockchain)

            operation_id = self.node.get(opts.node, ual, opts.state.value, opts.hash_function_id)
            fetched = self.poller.wait(
                opts.node,
                OperationKind.GET,
                operation_id,
                opts.max_number_of_retries,
                opts.frequency,
            )
            result = GetResult(ual=ual, content_type=opts.content_type)

            data = fetched.data if isinstance(fetched.data, dict) else {}
            try:
                statements = to_nquads(data.get("assertion") or [])
            except ContentFormatError as e:
                fetched.add_error(e)
                statements = []
            if not statements:
                fetched.status = OperationState.FAILED
                fetched.add_error(NodeResponseError(ASSERTION_NOT_FOUND))
                result.operation["public_get"] = fetched.summary()
                logger.warning("Assertion not found", ual=ual)
                return result

            public_errors: List[ResultError] = []
            if opts.validate:
                actual = compute_root(statements)
                if actual != public_id:
                    public_errors.append(ResultError.from_exception(RootMismatchError(public_id, actual)))

            if opts.content_type != ContentType.PRIVATE:
                result.public = AssertionView(
                    assertion_id=public_id,
                    assertion=self._format(statements, opts, public_errors),
                    errors=public_errors,
                )
            result.operation["public_get"] = fetched.summary()

            if opts.content_type != ContentType.PUBLIC:
                private_root = extract_private_root(statements)
                if private_root:
                    result.private = self._get_private(opts, private_root, data, result)
            return result

    def _get_private(
        self,
        opts: AssetOptions,
        private_root: str,
        data: Dict[str, Any],
        result: GetResult,
    ) -> AssertionView:
        errors: List[ResultError] = []
        inlined = data.get("privateAssertion")
        statements: List[str] = []
        if isinstance(inlined, list) and inlined:
            try:
                statements = to_nquads(inlined)
            except ContentFormatError as e:
                errors.append(ResultError.from_exception(e))
        else:
            operation_id = self.node.query(
                opts.node,
                private_assertion_query(private_root),
                QueryType.CONSTRUCT.value,
                derive_repository(GraphLocation.LOCAL_KG, GraphState.CURRENT),
            )
            queried = self.poller.wait(
                opts.node,
                OperationKind.QUERY,
                operation_id,
                opts.max_number_of_retries,
                opts.frequency,
            )
            result.operation["query_private"] = queried.summary()
            if queried.data:
                try:
                    statements = to_nquads(queried.data)
                except ContentFormatError as e:
                    errors.append(ResultError.from_exception(e))

        if not statements:
            errors.append(ResultError.from_exception(
                NodeResponseError(f"private assertion {private_root} not found")
            ))
            return AssertionView(assertion_id=private_root, assertion=None, errors=errors)

        if opts.validate:
            actual = compute_root(statements)
            if actual != private_root:
                errors.append(ResultError.from_exception(RootMismatchError(private_root, actual)))

        return AssertionView(
            assertion_id=private_root,
            assertion=self._format(statements, opts, errors),
            errors=errors,
        )

    # -- finalization --------------------------------------------------------

    @timed_operation(logger, "wait_finalization")
    def wait_finalization(self, ual: str, options: Optional[Mapping[str, Any]] = None) -> StatusResult:
        """
        Poll the chain until the asset has no pending update.

        Resolves to ``COMPLETED`` once the update settles, or ``PENDING``
        with an embedded retry error when the budget runs out.
        """
        parsed = self._parse(ual)
        opts = self._options(options)

        with self.tracer.span("wait_finalization", Layer.ORCHESTRATOR, ual=ual):
            errors: List[ResultError] = []
            retries = 0
            pending = True
            while True:
                if retries > opts.max_number_of_retries:
                    errors.append(ResultError.from_exception(
                        RetryBudgetExceeded("finalization", ual, retries)
                    ))
                    break
                retries += 1
                self.sleep(opts.frequency)
                pending = self.chain.has_pending_update(parsed.token_id, opts.blockchain)
                if not pending:
                    break

            status = OperationState.PENDING if pending else OperationState.COMPLETED
            return StatusResult(
                ual=ual,
                operation=OperationStatus(operation_id=None, status=status, errors=errors),
            )

    # -- on-chain only -------------------------------------------------------

    @timed_operation(logger, "cancel_update")
    def cancel_update(self, ual: str, options: Optional[Mapping[str, Any]] = None) -> StatusResult:
        parsed = self._parse(ual)
        opts = self._options(options)
        with self.tracer.span("cancel_update", Layer.ORCHESTRATOR, ual=ual):
            self.chain.cancel_asset_update(parsed.token_id, opts.blockchain)
        logger.info("Pending update cancelled", ual=ual)
        return StatusResult(ual=ual, operation=_completed())

    @timed_operation(logger, "transfer")
    def transfer(self, ual: str, new_owner: str, options: Optional[Mapping[str, Any]] = None) -> OwnerResult:
        """Transfer the asset and report the owner read back from the chain."""
        parsed = self._parse(ual)
        owner_check = Validators.validate_address(new_owner, "new_owner")
        owner_check.raise_if_invalid()
        opts = self._options(options)

        with self.tracer.span("transfer", Layer.ORCHESTRATOR, ual=ual):
            self.chain.transfer_asset(parsed.token_id, owner_check.sanitized_value, opts.blockchain)
            owner = self.chain.get_asset_owner(parsed.token_id, opts.blockchain)
        return OwnerResult(ual=ual, owner=owner, operation=_completed())

    @timed_operation(logger, "get_owner")
    def get_owner(self, ual: str, options: Optional[Mapping[str, Any]] = None) -> OwnerResult:
        parsed = self._parse(ual)
        opts = self._options(options)
        with self.tracer.span("get_owner", Layer.ORCHESTRATOR, ual=ual):
            owner = self.chain.get_asset_owner(parsed.token_id, opts.blockchain)
        return OwnerResult(ual=ual, owner=owner, operation=_completed())

    @timed_operation(logger, "burn")
    def burn(self, ual: str, options: Optional[Mapping[str, Any]] = None) -> StatusResult:
        parsed = self._parse(ual)
        opts = self._options(options)
        with self.tracer.span("burn", Layer.ORCHESTRATOR, ual=ual):
            self.chain.burn_asset(parsed.token_id, opts.blockchain)
        logger.info("Asset burned", ual=ual)
        return StatusResult(ual=ual, operation=_completed())

    # -- funding -------------------------------------------------------------

    @timed_operation(logger, "extend_storing_period")
    def extend_storing_period(
        self,
        ual: str,
        epochs_number: int,
        options: Optional[Mapping[str, Any]] = None,
    ) -> StatusResult:
        """
        Extend storage by ``epochs_number`` epochs.

        Without an explicit ``token_amount`` the amount is estimated against
        the finalized state; an estimate of zero still extends the period.
        """
        parsed = self._parse(ual)
        Validators.validate_positive_int(epochs_number, "epochs_number").raise_if_invalid()
        opts = self._options(options)

        with self.tracer.span("extend_storing_period", Layer.ORCHESTRATOR, ual=ual) as span:
            if opts.token_amount is not None:
                token_amount = opts.token_amount
            else:
                finalized = self.chain.get_latest_assertion_id(parsed.token_id, opts.blockchain)
                token_amount = max(self._top_up_estimate(opts, ual, finalized), 0)

            Validators.validate_token_amount(token_amount).raise_if_invalid()
            span.set_attribute("token_amount", token_amount)
            self.chain.extend_asset_storing_period(parsed.token_id, epochs_number, token_amount, opts.blockchain)
        return StatusResult(ual=ual, operation=_completed())

    @timed_operation(logger, "add_tokens")
    def add_tokens(self, ual: str, options: Optional[Mapping[str, Any]] = None) -> StatusResult:
        """
        Add tokens to the agreement funding the finalized state.

        Raises:
            EstimationError: no explicit amount was given and the estimate
                says nothing is missing.
        """
        parsed = self._parse(ual)
        opts = self._options(options)

        with self.tracer.span("add_tokens", Layer.ORCHESTRATOR, ual=ual) as span:
            if opts.token_amount is not None:
                token_amount = opts.token_amount
            else:
                finalized = self.chain.get_latest_assertion_id(parsed.token_id, opts.blockchain)
                token_amount = self._top_up_estimate(opts, ual, finalized)
                if token_amount <= 0:
                    raise EstimationError(TOP_UP_REFUSED)

            Validators.validate_token_amount(token_amount).raise_if_invalid()
            span.set_attribute("token_amount", token_amount)
            self.chain.add_tokens(parsed.token_id, token_amount, opts.blockchain)
        return StatusResult(ual=ual, operation=_completed())

    @timed_operation(logger, "add_update_tokens")
    def add_update_tokens(self, ual: str, options: Optional[Mapping[str, Any]] = None) -> StatusResult:
        """Add tokens funding the pending update; estimates against the unfinalized state."""
        parsed = self._parse(ual)
        opts = self._options(options)

        with self.tracer.span("add_update_tokens", Layer.ORCHESTRATOR, ual=ual) as span:
            if opts.token_amount is not None:
                token_amount = opts.token_amount
            else:
                unfinalized = self.chain.get_unfinalized_state(parsed.token_id, opts.blockchain)
                token_amount = self._top_up_estimate(opts, ual, unfinalized)
                if token_amount <= 0:
                    raise EstimationError(TOP_UP_REFUSED)

            Validators.validate_token_amount(token_amount).raise_if_invalid()
            span.set_attribute("token_amount", token_amount)
            self.chain.add_update_tokens(parsed.token_id, token_amount, opts.blockchain)
        return StatusResult(ual=ual, operation=_completed())
