"""
Action Orchestrator

Runs one request through parse -> preflight -> approval -> submit ->
confirm -> refresh -> report, streaming notifications as it goes. Every
action kind goes through the same loop; what differs per kind lives in the
descriptor table. ``portfolio`` and ``unstake_status`` answer read-only
queries without touching the pipeline.
"""

import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import AsyncGenerator, Dict, List, Optional

from ...config import Settings, settings as default_settings
from ...logging_config import bind_request_context, clear_request_context
from ...services.chains import ChainContext
from ...services.tokens import TokenRegistry, get_token_registry
from ..allowance import AllowanceManager
from ..errors import (
    ActionError,
    ApprovalFailed,
    ChainClientError,
    ConfirmationTimeout,
    ErrorContext,
    ErrorKind,
    StateRefreshError,
    SubmissionError,
    TransactionReverted,
)
from ..execution.account import AccountContext
from ..execution.chain_client import ChainClient
from ..execution.confirmation import ConfirmationWaiter
from ..execution.models import TxPurpose, TxRecord, TxStatus
from ..execution.submitter import TransactionSubmitter
from ..intent.models import LENDING_KINDS, ActionKind, ActionRequest
from ..intent.parser import IntentParser
from ..preflight.validator import PreflightValidator
from ..protocols.agni import AgniRouter
from ..protocols.lendle import LendleProtocol
from ..protocols.meth_staking import MethStaking
from ..response.composer import ResponseComposer, display_symbol
from ..state.refresher import AccountSnapshot, StateRefresher
from .descriptors import DESCRIPTORS, ActionDescriptor, PlanContext
from .models import (
    ActionOutcome,
    ActionState,
    Notification,
    NotificationType,
    QueryResult,
    new_request_id,
)
from .state_machine import ActionStateMachine


logger = logging.getLogger(__name__)


@dataclass
class ActionRun:
    """Mutable bookkeeping for one in-flight request."""
    request_id: str
    account: AccountContext
    machine: ActionStateMachine
    request: Optional[ActionRequest] = None
    descriptor: Optional[ActionDescriptor] = None
    transactions: List[TxRecord] = field(default_factory=list)
    snapshot: Optional[AccountSnapshot] = None

    @property
    def verb(self) -> str:
        return self.descriptor.verb if self.descriptor else "complete the action"

    @property
    def last_hash(self) -> Optional[str]:
        return self.transactions[-1].hash if self.transactions else None


class ActionOrchestrator:
    """
    Executes free-text actions for an account.

    ``execute_action`` is an async generator: zero or more INITIATED/PROGRESS
    notifications followed by exactly one FINAL notification carrying the
    ActionOutcome. Failures never escape as exceptions.
    """

    def __init__(
        self,
        parser: IntentParser,
        validator: PreflightValidator,
        allowance: AllowanceManager,
        submitter: TransactionSubmitter,
        waiter: ConfirmationWaiter,
        refresher: StateRefresher,
        composer: ResponseComposer,
        plan_context: PlanContext,
        descriptors: Optional[Dict[ActionKind, ActionDescriptor]] = None,
    ):
        self.parser = parser
        self.validator = validator
        self.allowance = allowance
        self.submitter = submitter
        self.waiter = waiter
        self.refresher = refresher
        self.composer = composer
        self.plan_context = plan_context
        self.descriptors = descriptors or DESCRIPTORS

    @property
    def chain(self) -> ChainContext:
        return self.plan_context.chain

    @property
    def registry(self) -> TokenRegistry:
        return self.plan_context.registry

    async def execute_action(
        self,
        text: str,
        account: AccountContext,
        request_id: Optional[str] = None,
    ) -> AsyncGenerator[Notification, None]:
        """Execute ``text`` for ``account``, yielding notifications."""
        request_id = request_id or new_request_id()
        run = ActionRun(
            request_id=request_id,
            account=account,
            machine=ActionStateMachine(request_id, logger),
        )
        bind_request_context(request_id=request_id)
        logger.info(f"Action {request_id} received: {text!r}")
        try:
            async for notification in self._execute(text, run):
                yield notification
        finally:
            clear_request_context()

    async def portfolio(self, address: str) -> QueryResult:
        """
        Read-only balances of ``address``.

        Raises:
            StateRefreshError: the native balance could not be read
        """
        try:
            snapshot = await self.refresher.read_portfolio(address)
        except ChainClientError as e:
            logger.warning(f"Portfolio read failed for {address}: {e}")
            raise StateRefreshError(
                "I couldn't load your balances right now",
                ErrorContext(chain_id=self.chain.chain_id, details={"node_error": e.message}),
            ) from e

        names = {token.symbol: token.display_name for token in self.registry.all()}
        return QueryResult(
            text=self.composer.portfolio(address, snapshot, names),
            data={
                "address": address,
                "balances": snapshot.to_dict()["balances"],
                "explorerUrl": self.chain.address_url(address),
            },
        )

    async def unstake_status(self, request_id: int) -> QueryResult:
        """
        Look up an mETH unstake request by id.

        Raises:
            StateRefreshError: the unstake manager could not be read
        """
        try:
            status = await self.plan_context.meth.unstake_request_status(request_id)
        except ChainClientError as e:
            logger.warning(f"Unstake request {request_id} lookup failed: {e}")
            raise StateRefreshError(
                f"I couldn't look up unstake request #{request_id}",
                ErrorContext(chain_id=self.chain.chain_id, details={"node_error": e.message}),
            ) from e

        return QueryResult(
            text=self.composer.unstake_status(status),
            data={
                "requestId": status.request_id,
                "finalized": status.finalized,
                "claimable": status.claimable,
                "filledAmount": str(status.filled_amount),
            },
        )

    async def _execute(self, text: str, run: ActionRun) -> AsyncGenerator[Notification, None]:
        try:
            async for notification in self._steps(text, run):
                yield notification
        except ConfirmationTimeout as e:
            yield self._finish_timeout(run, e)
        except ActionError as e:
            yield self._finish_failure(run, e)
        except Exception as e:
            logger.exception(
                f"Action {run.request_id} crashed in state {run.machine.current_state.value}: {e}"
            )
            yield self._finish_unexpected(run, e)

    async def _steps(self, text: str, run: ActionRun) -> AsyncGenerator[Notification, None]:
        machine = run.machine

        request = self.parser.parse(text)
        run.request = request
        machine.transition_to(ActionState.PARSED, reason=request.kind.value)
        bind_request_context(action=request.kind.value)

        descriptor = self.descriptors[request.kind]
        run.descriptor = descriptor

        report = await self.validator.validate(request, run.account, descriptor.checks)
        report.raise_for_failure()
        machine.transition_to(ActionState.VALIDATED)
        yield self._notify(
            run,
            NotificationType.INITIATED,
            self.composer.initiated(descriptor.initiated_template, request),
        )

        token = self.registry.resolve_symbol(request.token)
        plan = await descriptor.planner(
            self.plan_context, request, token, report.amount_atomic, run.account
        )

        approval = plan.approval
        if approval is not None and not approval.token.is_native:
            # Held until the spend confirms so a concurrent request cannot
            # overwrite the exact approval this spend relies on
            guard = self.allowance.spend_lock(run.account, approval.token, approval.spender)
        else:
            guard = nullcontext()

        async with guard:
            if approval is not None and not await self.allowance.has_allowance(
                run.account, approval.token, approval.spender, approval.amount
            ):
                symbol = display_symbol(approval.token.symbol)
                machine.transition_to(
                    ActionState.APPROVAL_PENDING,
                    reason=f"approve {approval.amount} {symbol} for {approval.spender_name}",
                )
                yield self._notify(
                    run,
                    NotificationType.PROGRESS,
                    f"Approving {symbol} for {approval.spender_name}...",
                )
                try:
                    approval_record = await self.allowance.approve(
                        run.account, approval.token, approval.spender, approval.amount
                    )
                except (ApprovalFailed, ConfirmationTimeout) as e:
                    if e.record is not None:
                        run.transactions.append(e.record)
                    raise
                run.transactions.append(approval_record)
                machine.transition_to(ActionState.APPROVAL_CONFIRMED, reason=approval_record.hash)
                yield self._notify(
                    run,
                    NotificationType.PROGRESS,
                    f"{symbol} approved successfully for {approval.spender_name}.",
                    tx_hash=approval_record.hash,
                )

            yield self._notify(run, NotificationType.PROGRESS, plan.note or "Submitting transaction...")
            record = await self.submitter.submit(run.account, plan.call, TxPurpose.ACTION)
            run.transactions.append(record)
            machine.transition_to(ActionState.SUBMITTED, reason=record.hash)
            yield self._notify(
                run,
                NotificationType.PROGRESS,
                "Waiting for confirmation...",
                tx_hash=record.hash,
            )

            record = await self.waiter.wait(record)
            context = ErrorContext(
                tx_hash=record.hash,
                nonce=record.submitted_at_nonce,
                chain_id=self.chain.chain_id,
            )
            if record.status == TxStatus.FAILED:
                raise TransactionReverted("The transaction was reverted on-chain", context)
            if record.status == TxStatus.TIMED_OUT:
                raise ConfirmationTimeout("The transaction was not confirmed in time", context)
        machine.transition_to(ActionState.CONFIRMED, reason=f"block {record.block_number}")

        try:
            run.snapshot = await self.refresher.refresh(
                run.account, request, descriptor.refresh_scope
            )
        except StateRefreshError as e:
            yield self._finish_partial(run, record, e)
            return

        machine.transition_to(ActionState.REFRESHED)
        message = self.composer.success(
            descriptor.success_template, request, record, run.snapshot
        )
        yield self._finish(
            run,
            ActionState.REPORTED,
            ActionOutcome(
                success=True,
                human_message=message,
                tx_hash=record.hash,
                request=request,
                transactions=list(run.transactions),
                snapshot=run.snapshot,
                explorer_url=self.chain.tx_url(record.hash),
            ),
        )

    def _notify(
        self,
        run: ActionRun,
        kind: NotificationType,
        text: str,
        tx_hash: Optional[str] = None,
    ) -> Notification:
        return Notification(
            type=kind,
            text=text,
            state=run.machine.current_state,
            request_id=run.request_id,
            tx_hash=tx_hash,
        )

    def _finish(
        self,
        run: ActionRun,
        state: ActionState,
        outcome: ActionOutcome,
        reason: Optional[str] = None,
    ) -> Notification:
        run.machine.transition_to(state, reason=reason, error_kind=outcome.error_kind)
        logger.info(
            f"Action {run.request_id} finished: {state.value} "
            f"(success={outcome.success}, tx={outcome.tx_hash})"
        )
        return Notification(
            type=NotificationType.FINAL,
            text=outcome.human_message,
            state=state,
            request_id=run.request_id,
            tx_hash=outcome.tx_hash,
            outcome=outcome,
        )

    def _finish_partial(
        self, run: ActionRun, record: TxRecord, error: StateRefreshError
    ) -> Notification:
        logger.warning(
            f"Action {run.request_id} confirmed but refresh failed: {error.context.to_dict()}"
        )
        message = self.composer.partial_success(
            run.descriptor.success_template, run.request, record, error
        )
        return self._finish(
            run,
            ActionState.REPORTED,
            ActionOutcome(
                success=True,
                human_message=message,
                tx_hash=record.hash,
                error_kind=ErrorKind.STATE_REFRESH_ERROR,
                warning=error.message,
                request=run.request,
                transactions=list(run.transactions),
                explorer_url=self.chain.tx_url(record.hash),
            ),
            reason="state refresh failed",
        )

    def _finish_timeout(self, run: ActionRun, error: ConfirmationTimeout) -> Notification:
        logger.warning(f"Action {run.request_id} timed out: {error.context.to_dict()}")
        tx_hash = error.context.tx_hash or run.last_hash
        return self._finish(
            run,
            ActionState.TIMED_OUT,
            ActionOutcome(
                success=False,
                human_message=self.composer.timeout(error, run.request, run.verb),
                tx_hash=tx_hash,
                error_kind=ErrorKind.TIMED_OUT,
                request=run.request,
                transactions=list(run.transactions),
                explorer_url=self.chain.tx_url(tx_hash),
            ),
            reason=error.message,
        )

    def _finish_failure(self, run: ActionRun, error: ActionError) -> Notification:
        logger.warning(
            f"Action {run.request_id} failed ({error.kind.value}): {error.message} "
            f"{error.context.to_dict()}"
        )
        tx_hash = error.context.tx_hash
        return self._finish(
            run,
            ActionState.FAILED,
            ActionOutcome(
                success=False,
                human_message=self.composer.failure(error, run.request, run.verb),
                tx_hash=tx_hash,
                error_kind=error.kind,
                request=run.request,
                transactions=list(run.transactions),
                explorer_url=self.chain.tx_url(tx_hash),
            ),
            reason=error.message,
        )

    def _finish_unexpected(self, run: ActionRun, error: Exception) -> Notification:
        state = run.machine.current_state
        record = run.transactions[-1] if run.transactions else None

        if state in (ActionState.CONFIRMED, ActionState.REFRESHED) and record is not None:
            return self._finish_partial(
                run,
                record,
                StateRefreshError(
                    "The transaction went through, but I couldn't load your updated balances"
                ),
            )
        if state in (ActionState.SUBMITTED, ActionState.APPROVAL_PENDING):
            # Something may be on chain; report it as unknown rather than failed
            return self._finish_timeout(
                run,
                ConfirmationTimeout(
                    "The transaction status could not be determined",
                    ErrorContext(tx_hash=run.last_hash),
                    during_approval=state == ActionState.APPROVAL_PENDING,
                ),
            )
        return self._finish_failure(
            run, SubmissionError("Something went wrong before the transaction was sent")
        )


def build_action_orchestrator(
    chain_client: ChainClient,
    chain: Optional[ChainContext] = None,
    registry: Optional[TokenRegistry] = None,
    config: Optional[Settings] = None,
) -> ActionOrchestrator:
    """Wire an orchestrator around ``chain_client`` using policy from ``config``."""
    config = config or default_settings
    chain = chain or ChainContext.from_settings(config)
    registry = registry or get_token_registry()

    lendle = LendleProtocol(chain_client)
    agni = AgniRouter(chain_client)
    meth = MethStaking(chain_client)

    submitter = TransactionSubmitter(chain_client, gas_multiplier=config.gas_limit_multiplier)
    waiter = ConfirmationWaiter(
        chain_client,
        timeout_seconds=config.confirmation_timeout_seconds,
        poll_interval_seconds=config.confirmation_poll_interval_seconds,
    )
    refresher = StateRefresher(chain_client, registry, lendle)

    default_protocols = {kind: config.default_lending_protocol for kind in LENDING_KINDS}
    default_protocols[ActionKind.SWAP] = config.default_swap_protocol

    return ActionOrchestrator(
        parser=IntentParser(
            registry,
            address_format=chain.address_format,
            chain_name=chain.name,
            default_protocols=default_protocols,
        ),
        validator=PreflightValidator(
            chain, registry, refresher, lendle, agni, min_health_factor=config.min_health_factor
        ),
        allowance=AllowanceManager(chain_client, submitter, waiter),
        submitter=submitter,
        waiter=waiter,
        refresher=refresher,
        composer=ResponseComposer(chain),
        plan_context=PlanContext(
            chain=chain,
            registry=registry,
            lendle=lendle,
            agni=agni,
            meth=meth,
            swap_slippage_bps=config.swap_slippage_bps,
            stake_slippage_bps=config.stake_slippage_bps,
            swap_deadline_seconds=config.swap_deadline_seconds,
            direct_erc20_transfers=config.direct_erc20_transfers,
        ),
    )


_orchestrator: Optional[ActionOrchestrator] = None


def get_action_orchestrator() -> ActionOrchestrator:
    """Get the singleton orchestrator bound to the configured chain."""
    global _orchestrator
    if _orchestrator is None:
        from ...services.chains import get_chain_context
        from ..execution.chain_client import get_chain_client
        _orchestrator = build_action_orchestrator(get_chain_client(), chain=get_chain_context())
    return _orchestrator
