"""
ActionOrchestrator — Main Pipeline Class
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

The single entry point every mutating action passes through. Assembles
the handler registry, policy, preview store, rollback ledger and
execution gate, and drives each request through:

    validate → gate → execute with timeout → record rollback → audit → metrics

``execute``, ``execute_preview`` and ``rollback_action`` never raise:
every failure is normalized into an :class:`ExecutionResult`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from aegis_guard.clock import Clock, SystemClock
from aegis_guard.config.defaults import DEFAULT_CONFIG
from aegis_guard.config.loader import load_config, load_config_from_dict
from aegis_guard.config.schema import AegisConfig
from aegis_guard.core.execution_gate import ExecutionGate, call_maybe_async
from aegis_guard.core.levels import ChangeType
from aegis_guard.core.models import (
    ActionPreview,
    ApprovalRequest,
    AuditEntry,
    AuditFilter,
    ChangePreview,
    ErrorInfo,
    ExecutionContext,
    ExecutionResult,
    ExecutorMetrics,
    GroupRollbackReport,
    RejectionRequest,
    RollbackGroup,
    create_execution_context,
)
from aegis_guard.core.registry import (
    ChangeAnalyzer,
    CommandSpec,
    Handler,
    HandlerRegistry,
    InverseParamsBuilder,
)
from aegis_guard.exceptions import (
    AegisGuardError,
    ExecutionError,
    PreviewAlreadyExecutedError,
    PreviewNotApprovedError,
    PreviewNotFoundError,
    PreviewRejectedError,
    RollbackGroupNotFoundError,
    RollbackNotAvailableError,
    ValidationFailedError,
)
from aegis_guard.observability.audit_log import AuditLog, sanitize_params
from aegis_guard.observability.exporters.stdout_exporter import StdoutExporter
from aegis_guard.observability.metrics import MetricsCollector
from aegis_guard.policy.base import BasePolicy
from aegis_guard.policy.static_policy import StaticPolicy
from aegis_guard.rollback.ledger import RollbackLedger
from aegis_guard.safemode.preview_store import PreviewStore

__all__ = ["ActionOrchestrator"]

logger = logging.getLogger(__name__)

# Recorded when no configured target key is present in the params.
NO_TARGET = ""


class ActionOrchestrator:
    """
    Main orchestrator class — entry point for all guarded executions.

    Example::

        orchestrator = ActionOrchestrator.default()

        @orchestrator.handler("spawn_actor", inverse_command="delete_actor")
        async def spawn_actor(params, context):
            path = await remote.spawn(params["class"])
            return {"result": {"path": path}}

        async with orchestrator:
            result = await orchestrator.execute(
                "spawn_actor",
                {"class": "BP_Lamp"},
                create_execution_context("session-1"),
            )
    """

    def __init__(
        self,
        config: AegisConfig | None = None,
        policy: BasePolicy | None = None,
        clock: Clock | None = None,
        preview_store: PreviewStore | None = None,
        ledger: RollbackLedger | None = None,
    ) -> None:
        self._config = config or AegisConfig()
        self._clock = clock or SystemClock()

        # ── Subsystems ────────────────────────────────────────────
        self._policy = policy or StaticPolicy(self._config.policy)
        self._registry = HandlerRegistry(
            require_inverse_metadata=self._config.registry.require_inverse_metadata
        )
        self._previews = preview_store or PreviewStore(
            self._config.safe_mode, clock=self._clock
        )
        self._ledger = ledger or RollbackLedger(self._config.rollback, clock=self._clock)
        self._gate = ExecutionGate(self._config.executor.timeout_seconds)
        self._audit_log = AuditLog(
            max_entries=self._config.observability.audit_log_max_entries
        )
        self._metrics = MetricsCollector()

        # Ids with an execute_preview / rollback_action currently awaiting.
        self._inflight_previews: set[str] = set()
        self._inflight_rollbacks: set[str] = set()
        # Fire-and-forget record_action calls still running.
        self._policy_reports: set[asyncio.Task[None]] = set()

        self._setup_exporters()

    # ── Properties ─────────────────────────────────────────────────

    @property
    def config(self) -> AegisConfig:
        return self._config

    @property
    def policy(self) -> BasePolicy:
        return self._policy

    @property
    def previews(self) -> PreviewStore:
        """The preview store that owns every ActionPreview."""
        return self._previews

    @property
    def ledger(self) -> RollbackLedger:
        """The rollback ledger that owns every RollbackState."""
        return self._ledger

    @property
    def audit_log(self) -> AuditLog:
        return self._audit_log

    @property
    def gate(self) -> ExecutionGate:
        return self._gate

    # ── Class Methods (constructors) ──────────────────────────────

    @classmethod
    def from_config(
        cls, path: str, policy: BasePolicy | None = None
    ) -> ActionOrchestrator:
        """
        Create an orchestrator from a YAML config file.

        Args:
            path: Path to aegis_config.yaml.
            policy: Optional policy collaborator. Defaults to a StaticPolicy
                built from the ``policy`` config section.
        """
        return cls(config=load_config(path), policy=policy)

    @classmethod
    def default(cls, policy: BasePolicy | None = None) -> ActionOrchestrator:
        """Create an orchestrator with the default configuration."""
        return cls(config=load_config_from_dict(DEFAULT_CONFIG), policy=policy)

    def _setup_exporters(self) -> None:
        for exporter_name in self._config.observability.exporters:
            if exporter_name == "stdout":
                self._audit_log.add_exporter(StdoutExporter())
            else:
                logger.warning("Unknown audit exporter %r ignored", exporter_name)

    # ── Lifecycle ──────────────────────────────────────────────────

    def start(self) -> None:
        """Start the periodic preview and rollback sweeps."""
        self._previews.start()
        self._ledger.start()
        logger.info(
            "Orchestrator started (%d command(s) registered)", len(self._registry)
        )

    async def aclose(self) -> None:
        """
        Stop background sweeps, drain policy reports and cancel handlers
        still running past their deadline.

        Policy reports get up to ``executor.timeout_seconds`` to finish
        before they are cancelled.
        """
        await self._previews.stop()
        await self._ledger.stop()
        await self.flush_policy_reports(self._config.executor.timeout_seconds)
        await self._gate.aclose()
        logger.info("Orchestrator stopped")

    @property
    def pending_policy_reports(self) -> int:
        """``record_action`` calls scheduled but not yet finished."""
        return sum(1 for task in self._policy_reports if not task.done())

    async def flush_policy_reports(self, timeout: float | None = None) -> None:
        """
        Wait for scheduled ``record_action`` calls to finish.

        Reports still running after ``timeout`` seconds are cancelled.
        """
        tasks = [task for task in self._policy_reports if not task.done()]
        if not tasks:
            return
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning(
                "Cancelled %d policy report(s) still running after %ss",
                len(still_running),
                timeout,
            )

    async def __aenter__(self) -> ActionOrchestrator:
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ── Handler Registration ──────────────────────────────────────

    def register_handler(
        self,
        command: str,
        handler: Handler,
        analyzer: ChangeAnalyzer | None = None,
        *,
        inverse_command: str | None = None,
        inverse_params: InverseParamsBuilder | None = None,
        change_type: ChangeType | str | None = None,
        reversible: bool = True,
    ) -> CommandSpec:
        """
        Register the handler for a command.

        Args:
            command: Command name.
            handler: ``(params, context) -> HandlerOutcome | Mapping``,
                sync or async.
            analyzer: Optional ``(params, context) -> list[ChangePreview]``
                used when a preview is needed.
            inverse_command: Command that undoes this one. Without it the
                inverse is derived from the command name.
            inverse_params: ``(target, previous_state, params) -> dict``
                building the inverse parameters.
            change_type: Kind of change, inferred from the name if omitted.
            reversible: False disables rollback recording for the command.

        Returns:
            The registered CommandSpec.

        Raises:
            HandlerRegistrationError: If the registry is strict and the
                command declares no inverse.
        """
        spec = CommandSpec(
            command=command,
            handler=handler,
            analyzer=analyzer,
            inverse_command=inverse_command,
            inverse_params=inverse_params,
            change_type=ChangeType(change_type) if change_type else None,
            reversible=reversible,
        )
        self._registry.register(spec)
        return spec

    def handler(
        self,
        command: str,
        analyzer: ChangeAnalyzer | None = None,
        **metadata: Any,
    ) -> Callable[[Handler], Handler]:
        """
        Decorator form of :meth:`register_handler`.

        Example::

            @orchestrator.handler("delete_actor", inverse_command="spawn_actor")
            async def delete_actor(params, context):
                ...
        """

        def decorator(func: Handler) -> Handler:
            self.register_handler(command, func, analyzer, **metadata)
            return func

        return decorator

    def unregister_handler(self, command: str) -> bool:
        return self._registry.unregister(command)

    def has_handler(self, command: str) -> bool:
        return self._registry.has(command)

    @property
    def registered_commands(self) -> list[str]:
        return self._registry.commands

    # ── Primary API: Execute ──────────────────────────────────────

    async def execute(
        self,
        command: str,
        params: dict[str, Any] | None = None,
        context: ExecutionContext | None = None,
    ) -> ExecutionResult:
        """
        Run a command through the full pipeline.

        Args:
            command: Registered command name.
            params: Command parameters.
            context: Caller identity and pipeline switches. A context for
                session "default" is created when omitted.

        Returns:
            ExecutionResult. When the action needs approval and was not
            auto-approved, ``success`` is True, the pending preview is
            attached and ``requires_approval`` is set; nothing ran.
        """
        context = context or create_execution_context("default")
        params = dict(params or {})
        target = self._get_target(params)
        start = time.perf_counter()
        preview: ActionPreview | None = None
        invoked = False

        try:
            spec = self._registry.get(command)

            requires_approval = False
            if not context.skip_validation:
                validation = await self._policy.validate_action(
                    command, target, params, context.session_id
                )
                if not validation.valid:
                    raise ValidationFailedError(
                        validation.reason or f'Command "{command}" failed validation',
                        {"command": command, "target": target},
                    )
                requires_approval = validation.requires_approval

            group_id = context.rollback_group_id
            if group_id and self._ledger.get_group(group_id) is None:
                raise RollbackGroupNotFoundError(
                    f"Rollback group {group_id} not found", {"group_id": group_id}
                )

            if (
                requires_approval
                and self._previews.enabled
                and not context.safe_mode_override
            ):
                preview = await self._previews.create_preview(
                    command,
                    params,
                    lambda: self._analyze_changes(spec, params, context, target),
                    session_id=context.session_id,
                    user_id=context.user_id,
                )
                self._metrics.increment("previews_created")

                if not preview.approved:
                    self._metrics.increment("pending_approvals")
                    result = ExecutionResult(
                        success=True,
                        request_id=context.request_id,
                        command=command,
                        preview=preview,
                        execution_time_ms=_elapsed_ms(start),
                        metadata={
                            "requires_approval": True,
                            "preview_id": preview.id,
                            "target": target,
                        },
                    )
                    logger.info(
                        "Action %s (%s) awaiting approval via preview %s",
                        context.request_id,
                        command,
                        preview.id,
                    )
                    self._audit(result, target, context, params)
                    return result

                self._metrics.increment("previews_auto_approved")

            invoked = True
            outcome = await self._gate.run(command, spec.handler, params, context)

            rollback_id = None
            if (
                self._config.executor.enable_rollback
                and spec.reversible
                and outcome.previous_state is not None
            ):
                state = self._ledger.record_state(
                    action_id=context.request_id,
                    command=command,
                    target=target,
                    previous_state=outcome.previous_state,
                    new_state=outcome.resulting_state,
                    session_id=context.session_id,
                    inverse=spec.build_inverse(target, outcome.previous_state, params),
                )
                rollback_id = state.id
                self._metrics.increment("rollbacks_recorded")
                if group_id:
                    self._ledger.add_to_group(group_id, state)

            self._report_to_policy(command, target, True, context)

            if preview is not None:
                self._previews.mark_executed(preview.id, result=outcome.result)

            result = ExecutionResult(
                success=True,
                request_id=context.request_id,
                command=command,
                result=outcome.result,
                preview=preview,
                rollback_id=rollback_id,
                execution_time_ms=_elapsed_ms(start),
                metadata={"target": target},
            )
            logger.info(
                "Action %s (%s on %s) succeeded in %.1fms (rollback=%s)",
                context.request_id,
                command,
                target,
                result.execution_time_ms,
                rollback_id,
            )

        except Exception as exc:
            if invoked:
                self._report_to_policy(command, target, False, context)
            if preview is not None:
                self._previews.mark_executed(preview.id, error=str(exc))
            result = self._error_result(exc, command, context, start, target)
            result.preview = preview

        self._record_metrics(result)
        self._audit(result, target, context, params)
        return result

    # ── Primary API: Previews ─────────────────────────────────────

    async def execute_preview(
        self,
        preview_id: str,
        context: ExecutionContext | None = None,
    ) -> ExecutionResult:
        """
        Execute an approved preview.

        The preview must exist, be unexpired, approved and not yet
        executed. Its (possibly amended) parameters run through
        :meth:`execute` with the preview gate bypassed, and the outcome
        is reported back to the preview store.
        """
        context = context or create_execution_context("default")
        start = time.perf_counter()
        preview = self._previews.get_preview(preview_id)

        problem: AegisGuardError | None = None
        if preview is None:
            problem = PreviewNotFoundError(preview_id)
        elif preview.rejected:
            problem = PreviewRejectedError(
                f"Preview {preview_id} was rejected", {"preview_id": preview_id}
            )
        elif preview.executed or preview_id in self._inflight_previews:
            problem = PreviewAlreadyExecutedError(
                f"Preview {preview_id} has already been executed",
                {"preview_id": preview_id},
            )
        elif not preview.approved:
            problem = PreviewNotApprovedError(
                f"Preview {preview_id} has not been approved",
                {"preview_id": preview_id},
            )

        if problem is not None:
            command = preview.command if preview is not None else ""
            result = self._error_result(problem, command, context, start)
            result.preview = preview
            self._record_metrics(result)
            self._audit(result, NO_TARGET, context, {}, kind="preview_execute")
            return result

        self._inflight_previews.add(preview_id)
        try:
            result = await self.execute(
                preview.command,
                preview.params,
                replace(context, safe_mode_override=True),
            )
        finally:
            self._inflight_previews.discard(preview_id)

        self._previews.mark_executed(
            preview_id,
            result=result.result if result.success else None,
            error=result.error.message if result.error else None,
        )
        result.preview = preview
        result.metadata["preview_id"] = preview_id
        return result

    def approve_preview(self, request: ApprovalRequest) -> ActionPreview:
        """Approve a pending preview. See :meth:`PreviewStore.approve_preview`."""
        return self._previews.approve_preview(request)

    def reject_preview(self, request: RejectionRequest) -> ActionPreview:
        """Reject a pending preview. See :meth:`PreviewStore.reject_preview`."""
        return self._previews.reject_preview(request)

    # ── Primary API: Rollback ─────────────────────────────────────

    async def rollback_action(
        self,
        rollback_id: str,
        context: ExecutionContext | None = None,
    ) -> ExecutionResult:
        """
        Undo a recorded action by executing its inverse.

        The inverse runs through :meth:`execute` with validation skipped;
        the state is marked rolled back only if it succeeds.
        """
        context = context or create_execution_context("default")
        start = time.perf_counter()

        if (
            not self._ledger.can_rollback(rollback_id)
            or rollback_id in self._inflight_rollbacks
        ):
            result = self._error_result(
                RollbackNotAvailableError(
                    f"Rollback {rollback_id} is not available",
                    {"rollback_id": rollback_id},
                ),
                "",
                context,
                start,
            )
            self._record_metrics(result)
            self._audit(result, NO_TARGET, context, {}, kind="rollback")
            return result

        prepared = self._ledger.prepare_rollback(rollback_id)
        rollback_context = replace(
            context,
            skip_validation=True,
            rollback_group_id=None,
            metadata={**context.metadata, "rollback_of": rollback_id},
        )

        self._inflight_rollbacks.add(rollback_id)
        try:
            result = await self.execute(
                prepared.command, prepared.params, rollback_context
            )
        finally:
            self._inflight_rollbacks.discard(rollback_id)

        if result.success:
            self._ledger.mark_rolled_back(rollback_id)
            self._metrics.increment("rollbacks_executed")
        else:
            logger.error(
                "Rollback %s (%s) failed: %s",
                rollback_id,
                prepared.command,
                result.error.message if result.error else "unknown error",
            )
        result.metadata["rollback_of"] = rollback_id
        return result

    def create_rollback_group(
        self,
        name: str,
        session_id: str,
        description: str | None = None,
    ) -> RollbackGroup:
        """
        Create a group for a batch action.

        Pass the group id as ``rollback_group_id`` in each member's
        ExecutionContext, then undo the batch with :meth:`rollback_group`.
        """
        return self._ledger.create_group(name, session_id, description)

    async def rollback_group(
        self,
        group_id: str,
        context: ExecutionContext | None = None,
    ) -> GroupRollbackReport:
        """
        Undo every pending member of a group, last applied first.

        Stops at the first failed member; the members after it are
        reported as skipped.

        Raises:
            RollbackGroupNotFoundError: If the group is unknown.
        """
        context = context or create_execution_context("default")
        pending = self._ledger.prepare_group_rollback(group_id)
        report = GroupRollbackReport(group_id=group_id)

        for index, prepared in enumerate(pending):
            state_id = prepared.state_id or ""
            result = await self.rollback_action(state_id, context)
            report.results.append(result)
            if result.success:
                report.rolled_back.append(state_id)
                continue
            report.failed.append(state_id)
            report.skipped.extend(p.state_id or "" for p in pending[index + 1 :])
            logger.error(
                "Group rollback %s stopped at %s; %d member(s) skipped",
                group_id,
                state_id,
                len(report.skipped),
            )
            break

        return report

    # ── Primary API: Observability ────────────────────────────────

    def get_metrics(self) -> ExecutorMetrics:
        """Return a snapshot of the execution counters."""
        return self._metrics.snapshot()

    def reset_metrics(self) -> None:
        self._metrics.reset()

    def get_audit_log(self, filters: AuditFilter | None = None) -> list[AuditEntry]:
        return self._audit_log.query(filters)

    def add_exporter(self, exporter: Any) -> None:
        """Add an audit log exporter implementing ``export(AuditEntry)``."""
        self._audit_log.add_exporter(exporter)

    # ── Internals ─────────────────────────────────────────────────

    def _get_target(self, params: dict[str, Any]) -> str:
        """First present identifier among the configured target keys, else ``""``."""
        for key in self._config.executor.target_keys:
            value = params.get(key)
            if value:
                return str(value)
        return NO_TARGET

    async def _analyze_changes(
        self,
        spec: CommandSpec,
        params: dict[str, Any],
        context: ExecutionContext,
        target: str,
    ) -> list[ChangePreview]:
        if spec.analyzer is not None:
            return list(await call_maybe_async(spec.analyzer, params, context))
        return [
            ChangePreview(
                type=spec.effective_change_type,
                target=target,
                description=f"Execute {spec.command}",
            )
        ]

    def _report_to_policy(
        self,
        command: str,
        target: str,
        success: bool,
        context: ExecutionContext,
    ) -> None:
        """Schedule ``record_action`` without waiting for it."""
        task = asyncio.ensure_future(
            self._policy.record_action(command, target, success, context.session_id)
        )
        self._policy_reports.add(task)
        task.add_done_callback(self._policy_report_finished(command))

    def _policy_report_finished(
        self, command: str
    ) -> Callable[[asyncio.Task[None]], None]:
        def _callback(task: asyncio.Task[None]) -> None:
            self._policy_reports.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                logger.error(
                    "Policy %s failed to record %s: %s", self._policy.name, command, exc
                )

        return _callback

    def _error_result(
        self,
        exc: Exception,
        command: str,
        context: ExecutionContext,
        start: float,
        target: str = NO_TARGET,
    ) -> ExecutionResult:
        if isinstance(exc, AegisGuardError):
            error = exc.to_error_info()
            metadata = dict(exc.details)
        else:
            error = ErrorInfo(
                code=ExecutionError.code,
                message=str(exc) or type(exc).__name__,
                recoverable=True,
                suggestion=ExecutionError.default_suggestion,
            )
            metadata = {}

        metadata["target"] = target
        if metadata.get("timed_out"):
            self._metrics.increment("timeouts")

        level = logging.WARNING if error.recoverable else logging.ERROR
        logger.log(
            level,
            "Action %s (%s) failed [%s]: %s",
            context.request_id,
            command or "-",
            error.code,
            error.message,
        )
        return ExecutionResult(
            success=False,
            request_id=context.request_id,
            command=command,
            error=error,
            execution_time_ms=_elapsed_ms(start),
            metadata=metadata,
        )

    def _record_metrics(self, result: ExecutionResult) -> None:
        if self._config.executor.enable_metrics:
            self._metrics.record_execution(result.success, result.execution_time_ms)

    def _audit(
        self,
        result: ExecutionResult,
        target: str,
        context: ExecutionContext,
        params: dict[str, Any],
        kind: str | None = None,
    ) -> None:
        if kind is None:
            kind = "rollback" if "rollback_of" in context.metadata else "execute"
        try:
            self._audit_log.write(
                AuditEntry(
                    request_id=result.request_id,
                    command=result.command,
                    target=target,
                    session_id=context.session_id,
                    success=result.success,
                    kind=kind,
                    user_id=context.user_id,
                    error_code=result.error.code if result.error else None,
                    error_message=result.error.message if result.error else None,
                    preview_id=result.preview.id if result.preview else None,
                    rollback_id=result.rollback_id or context.metadata.get("rollback_of"),
                    requires_approval=result.requires_approval,
                    timed_out=bool(result.metadata.get("timed_out")),
                    duration_ms=result.execution_time_ms,
                    parameters=sanitize_params(params),
                    timestamp=self._clock.now(),
                )
            )
        except Exception:
            logger.exception(
                "Failed to audit request %s (%s)", result.request_id, result.command
            )


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
