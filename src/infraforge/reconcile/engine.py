"""
Generic claim reconciler.

One ClaimReconciler instance serves one claim kind, configured by a
ClaimStrategy record (models, active phase, steps, cleanup). A pass:

1. Reads the claim; a missing claim is done.
2. Deletion: runs the kind's cleanup with bounded retries, then removes
   the finalizer.
3. First observation: attaches the finalizer, sets phase Pending and
   requeues immediately.
4. Flips the phase to the kind's active phase (unless already Ready) and
   clears the per-child status arrays.
5. Runs the steps in order against a fresh PassContext.
6. Writes the outcome: Ready, Failed, or an unchanged phase plus a
   timed requeue.

Error classes decide the outcome:
- PermanentError: Failed, no requeue
- TransientError: phase unchanged, requeue after publish_requeue_s
- PartialInstallError (or failed children): child status recorded,
  ready=false, requeue after partial_requeue_s
- anything else: Failed and ReconcileError for the dispatch layer

All status and finalizer writes go through optimistic_update.
"""

from __future__ import annotations

import logging
import time as time_module
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from infraforge.cluster.api import ClusterAPI
from infraforge.config import InfraforgeConfig
from infraforge.contracts.k8s import CLAIM_FINALIZER, ResourceKind
from infraforge.contracts.timeouts import IMMEDIATE_REQUEUE_DELAY_S
from infraforge.errors import (
    ConflictError,
    NotFoundError,
    PartialInstallError,
    PermanentError,
    ReconcileError,
    TransientError,
)
from infraforge.logger import ClaimLogger
from infraforge.models.status import ClaimStatus, Phase, utc_now
from infraforge.reconcile.observer import NoopObserver, ReconcileObserver
from infraforge.reconcile.optimistic import optimistic_update

logger = logging.getLogger(__name__)

READY_CONDITION = "Ready"


@dataclass(frozen=True)
class ClaimRef:
    kind: str
    name: str
    namespace: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


@dataclass(frozen=True)
class Result:
    """Outcome of a pass; requeue_after None means done."""
    requeue_after: Optional[float] = None
    phase: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.requeue_after is None


StatusMutation = Callable[[ClaimStatus], None]


@dataclass
class PassContext:
    """Per-pass state shared by a kind's steps. Never reused across passes."""
    ref: ClaimRef
    obj: Dict[str, Any]
    spec: Any
    status: ClaimStatus
    config: InfraforgeConfig
    strategy: "ClaimStrategy"
    checkpoint: Callable[[StatusMutation], None]
    message: Optional[str] = None
    failed: List[str] = field(default_factory=list)
    total_children: int = 0
    # Values handed from one step to the next, e.g. a rendered tree
    artifacts: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.ref.name

    @property
    def target_namespace(self) -> Optional[str]:
        """Namespace children are deployed to: spec.namespace or the claim's own."""
        return getattr(self.spec, "namespace", None) or self.ref.namespace

    def child_failed(self, name: str) -> None:
        self.failed.append(name)


@dataclass(frozen=True)
class Step:
    name: str
    run: Callable[[PassContext], None]
    # Prefix for failure messages, e.g. "failed to create organization"
    failure: Optional[str] = None
    best_effort: bool = False


@dataclass
class ClaimStrategy:
    """Everything that distinguishes one claim kind from another."""
    resource: ResourceKind
    spec_model: Type[BaseModel]
    status_model: Type[ClaimStatus]
    steps: List[Step]
    cleanup: Callable[[PassContext], None]
    active_phase: Phase = Phase.PROVISIONING
    ready_message: str = "All resources provisioned"
    # Transient failures also mark the claim Failed (bootstrap)
    fail_on_transient: bool = False

    @property
    def kind(self) -> str:
        return self.resource.kind


class ClaimReconciler:
    """Drive one claim kind through its phase state machine."""

    def __init__(
        self,
        strategy: ClaimStrategy,
        cluster: ClusterAPI,
        config: InfraforgeConfig,
        observer: Optional[ReconcileObserver] = None,
        events: Optional[ClaimLogger] = None,
        sleep: Callable[[float], None] = time_module.sleep,
        clock: Callable[[], float] = time_module.monotonic,
    ):
        self.strategy = strategy
        self.cluster = cluster
        self.config = config
        self.observer = observer or NoopObserver()
        self.events = events or ClaimLogger(kind=strategy.kind)
        self._sleep = sleep
        self._clock = clock

    @property
    def kind(self) -> ResourceKind:
        return self.strategy.resource

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def reconcile(self, ref: ClaimRef) -> Result:
        """
        Run one idempotent pass for ref.

        Raises:
            ReconcileError: unexpected failure; the dispatch layer backs off
        """
        started = self._clock()
        self.observer.reconcile_started(self.strategy.kind, ref.key)
        outcome = "error"
        try:
            result = self._reconcile(ref)
            if result.phase == Phase.FAILED.value:
                outcome = "failed"
            elif result.done:
                outcome = "success"
            else:
                outcome = "requeue"
            duration_ms = (self._clock() - started) * 1000
            self.events.log_reconciled(ref.key, result.phase or "", duration_ms, result.requeue_after)
            return result
        finally:
            duration_ms = (self._clock() - started) * 1000
            self.observer.reconcile_finished(self.strategy.kind, ref.key, outcome, duration_ms)

    def _reconcile(self, ref: ClaimRef) -> Result:
        try:
            obj = self.cluster.get(self.kind, ref.name, ref.namespace)
        except NotFoundError:
            logger.debug(f"{self.strategy.kind} {ref.key} no longer exists")
            return Result()

        metadata = obj.get("metadata", {})
        if metadata.get("deletionTimestamp"):
            return self._finalize(ref, obj)

        status = self._parse_status(obj)
        if CLAIM_FINALIZER not in metadata.get("finalizers", []) or status.phase is None:
            return self._initialize(ref, obj, status)

        try:
            spec = self.strategy.spec_model.model_validate(obj.get("spec") or {})
        except ValidationError as e:
            message = f"invalid spec: {e.error_count()} validation error(s): {e}"
            self.events.log_step_failed(ref.key, "parse_spec", PermanentError(message), retryable=False)
            return self._fail(ref, status.phase, message, self.strategy.status_model())

        return self._run_pass(ref, obj, spec, status)

    # -------------------------------------------------------------------------
    # Lifecycle stages
    # -------------------------------------------------------------------------

    def _initialize(self, ref: ClaimRef, obj: Dict[str, Any], status: ClaimStatus) -> Result:
        if CLAIM_FINALIZER not in obj.get("metadata", {}).get("finalizers", []):
            self._update_metadata(ref, self._add_finalizer)
            logger.info(f"Attached finalizer to {self.strategy.kind} {ref.key}")

        if status.phase is None:
            def mutate(current: ClaimStatus) -> None:
                current.phase = Phase.PENDING
                current.ready = False
                current.message = "Claim accepted"
                current.set_condition(READY_CONDITION, False, "Pending")

            self._write_status(ref, mutate)
            self.events.log_phase_changed(ref.key, None, Phase.PENDING.value)

        return Result(requeue_after=IMMEDIATE_REQUEUE_DELAY_S, phase=Phase.PENDING.value)

    def _run_pass(self, ref: ClaimRef, obj: Dict[str, Any], spec: Any, status: ClaimStatus) -> Result:
        previous = status.phase
        active = self.strategy.active_phase
        if previous != Phase.READY:
            def start(current: ClaimStatus) -> None:
                current.phase = active
                current.ready = False
                current.reset_children()
                current.set_condition(READY_CONDITION, False, active.value)

            self._write_status(ref, start)
            if previous != active:
                self.events.log_phase_changed(ref.key, _phase_value(previous), active.value)

        working = self.strategy.status_model()
        ctx = PassContext(
            ref=ref,
            obj=obj,
            spec=spec,
            status=working,
            config=self.config,
            strategy=self.strategy,
            checkpoint=lambda mutation: self._checkpoint(ref, working, mutation),
        )
        phase_now = previous if previous == Phase.READY else active

        for step in self.strategy.steps:
            try:
                step.run(ctx)
            except Exception as e:
                if not step.best_effort:
                    return self._step_error(ref, step, e, phase_now, working)
                self._step_failed(ref, step, e, retryable=True)
                ctx.message = f"{self.strategy.ready_message} ({_with_context(step, e)})"
                continue
            self.observer.step_completed(self.strategy.kind, step.name, "success")

        if ctx.failed:
            return self._partial(ref, PartialInstallError(ctx.failed, ctx.total_children), working)

        message = ctx.message or self.strategy.ready_message

        def ready(current: ClaimStatus) -> None:
            current.adopt_children(working)
            current.phase = Phase.READY
            current.ready = True
            current.message = message
            current.set_condition(READY_CONDITION, True, "Reconciled", message)

        self._write_status(ref, ready)
        if phase_now != Phase.READY:
            self.events.log_phase_changed(ref.key, _phase_value(phase_now), Phase.READY.value, message)
        return Result(phase=Phase.READY.value)

    def _step_error(self, ref: ClaimRef, step: Step, error: Exception,
                    phase: Optional[Phase], working: ClaimStatus) -> Result:
        """Map a failed step to the pass outcome; unexpected errors re-raise as ReconcileError."""
        message = _with_context(step, error)
        if isinstance(error, PermanentError):
            self._step_failed(ref, step, error, retryable=False)
            return self._fail(ref, phase, message, working)
        if isinstance(error, PartialInstallError):
            self._step_failed(ref, step, error, retryable=True)
            return self._partial(ref, error, working)
        if isinstance(error, TransientError):
            self._step_failed(ref, step, error, retryable=True)
            if self.strategy.fail_on_transient:
                self._fail(ref, phase, message, working)
                return Result(requeue_after=self.config.publish_requeue_s, phase=Phase.FAILED.value)
            return self._transient(ref, phase, message)

        self._step_failed(ref, step, error, retryable=False)
        self._fail(ref, phase, message, working)
        raise ReconcileError(f"{self.strategy.kind} {ref.key}: {message}") from error

    def _fail(self, ref: ClaimRef, previous: Optional[Phase], message: str,
              working: ClaimStatus) -> Result:
        def failed(current: ClaimStatus) -> None:
            current.adopt_children(working)
            current.phase = Phase.FAILED
            current.ready = False
            current.message = message
            current.set_condition(READY_CONDITION, False, "Failed", message)

        self._write_status(ref, failed)
        if previous != Phase.FAILED:
            self.events.log_phase_changed(ref.key, _phase_value(previous), Phase.FAILED.value, message)
        return Result(phase=Phase.FAILED.value)

    def _partial(self, ref: ClaimRef, error: PartialInstallError, working: ClaimStatus) -> Result:
        message = str(error)

        def partial(current: ClaimStatus) -> None:
            current.adopt_children(working)
            current.ready = False
            current.message = message
            current.set_condition(READY_CONDITION, False, "PartialInstall", message)

        status = self._write_status(ref, partial)
        phase = _phase_value(status.phase) if status is not None else None
        return Result(requeue_after=self.config.partial_requeue_s, phase=phase)

    def _transient(self, ref: ClaimRef, phase: Optional[Phase], message: str) -> Result:
        def note(current: ClaimStatus) -> None:
            current.message = f"{message}; retrying"

        self._write_status(ref, note)
        return Result(requeue_after=self.config.publish_requeue_s, phase=_phase_value(phase))

    def _finalize(self, ref: ClaimRef, obj: Dict[str, Any]) -> Result:
        if CLAIM_FINALIZER not in obj.get("metadata", {}).get("finalizers", []):
            return Result()

        try:
            spec = self.strategy.spec_model.model_validate(obj.get("spec") or {})
        except ValidationError as e:
            logger.warning(f"Skipping cleanup of {ref.key}: invalid spec: {e}")
            spec = None

        if spec is not None:
            ctx = PassContext(
                ref=ref,
                obj=obj,
                spec=spec,
                status=self.strategy.status_model(),
                config=self.config,
                strategy=self.strategy,
                checkpoint=lambda mutation: None,
            )
            self._run_cleanup(ref, obj, ctx)

        try:
            self._update_metadata(ref, self._remove_finalizer)
        except NotFoundError:
            pass
        logger.info(f"Removed finalizer from {self.strategy.kind} {ref.key}")
        return Result()

    def _run_cleanup(self, ref: ClaimRef, obj: Dict[str, Any], ctx: PassContext) -> None:
        attempts = self.config.cleanup_max_attempts
        delay = self.config.cleanup_retry_delay_s
        for attempt in range(1, attempts + 1):
            try:
                self.strategy.cleanup(ctx)
                return
            except Exception as e:
                if attempt < attempts:
                    self.events.log_cleanup_retry(ref.key, attempt, attempts, e)
                    self._sleep(delay)
                    delay *= 2
                    continue
                self.events.log_cleanup_abandoned(ref.key, attempts, e)
                self.observer.cleanup_abandoned(self.strategy.kind, ref.key)
                self.cluster.emit_event(
                    obj,
                    reason="CleanupAbandoned",
                    message=f"cleanup failed after {attempts} attempts, removing finalizer: {e}",
                    event_type="Warning",
                )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _parse_status(self, obj: Dict[str, Any]) -> ClaimStatus:
        try:
            return self.strategy.status_model.model_validate(obj.get("status") or {})
        except ValidationError as e:
            logger.warning(f"Ignoring unreadable status: {e}")
            return self.strategy.status_model()

    def _checkpoint(self, ref: ClaimRef, working: ClaimStatus, mutation: StatusMutation) -> None:
        mutation(working)
        self._write_status(ref, mutation)

    def _write_status(self, ref: ClaimRef, mutation: StatusMutation) -> Optional[ClaimStatus]:
        """Apply mutation to the latest status and write it through the status subresource."""
        written: Dict[str, ClaimStatus] = {}

        def read() -> Dict[str, Any]:
            return self.cluster.get(self.kind, ref.name, ref.namespace)

        def mutate(obj: Dict[str, Any]) -> Dict[str, Any]:
            status = self._parse_status(obj)
            mutation(status)
            status.last_updated = utc_now()
            obj["status"] = status.to_wire()
            written["status"] = status
            return obj

        def write(obj: Dict[str, Any]) -> Dict[str, Any]:
            return self.cluster.replace_status(self.kind, ref.name, obj, ref.namespace)

        try:
            optimistic_update(read, mutate, write, self.config.status_max_attempts)
        except NotFoundError:
            logger.debug(f"{self.strategy.kind} {ref.key} vanished during status update")
            return None
        except ConflictError as e:
            raise ReconcileError(f"status update for {ref.key} failed: {e}") from e
        return written.get("status")

    def _update_metadata(self, ref: ClaimRef, mutation: Callable[[Dict[str, Any]], None]) -> None:
        def read() -> Dict[str, Any]:
            return self.cluster.get(self.kind, ref.name, ref.namespace)

        def mutate(obj: Dict[str, Any]) -> Dict[str, Any]:
            mutation(obj)
            return obj

        def write(obj: Dict[str, Any]) -> Dict[str, Any]:
            return self.cluster.replace(self.kind, ref.name, obj, ref.namespace)

        try:
            optimistic_update(read, mutate, write, self.config.status_max_attempts)
        except ConflictError as e:
            raise ReconcileError(f"metadata update for {ref.key} failed: {e}") from e

    @staticmethod
    def _add_finalizer(obj: Dict[str, Any]) -> None:
        finalizers = obj.setdefault("metadata", {}).setdefault("finalizers", [])
        if CLAIM_FINALIZER not in finalizers:
            finalizers.append(CLAIM_FINALIZER)

    @staticmethod
    def _remove_finalizer(obj: Dict[str, Any]) -> None:
        metadata = obj.setdefault("metadata", {})
        metadata["finalizers"] = [f for f in metadata.get("finalizers", []) if f != CLAIM_FINALIZER]

    def _step_failed(self, ref: ClaimRef, step: Step, error: BaseException, retryable: bool) -> None:
        self.events.log_step_failed(ref.key, step.name, error, retryable)
        self.observer.step_completed(self.strategy.kind, step.name, "failure")


def _with_context(step: Step, error: BaseException) -> str:
    if step.failure and not str(error).startswith(step.failure):
        return f"{step.failure}: {error}"
    return str(error)


def _phase_value(phase: Optional[Phase]) -> Optional[str]:
    return phase.value if phase is not None else None
