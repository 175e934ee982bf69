import asyncio
import contextlib
import logging
import threading
import time
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, Dict, List, Optional, Tuple, Union

from opentelemetry import trace
from prometheus_client import Counter, Gauge, Histogram
from pydantic import BaseModel

from rmmwatch.config import settings
from rmmwatch.errors import ConfigurationError, SampleUnavailableError, ScriptExecutionError
from rmmwatch.schemas.binding import PolicyBinding
from rmmwatch.schemas.conditions import ConditionKind
from rmmwatch.schemas.dispatch import DispatchReport
from rmmwatch.schemas.events import BindingState, ScriptErrorEvent, TransitionEvent

from .audit_logger import AuditLogger
from .policy_store import PolicyStore
from .predicates import (
    EvaluationContext,
    duration_window,
    evaluate_condition,
    evaluate_script_outcome,
    requires_sample,
)
from .registries import AgentPolicyRegistry, CustomFieldStore, MetricsProvider
from .script_runner import ScriptRunner
from .state_machine import BindingStateMachine
from .windowing import DurationTracker, make_tracker

logger = logging.getLogger("rmmwatch.engine")
tracer = trace.get_tracer(__name__)

# --------------------------------------------------------------------------
# Prometheus metrics
# --------------------------------------------------------------------------

TRANSITIONS_TOTAL = Counter(
    "rmmwatch_transitions_total",
    "Binding state transitions",
    ["kind", "new_state", "cause"],
)

SAMPLES_UNAVAILABLE_TOTAL = Counter(
    "rmmwatch_samples_unavailable_total",
    "Ticks on which a metric source could not produce a sample",
    ["kind"],
)

TICK_DURATION_SECONDS = Histogram(
    "rmmwatch_tick_duration_seconds",
    "Wall-clock duration of one evaluation tick over every endpoint",
    buckets=(0.01, 0.05, 0.1, 0.5, 1, 2, 5, 10, 30),
)

ACTIVE_BINDINGS = Gauge(
    "rmmwatch_active_bindings",
    "Number of (binding, endpoint) pairs currently Active",
)

Key = Tuple[str, str]
_SampleOrError = Union[BaseModel, SampleUnavailableError]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EvaluationEngine:
    """
    Polls every endpoint in scope of every loaded binding once per tick.

    Bindings on the same endpoint share one sample per condition kind per
    tick but keep independent duration trackers and state machines.
    Script Result Conditions run on their own Run_Every schedule as asyncio
    tasks next to the tick loop.
    """

    def __init__(
        self,
        store: PolicyStore,
        agent_policies: AgentPolicyRegistry,
        metrics: MetricsProvider,
        custom_fields: Optional[CustomFieldStore] = None,
        dispatcher=None,
        script_runner: Optional[ScriptRunner] = None,
        audit: Optional[AuditLogger] = None,
        tick_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
        history_size: int = 500,
    ) -> None:
        self.store = store
        self.agent_policies = agent_policies
        self.metrics = metrics
        self.custom_fields = custom_fields
        self.dispatcher = dispatcher
        self.script_runner = script_runner
        self.audit = audit
        self.tick_seconds = tick_seconds or settings.TICK_SECONDS
        self.clock = clock

        self._machines: Dict[Key, BindingStateMachine] = {}
        self._trackers: Dict[Key, Optional[DurationTracker]] = {}
        self._script_due: Dict[Key, datetime] = {}
        self._script_tasks: Dict[Key, asyncio.Task] = {}
        self._known: Dict[str, PolicyBinding] = {}
        self._generation = -1

        self.recent_events: Deque[TransitionEvent] = deque(maxlen=history_size)
        self.recent_reports: Deque[DispatchReport] = deque(maxlen=history_size)
        self.script_errors: Deque[ScriptErrorEvent] = deque(maxlen=history_size)
        self.tick_count = 0

        self._loop_task: Optional[asyncio.Task] = None
        # Ticks, HTTP-driven evaluations and script outcomes mutate the same
        # per-binding state from different threads.
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._loop_task is None:
            logger.info("Starting evaluation loop (tick=%.1fs)", self.tick_seconds)
            self._loop_task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._loop_task:
            logger.info("Stopping evaluation loop")
            self._loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._loop_task
            self._loop_task = None
        tasks = list(self._script_tasks.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._script_tasks.clear()

    @property
    def running(self) -> bool:
        return self._loop_task is not None

    async def _loop(self) -> None:
        while True:
            try:
                await self.tick_async()
            except Exception:  # noqa: BLE001
                logger.exception("Evaluation tick failed")
            await asyncio.sleep(self.tick_seconds)

    # ------------------------------------------------------------------
    # Binding bookkeeping
    # ------------------------------------------------------------------

    def _sync_bindings(self) -> List[PolicyBinding]:
        generation, bindings = self.store.snapshot()
        if generation == self._generation:
            return bindings

        current = {b.policy_id: b for b in bindings}
        stale = {
            policy_id
            for policy_id, old in self._known.items()
            if current.get(policy_id) != old
        }
        if stale:
            logger.info("Dropping runtime state for changed/removed bindings: %s", sorted(stale))
            for registry in (self._machines, self._trackers, self._script_due):
                for key in [k for k in registry if k[0] in stale]:
                    del registry[key]
        self._known = current
        self._generation = generation
        return bindings

    def _machine(self, binding: PolicyBinding, endpoint_id: str) -> BindingStateMachine:
        key = (binding.policy_id, endpoint_id)
        machine = self._machines.get(key)
        if machine is None:
            machine = BindingStateMachine.for_binding(binding, endpoint_id)
            self._machines[key] = machine
        return machine

    def _tracker(self, binding: PolicyBinding, endpoint_id: str) -> Optional[DurationTracker]:
        key = (binding.policy_id, endpoint_id)
        if key not in self._trackers:
            window = duration_window(binding.condition)
            self._trackers[key] = make_tracker(
                window.total_seconds if window else None, self.tick_seconds
            )
        return self._trackers[key]

    def _targets(self, bindings: List[PolicyBinding]) -> Dict[str, List[PolicyBinding]]:
        targets: Dict[str, List[PolicyBinding]] = {}
        for binding in bindings:
            for endpoint_id in self.agent_policies.endpoints_for(binding.target_scope):
                targets.setdefault(endpoint_id, []).append(binding)
        return targets

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _record(self, binding: PolicyBinding, events: List[TransitionEvent]) -> None:
        for event in events:
            self.recent_events.append(event)
            TRANSITIONS_TOTAL.labels(
                kind=event.condition_kind.value,
                new_state=event.new_state.value,
                cause=event.cause.value,
            ).inc()
            if self.audit is not None:
                self.audit.write_event(event)

            if self.dispatcher is None:
                continue
            if event.new_state is BindingState.ACTIVE:
                self.recent_reports.append(self.dispatcher.dispatch_activation(binding, event))
            elif event.new_state is BindingState.INACTIVE:
                report = self.dispatcher.dispatch_reset(binding, event)
                if report is not None:
                    self.recent_reports.append(report)

        if events:
            ACTIVE_BINDINGS.set(
                sum(1 for m in self._machines.values() if m.state is BindingState.ACTIVE)
            )

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _sample(self, endpoint_id: str, kind: ConditionKind, samples: Dict[ConditionKind, _SampleOrError]):
        if kind not in samples:
            try:
                samples[kind] = self.metrics.sample(endpoint_id, kind)
            except SampleUnavailableError as exc:
                samples[kind] = exc
        value = samples[kind]
        if isinstance(value, SampleUnavailableError):
            raise value
        return value

    def _evaluate_binding(
        self,
        binding: PolicyBinding,
        endpoint_id: str,
        now: datetime,
        samples: Dict[ConditionKind, _SampleOrError],
    ) -> List[TransitionEvent]:
        kind = binding.kind
        machine = self._machine(binding, endpoint_id)
        tracker = self._tracker(binding, endpoint_id)
        ctx = EvaluationContext(endpoint_id=endpoint_id, now=now, custom_fields=self.custom_fields)

        with tracer.start_as_current_span("rmmwatch.evaluate_binding") as span:
            span.set_attribute("rmmwatch.policy_id", binding.policy_id)
            span.set_attribute("rmmwatch.endpoint_id", endpoint_id)
            span.set_attribute("rmmwatch.condition_kind", kind.value)
            try:
                sample = self._sample(endpoint_id, kind, samples) if requires_sample(kind) else None
                result = evaluate_condition(binding.condition, sample, ctx)
            except SampleUnavailableError as exc:
                # Paused: neither the window nor the state machine moves.
                SAMPLES_UNAVAILABLE_TOTAL.labels(kind=kind.value).inc()
                span.add_event("sample_unavailable", {"reason": exc.reason})
                logger.debug("%s@%s: %s", binding.policy_id, endpoint_id, exc)
                return []
            except ConfigurationError as exc:
                span.record_exception(exc)
                logger.error("%s@%s cannot be evaluated: %s", binding.policy_id, endpoint_id, exc)
                return []

            satisfied = result.satisfied
            if tracker is not None:
                satisfied = tracker.add(result.satisfied, now)
                span.set_attribute("rmmwatch.window.progress", tracker.progress)
            span.set_attribute("rmmwatch.instant_satisfied", result.satisfied)
            span.set_attribute("rmmwatch.satisfied", satisfied)
            if result.detail:
                span.set_attribute("rmmwatch.detail", result.detail)

            events = machine.observe(satisfied, now, result.sampled_value)

        self._record(binding, events)
        return events

    def evaluate_endpoint(
        self,
        endpoint_id: str,
        now: Optional[datetime] = None,
        bindings: Optional[List[PolicyBinding]] = None,
    ) -> List[TransitionEvent]:
        """Evaluate every non-script binding in scope of one endpoint."""
        now = now or self.clock()
        with self._lock:
            if bindings is None:
                bindings = self._targets(self._sync_bindings()).get(endpoint_id, [])

            samples: Dict[ConditionKind, _SampleOrError] = {}
            events: List[TransitionEvent] = []
            for binding in bindings:
                if binding.kind is ConditionKind.SCRIPT_RESULT_CONDITION:
                    continue
                events.extend(self._evaluate_binding(binding, endpoint_id, now, samples))
            return events

    def tick(self, now: Optional[datetime] = None) -> List[TransitionEvent]:
        now = now or self.clock()
        start = time.time()
        events: List[TransitionEvent] = []

        with self._lock, tracer.start_as_current_span("rmmwatch.tick") as span:
            targets = self._targets(self._sync_bindings())
            span.set_attribute("rmmwatch.endpoints", len(targets))
            for endpoint_id, bindings in targets.items():
                events.extend(self.evaluate_endpoint(endpoint_id, now, bindings))
            span.set_attribute("rmmwatch.transitions", len(events))
            self.tick_count += 1

        TICK_DURATION_SECONDS.observe(time.time() - start)
        return events

    async def tick_async(self, now: Optional[datetime] = None) -> List[TransitionEvent]:
        """Run one tick in a worker thread; the event loop stays free for script tasks and HTTP."""
        now = now or self.clock()
        events = await asyncio.to_thread(self.tick, now)
        due = await asyncio.to_thread(self._due_scripts, now)
        self._start_scripts(due)
        return events

    # ------------------------------------------------------------------
    # Script Result Conditions
    # ------------------------------------------------------------------

    def schedule_scripts(self, now: Optional[datetime] = None) -> List[Key]:
        """Start every due script run; must be called from a running event loop."""
        return self._start_scripts(self._due_scripts(now or self.clock()))

    def _due_scripts(self, now: datetime) -> List[Tuple[PolicyBinding, str]]:
        if self.script_runner is None:
            return []
        due: List[Tuple[PolicyBinding, str]] = []
        with self._lock:
            bindings = [
                b for b in self._sync_bindings() if b.kind is ConditionKind.SCRIPT_RESULT_CONDITION
            ]
            for endpoint_id, scoped in self._targets(bindings).items():
                for binding in scoped:
                    key = (binding.policy_id, endpoint_id)
                    if now < self._script_due.get(key, now):
                        continue
                    self._script_due[key] = now + timedelta(
                        seconds=binding.condition.run_every.total_seconds
                    )
                    due.append((binding, endpoint_id))
        return due

    def _start_scripts(self, due: List[Tuple[PolicyBinding, str]]) -> List[Key]:
        started: List[Key] = []
        for binding, endpoint_id in due:
            key = (binding.policy_id, endpoint_id)
            if self.script_runner.busy(*key):
                logger.warning("Skipping script run for %s@%s: previous run still in flight", *key)
                continue
            task = asyncio.create_task(self._script_task(binding, endpoint_id))
            self._script_tasks[key] = task
            task.add_done_callback(lambda _t, k=key: self._script_tasks.pop(k, None))
            started.append(key)
        return started

    async def _script_task(self, binding: PolicyBinding, endpoint_id: str) -> None:
        try:
            await self.run_script_condition(binding, endpoint_id)
        except Exception:  # noqa: BLE001
            logger.exception("Script task for %s@%s crashed", binding.policy_id, endpoint_id)

    async def run_script_condition(
        self, binding: PolicyBinding, endpoint_id: str
    ) -> List[TransitionEvent]:
        """
        Run the binding's script once and feed the outcome to its state machine.

        An execution failure produces a ScriptErrorEvent instead; Result_Code
        and With_Output are not evaluated for that run.
        """
        if self.script_runner is None:
            raise RuntimeError("no script runner configured")
        condition = binding.condition

        try:
            outcome = await self.script_runner.run(binding.policy_id, endpoint_id, condition)
        except ScriptExecutionError as exc:
            await asyncio.to_thread(self._script_error, binding, endpoint_id, exc)
            return []
        return await asyncio.to_thread(self._apply_script_outcome, binding, endpoint_id, outcome)

    def _apply_script_outcome(self, binding: PolicyBinding, endpoint_id: str, outcome) -> List[TransitionEvent]:
        with self._lock:
            if self.store.get(binding.policy_id) != binding:
                logger.info("Discarding script result for reloaded binding %s", binding.policy_id)
                return []

            now = self.clock()
            result = evaluate_script_outcome(binding.condition, outcome)
            events = self._machine(binding, endpoint_id).observe(result.satisfied, now, result.sampled_value)
            self._record(binding, events)
            return events

    def _script_error(self, binding: PolicyBinding, endpoint_id: str, exc: ScriptExecutionError) -> None:
        notify = binding.condition.script_error_notification.enabled
        event = ScriptErrorEvent(
            policy_id=binding.policy_id,
            endpoint_id=endpoint_id,
            script=exc.script,
            reason=exc.reason.value,
            detail=exc.detail,
            exit_code=exc.exit_code,
            timestamp=self.clock(),
            notified=notify,
        )
        with self._lock:
            self.script_errors.append(event)
            if self.audit is not None:
                self.audit.write_event(event)
            if notify and self.dispatcher is not None:
                self.recent_reports.append(self.dispatcher.dispatch_script_error(binding, event))

    # ------------------------------------------------------------------
    # Operator actions / introspection
    # ------------------------------------------------------------------

    def reset(self, policy_id: str, endpoint_id: str, now: Optional[datetime] = None) -> List[TransitionEvent]:
        """Manual reset; raises KeyError for an unknown policy."""
        binding = self.store.get(policy_id)
        if binding is None:
            raise KeyError(policy_id)
        with self._lock:
            self._sync_bindings()
            machine = self._machines.get((policy_id, endpoint_id))
            if machine is None:
                return []
            events = machine.reset(now or self.clock())
            self._record(binding, events)
            return events

    def exclusive(self):
        """Lock held by every state-mutating call; re-entrant."""
        return self._lock

    def state_of(self, policy_id: str, endpoint_id: str) -> BindingState:
        machine = self._machines.get((policy_id, endpoint_id))
        return machine.state if machine else BindingState.INACTIVE

    def snapshot(self) -> List[dict]:
        rows = []
        with self._lock:
            for key, machine in sorted(self._machines.items()):
                row = machine.snapshot()
                tracker = self._trackers.get(key)
                if tracker is not None:
                    row["window_progress"] = tracker.progress
                    row["window_required"] = tracker.required
                rows.append(row)
        return rows
