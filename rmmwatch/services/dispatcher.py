import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from opentelemetry import trace
from prometheus_client import Counter

from rmmwatch.config import settings
from rmmwatch.runtime.registries import (
    AutomationRegistry,
    ChannelRegistry,
    TechnicianNotifier,
    TicketingSystem,
)
from rmmwatch.schemas.binding import PolicyBinding
from rmmwatch.schemas.dispatch import (
    DeliveryResult,
    DeliveryStatus,
    DispatchReport,
    Notice,
    NoticeKind,
    TechnicianMode,
    TicketingMode,
)
from rmmwatch.schemas.events import ScriptErrorEvent, TransitionEvent

logger = logging.getLogger("rmmwatch.dispatcher")
tracer = trace.get_tracer(__name__)

DISPATCH_DELIVERIES_TOTAL = Counter(
    "rmmwatch_dispatch_deliveries_total",
    "Dispatch deliveries by target kind and final status",
    ["target_kind", "status"],
)

DISPATCH_RETRIES_TOTAL = Counter(
    "rmmwatch_dispatch_retries_total",
    "Retries scheduled for failed dispatch deliveries",
    ["target_kind"],
)


class ActionDispatcher:
    """
    Delivers notices for binding transitions.

      - channels in declared order (already deduplicated on the binding)
      - assigned technicians when the technician mode is Sent
      - ticket create (and immediate close for Create and close)
      - automations in declared order, under their run_as identity

    Every target is its own failure domain: a failure is retried up to
    ``max_retries`` times with exponential backoff, then recorded in the
    DispatchReport. It never stops later targets and never undoes the
    transition that caused the dispatch.
    """

    def __init__(
        self,
        channels: ChannelRegistry,
        technicians: Optional[TechnicianNotifier] = None,
        ticketing: Optional[TicketingSystem] = None,
        automations: Optional[AutomationRegistry] = None,
        max_retries: Optional[int] = None,
        base_backoff_seconds: float = 0.5,
        max_backoff_seconds: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.channels = channels
        self.technicians = technicians
        self.ticketing = ticketing
        self.automations = automations
        self.max_retries = settings.DISPATCH_MAX_RETRIES if max_retries is None else max_retries
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self._sleep = sleep
        self._open_tickets: Dict[Tuple[str, str], str] = {}

    # ----------------------------------------------------------------------
    # Exponential Backoff
    # ----------------------------------------------------------------------
    def _compute_backoff(self, attempt: int) -> float:
        base = min(self.max_backoff_seconds, self.base_backoff_seconds * (2 ** attempt))
        jitter = random.uniform(0, base * 0.2)
        return base + jitter

    def _deliver(self, target_kind: str, target: str, fn: Callable[[], Any]) -> Tuple[DeliveryResult, Any]:
        last_error: Optional[Exception] = None
        attempts = 0

        with tracer.start_as_current_span(f"rmmwatch.dispatch.{target_kind}") as span:
            span.set_attribute("rmmwatch.dispatch.target", target)
            for attempt in range(self.max_retries + 1):
                attempts = attempt + 1
                span.add_event("attempt_start", {"attempt": attempts})
                try:
                    result = fn()
                except Exception as exc:  # noqa: BLE001
                    last_error = exc
                    span.record_exception(exc)
                    logger.warning(
                        "Dispatch failed: %s=%s attempt=%d/%d error=%s",
                        target_kind,
                        target,
                        attempts,
                        self.max_retries + 1,
                        exc,
                    )
                    if attempt >= self.max_retries:
                        break
                    DISPATCH_RETRIES_TOTAL.labels(target_kind=target_kind).inc()
                    self._sleep(self._compute_backoff(attempt))
                    continue

                span.set_attribute("rmmwatch.dispatch.status", "success")
                span.set_attribute("rmmwatch.dispatch.attempts", attempts)
                DISPATCH_DELIVERIES_TOTAL.labels(target_kind=target_kind, status="success").inc()
                return (
                    DeliveryResult(
                        target_kind=target_kind,
                        target=target,
                        status=DeliveryStatus.SUCCESS,
                        attempts=attempts,
                    ),
                    result,
                )

            span.set_attribute("rmmwatch.dispatch.status", "failed")
            span.set_attribute("rmmwatch.dispatch.attempts", attempts)

        DISPATCH_DELIVERIES_TOTAL.labels(target_kind=target_kind, status="failed").inc()
        return (
            DeliveryResult(
                target_kind=target_kind,
                target=target,
                status=DeliveryStatus.FAILED,
                attempts=attempts,
                error=str(last_error) if last_error else "unknown error",
            ),
            None,
        )

    @staticmethod
    def _missing(target_kind: str, target: str, what: str) -> DeliveryResult:
        DISPATCH_DELIVERIES_TOTAL.labels(target_kind=target_kind, status="failed").inc()
        return DeliveryResult(
            target_kind=target_kind,
            target=target,
            status=DeliveryStatus.FAILED,
            error=f"no {what} configured",
        )

    # ----------------------------------------------------------------------
    # Targets
    # ----------------------------------------------------------------------
    def _notify_channels(self, binding: PolicyBinding, notice: Notice) -> List[DeliveryResult]:
        results = []
        for name in binding.dispatch.channels:
            result, _ = self._deliver("channel", name, lambda n=name: self.channels.get(n).send(notice))
            results.append(result)
        return results

    def _notify_technicians(self, binding: PolicyBinding, notice: Notice) -> List[DeliveryResult]:
        if binding.dispatch.technician_mode is not TechnicianMode.SENT:
            return []
        if self.technicians is None:
            return [self._missing("technicians", "technicians", "technician notifier")]
        result, _ = self._deliver("technicians", "technicians", lambda: self.technicians.notify(notice))
        return [result]

    def _open_ticket(self, binding: PolicyBinding, notice: Notice, report: DispatchReport) -> None:
        ticketing = binding.dispatch.ticketing
        template = ticketing.effective_template
        if template is None:
            return
        if self.ticketing is None:
            report.deliveries.append(self._missing("ticket", template, "ticketing system"))
            return

        result, ticket_id = self._deliver("ticket", template, lambda: self.ticketing.create(template, notice))
        report.deliveries.append(result)
        if ticket_id is None:
            return
        report.ticket_id = ticket_id

        if ticketing.mode is TicketingMode.CREATE_AND_CLOSE:
            closed, _ = self._deliver("ticket", ticket_id, lambda: self.ticketing.close(ticket_id, notice))
            report.deliveries.append(closed)
        else:
            self._open_tickets[(binding.policy_id, notice.endpoint_id)] = ticket_id

    def _run_automations(self, binding: PolicyBinding, endpoint_id: str) -> List[DeliveryResult]:
        automations = binding.dispatch.automations
        if not automations:
            return []
        if self.automations is None:
            return [self._missing("automation", a.name, "automation registry") for a in automations]

        results = []
        for a in automations:
            result, _ = self._deliver(
                "automation",
                a.name,
                lambda a=a: self.automations.run(
                    a.name, endpoint_id, a.run_as, list(a.parameters), a.preset_parameter
                ),
            )
            results.append(result)
        return results

    # ----------------------------------------------------------------------
    # Public API
    # ----------------------------------------------------------------------
    def open_ticket_for(self, policy_id: str, endpoint_id: str) -> Optional[str]:
        return self._open_tickets.get((policy_id, endpoint_id))

    @staticmethod
    def _notice(
        binding: PolicyBinding,
        endpoint_id: str,
        kind: NoticeKind,
        timestamp,
        message: str,
        sampled_value: Any = None,
    ) -> Notice:
        return Notice(
            policy_id=binding.policy_id,
            endpoint_id=endpoint_id,
            condition_kind=binding.kind,
            kind=kind,
            severity=binding.severity.value,
            priority=binding.priority.value,
            timestamp=timestamp,
            message=message,
            sampled_value=sampled_value,
        )

    def dispatch_activation(self, binding: PolicyBinding, event: TransitionEvent) -> DispatchReport:
        notice = self._notice(
            binding,
            event.endpoint_id,
            NoticeKind.TRIGGERED,
            event.timestamp,
            f"{binding.kind.label} condition met for {binding.policy_id}",
            event.sampled_value,
        )
        report = DispatchReport(
            policy_id=binding.policy_id,
            endpoint_id=event.endpoint_id,
            notice_kind=NoticeKind.TRIGGERED,
        )
        report.deliveries.extend(self._notify_channels(binding, notice))
        report.deliveries.extend(self._notify_technicians(binding, notice))
        self._open_ticket(binding, notice, report)
        report.deliveries.extend(self._run_automations(binding, event.endpoint_id))
        self._log_report(report)
        return report

    def dispatch_reset(self, binding: PolicyBinding, event: TransitionEvent) -> Optional[DispatchReport]:
        """Reset notice and ticket close; None when Notify_on_reset is off."""
        if not binding.auto_reset.effective_notify_on_reset:
            return None
        notice = self._notice(
            binding,
            event.endpoint_id,
            NoticeKind.RESET,
            event.timestamp,
            f"{binding.kind.label} condition reset for {binding.policy_id} ({event.cause.value})",
            event.sampled_value,
        )
        report = DispatchReport(
            policy_id=binding.policy_id,
            endpoint_id=event.endpoint_id,
            notice_kind=NoticeKind.RESET,
        )
        report.deliveries.extend(self._notify_channels(binding, notice))

        ticket_id = self._open_tickets.pop((binding.policy_id, event.endpoint_id), None)
        if ticket_id is not None:
            report.ticket_id = ticket_id
            if self.ticketing is None:
                report.deliveries.append(self._missing("ticket", ticket_id, "ticketing system"))
            else:
                result, _ = self._deliver("ticket", ticket_id, lambda: self.ticketing.close(ticket_id, notice))
                report.deliveries.append(result)
        self._log_report(report)
        return report

    def dispatch_script_error(self, binding: PolicyBinding, event: ScriptErrorEvent) -> DispatchReport:
        notice = self._notice(
            binding,
            event.endpoint_id,
            NoticeKind.SCRIPT_ERROR,
            event.timestamp,
            f"script {event.script!r} failed ({event.reason}) for {binding.policy_id}"
            + (f": {event.detail}" if event.detail else ""),
            event.exit_code,
        )
        report = DispatchReport(
            policy_id=binding.policy_id,
            endpoint_id=event.endpoint_id,
            notice_kind=NoticeKind.SCRIPT_ERROR,
        )
        report.deliveries.extend(self._notify_channels(binding, notice))
        report.deliveries.extend(self._notify_technicians(binding, notice))
        self._log_report(report)
        return report

    @staticmethod
    def _log_report(report: DispatchReport) -> None:
        failures = report.failures
        if failures:
            logger.warning(
                "Dispatch %s for %s@%s: %d/%d deliveries failed",
                report.notice_kind.value,
                report.policy_id,
                report.endpoint_id,
                len(failures),
                len(report.deliveries),
            )
        else:
            logger.info(
                "Dispatch %s for %s@%s: %d deliveries",
                report.notice_kind.value,
                report.policy_id,
                report.endpoint_id,
                len(report.deliveries),
            )
