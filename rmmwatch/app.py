from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Response, status
from opentelemetry import trace
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from prometheus_fastapi_instrumentator import Instrumentator

from rmmwatch.config import settings
from rmmwatch.dsl.loader import default_catalog, load_binding
from rmmwatch.dsl.serializer import dump_binding
from rmmwatch.errors import ConfigurationError
from rmmwatch.runtime.adapter import FileAgentPolicyRegistry, FileCustomFieldStore, FileMetricsProvider
from rmmwatch.runtime.audit_logger import AuditLogger
from rmmwatch.runtime.engine import EvaluationEngine
from rmmwatch.runtime.policy_store import PolicyStore
from rmmwatch.runtime.registries import InMemoryAutomationRegistry, InMemoryChannelRegistry
from rmmwatch.runtime.script_runner import ScriptRunner, SubprocessScriptExecutor
from rmmwatch.schemas.api import (
    BindingSummary,
    EvaluationResponse,
    PolicyStatus,
    ReloadResponse,
    ResetResponse,
    ValidateRequest,
    ValidateResponse,
)
from rmmwatch.services.channels import (
    LoggingTechnicianNotifier,
    LoggingTicketingSystem,
    channels_from_config,
)
from rmmwatch.services.dispatcher import ActionDispatcher
from rmmwatch.utils.otel import setup_otel

logger = logging.getLogger("rmmwatch.app")
tracer = trace.get_tracer(__name__)


def build_default_engine() -> EvaluationEngine:
    """Engine wired to the file-backed runtime feeds and logging targets."""
    audit = AuditLogger(settings.AUDIT_LOG_PATH)
    channels = InMemoryChannelRegistry(channels_from_config(settings.channel_targets()))
    dispatcher = ActionDispatcher(
        channels,
        technicians=LoggingTechnicianNotifier(),
        ticketing=LoggingTicketingSystem(),
        automations=InMemoryAutomationRegistry(),
    )
    return EvaluationEngine(
        PolicyStore(settings.POLICY_DIR),
        FileAgentPolicyRegistry(),
        FileMetricsProvider(),
        custom_fields=FileCustomFieldStore(),
        dispatcher=dispatcher,
        script_runner=ScriptRunner(SubprocessScriptExecutor()),
        audit=audit,
    )


def _build_router(engine: EvaluationEngine) -> APIRouter:
    router = APIRouter()
    store = engine.store

    @router.get("/policy/status", response_model=PolicyStatus)
    def policy_status() -> PolicyStatus:
        bindings = [
            BindingSummary(
                policy_id=b.policy_id,
                condition_kind=b.kind.value,
                agent_policy=b.target_scope.agent_policy,
                severity=b.severity.value,
                priority=b.priority.value,
                source=store.source_of(b.policy_id),
            )
            for b in store.get_bindings()
        ]
        return PolicyStatus(
            policy_path=store.policy_path,
            generation=store.generation,
            running=engine.running,
            tick_seconds=engine.tick_seconds,
            tick_count=engine.tick_count,
            bindings=bindings,
            states=engine.snapshot(),
        )

    @router.post("/policy/validate", response_model=ValidateResponse)
    def validate_policy(req: ValidateRequest) -> ValidateResponse:
        with tracer.start_as_current_span("rmmwatch.policy.validate") as span:
            try:
                binding = load_binding(req.document, source="<request>", catalog=default_catalog())
            except ConfigurationError as exc:
                span.set_attribute("rmmwatch.valid", False)
                return ValidateResponse(valid=False, errors=[str(exc)])
            span.set_attribute("rmmwatch.valid", True)
            return ValidateResponse(
                valid=True,
                policy_id=binding.policy_id,
                condition_kind=binding.kind.value,
                normalized=dump_binding(binding),
            )

    @router.post("/policy/reload", response_model=ReloadResponse)
    def reload_policies() -> ReloadResponse:
        result = store.reload()
        return ReloadResponse(
            ok=result.ok,
            policy_count=result.policy_count,
            source_path=result.source_path,
            error=result.error,
            errors=list(result.errors),
        )

    @router.get("/policy/audit")
    def policy_audit(limit: int = Query(50, ge=1, le=1000)) -> List[Dict[str, Any]]:
        if engine.audit is None:
            return []
        return engine.audit.read_last_events(limit=limit)

    @router.post("/endpoints/{endpoint_id}/evaluate", response_model=EvaluationResponse)
    def evaluate_endpoint(endpoint_id: str) -> EvaluationResponse:
        # Sync route: runs in the threadpool and waits for any tick in progress.
        with engine.exclusive():
            before = {id(r) for r in engine.recent_reports}
            events = engine.evaluate_endpoint(endpoint_id)
            reports = [r for r in engine.recent_reports if id(r) not in before]
        return EvaluationResponse(endpoint_id=endpoint_id, transitions=events, dispatches=reports)

    @router.post(
        "/bindings/{policy_id}/endpoints/{endpoint_id}/reset",
        response_model=ResetResponse,
    )
    def reset_binding(policy_id: str, endpoint_id: str) -> ResetResponse:
        with engine.exclusive():
            before = {id(r) for r in engine.recent_reports}
            try:
                events = engine.reset(policy_id, endpoint_id)
            except KeyError:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"Unknown policy: {policy_id}",
                ) from None
            reports = [r for r in engine.recent_reports if id(r) not in before]
        return ResetResponse(
            policy_id=policy_id,
            endpoint_id=endpoint_id,
            state=engine.state_of(policy_id, endpoint_id).value,
            transitions=events,
            dispatches=reports,
        )

    return router


def create_app(engine: Optional[EvaluationEngine] = None, start_loop: bool = True) -> FastAPI:
    engine = engine or build_default_engine()

    app = FastAPI(
        title="rmmwatch",
        description="Evaluates RMM condition documents against managed endpoints",
        version="0.1.0",
    )
    app.state.engine = engine

    # ------------------------------------------------------------------
    # OpenTelemetry
    # ------------------------------------------------------------------
    setup_otel(app)

    # ------------------------------------------------------------------
    # Prometheus Metrics
    # ------------------------------------------------------------------
    Instrumentator().instrument(app)

    @app.get("/metrics", include_in_schema=False)
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(_build_router(engine), prefix="/v1")

    # ------------------------------------------------------------------
    # Lifecycle Events
    # ------------------------------------------------------------------
    @app.on_event("startup")
    async def startup_event():
        result = engine.store.load_initial()
        if not result.ok:
            logger.warning("Initial policy load failed: %s", result.error)
        if start_loop:
            await engine.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        await engine.stop()

    @app.get("/healthz")
    def health_check():
        return {"status": "ok", "service": "rmmwatch"}

    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "rmmwatch.app:create_app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8080)),
        reload=False,
        factory=True,
    )
