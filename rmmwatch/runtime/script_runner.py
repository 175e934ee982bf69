import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from opentelemetry import trace
from prometheus_client import Counter, Histogram

from rmmwatch.config import settings
from rmmwatch.errors import ScriptExecutionError, ScriptFailureReason
from rmmwatch.schemas.conditions import RunAs, ScriptResultCondition
from rmmwatch.schemas.samples import ScriptOutcome

from .registries import ScriptExecutor
from .thresholds import match_result_code

logger = logging.getLogger("rmmwatch.script_runner")
tracer = trace.get_tracer(__name__)

SCRIPT_RUNS_TOTAL = Counter(
    "rmmwatch_script_runs_total",
    "Script Result Condition runs by outcome",
    ["outcome"],  # ok | launch_failed | timeout | error_result_code
)

SCRIPT_RUN_DURATION_SECONDS = Histogram(
    "rmmwatch_script_run_duration_seconds",
    "Wall-clock duration of Script Result Condition runs",
    buckets=(0.1, 0.5, 1, 5, 15, 30, 60, 120, 300, 600),
)


class ScriptRunner:
    """
    Runs Script Result Condition scripts through a ScriptExecutor.

    One run is in flight per (policy, endpoint) at most; a run that
    outlives the condition's Timeout is cancelled and reported as a timeout.
    There is no retry: the next attempt is the next Run_Every interval.

    ``timeout_factor`` scales every configured timeout (tests use it to turn
    minutes into milliseconds).
    """

    def __init__(self, executor: ScriptExecutor, timeout_factor: float = 1.0) -> None:
        self.executor = executor
        self.timeout_factor = timeout_factor
        self._in_flight: Dict[Tuple[str, str], float] = {}

    def busy(self, policy_id: str, endpoint_id: str) -> bool:
        return (policy_id, endpoint_id) in self._in_flight

    def in_flight(self) -> List[Tuple[str, str]]:
        return list(self._in_flight)

    async def run(
        self,
        policy_id: str,
        endpoint_id: str,
        condition: ScriptResultCondition,
    ) -> ScriptOutcome:
        """
        Execute the script once.

        Raises ScriptExecutionError on launch failure, timeout, or when the
        exit code meets the Script_error_notification criterion.
        """
        key = (policy_id, endpoint_id)
        if key in self._in_flight:
            raise RuntimeError(f"script for {policy_id}@{endpoint_id} is already running")

        timeout = condition.timeout.total_seconds * self.timeout_factor
        params = condition.parameters
        start = time.time()
        self._in_flight[key] = start

        with tracer.start_as_current_span("rmmwatch.script.run") as span:
            span.set_attribute("rmmwatch.policy_id", policy_id)
            span.set_attribute("rmmwatch.endpoint_id", endpoint_id)
            span.set_attribute("rmmwatch.script", condition.script)
            span.set_attribute("rmmwatch.script.timeout_seconds", timeout)
            try:
                try:
                    outcome = await asyncio.wait_for(
                        self.executor.execute(
                            condition.script,
                            endpoint_id,
                            params.run_as,
                            list(params.parameters),
                            params.preset_parameter,
                        ),
                        timeout=timeout,
                    )
                except asyncio.TimeoutError:
                    raise ScriptExecutionError(
                        condition.script,
                        ScriptFailureReason.TIMEOUT,
                        f"no result after {timeout:.1f}s",
                    ) from None
                except OSError as exc:
                    raise ScriptExecutionError(
                        condition.script, ScriptFailureReason.LAUNCH_FAILED, str(exc)
                    ) from exc

                notification = condition.script_error_notification
                if (
                    notification.enabled
                    and notification.criterion is not None
                    and match_result_code(outcome.exit_code, notification.criterion)
                ):
                    raise ScriptExecutionError(
                        condition.script,
                        ScriptFailureReason.ERROR_RESULT_CODE,
                        f"exit code {outcome.exit_code}",
                        exit_code=outcome.exit_code,
                    )
            except ScriptExecutionError as exc:
                SCRIPT_RUNS_TOTAL.labels(outcome=exc.reason.value).inc()
                span.set_attribute("rmmwatch.script.outcome", exc.reason.value)
                span.record_exception(exc)
                logger.warning("Script failed for %s@%s: %s", policy_id, endpoint_id, exc)
                raise
            finally:
                SCRIPT_RUN_DURATION_SECONDS.observe(time.time() - start)
                self._in_flight.pop(key, None)

            SCRIPT_RUNS_TOTAL.labels(outcome="ok").inc()
            span.set_attribute("rmmwatch.script.outcome", "ok")
            span.set_attribute("rmmwatch.script.exit_code", outcome.exit_code)
            logger.debug(
                "Script %s for %s@%s exited %d", condition.script, policy_id, endpoint_id, outcome.exit_code
            )
            return outcome


class SubprocessScriptExecutor:
    """
    Runs scripts from a local directory as subprocesses.

    The identity is passed through RMMWATCH_RUN_AS; the preset parameter,
    when set, is the first positional argument.
    """

    def __init__(self, script_dir: Optional[str] = None) -> None:
        self.script_dir = Path(script_dir or settings.SCRIPT_DIR)

    def _resolve(self, script: str) -> Path:
        path = (self.script_dir / script).resolve()
        if self.script_dir.resolve() not in path.parents:
            raise ScriptExecutionError(
                script, ScriptFailureReason.LAUNCH_FAILED, "script path escapes script directory"
            )
        if not path.is_file():
            raise ScriptExecutionError(script, ScriptFailureReason.LAUNCH_FAILED, "script not found")
        return path

    async def execute(
        self,
        script: str,
        endpoint_id: str,
        run_as: RunAs,
        parameters: List[str],
        preset_parameter: str = "",
    ) -> ScriptOutcome:
        path = self._resolve(script)
        args = ([preset_parameter] if preset_parameter else []) + list(parameters)
        env = dict(os.environ, RMMWATCH_RUN_AS=run_as.value, RMMWATCH_ENDPOINT_ID=endpoint_id)

        proc = await asyncio.create_subprocess_exec(
            str(path),
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=env,
        )
        try:
            stdout, _ = await proc.communicate()
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise
        return ScriptOutcome(exit_code=proc.returncode, output=stdout.decode(errors="replace"))
