"""Start an n8n workflow execution and poll it until it finishes or times out."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

# Execution statuses n8n uses for a failed run
ERROR_STATUSES = frozenset({"error", "crashed", "failed"})


class ExecutionState(str, Enum):
    STARTED = "started"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    def __str__(self) -> str:
        return self.value


TERMINAL_STATES = frozenset(
    {ExecutionState.SUCCEEDED, ExecutionState.FAILED, ExecutionState.TIMED_OUT}
)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def extract_error_message(execution: Dict[str, Any]) -> Optional[str]:
    """Read ``data.resultData.error.message`` from an execution record."""
    data = execution.get("data") or {}
    error = (data.get("resultData") or {}).get("error") or {}
    return error.get("message")


def is_finished(execution: Dict[str, Any]) -> bool:
    return "finished" in execution and execution["finished"] is not False


class ExecutionPoller:
    """Drive one execution through STARTED -> POLLING -> a terminal state.

    Terminal states are SUCCEEDED, FAILED and TIMED_OUT; once reached the
    poller cannot be moved again. ``clock`` and ``sleep`` can be replaced in
    tests to run the schedule without waiting.
    """

    def __init__(
        self,
        api,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.api = api
        self._clock = clock
        self._sleep = sleep
        self.state: Optional[ExecutionState] = None
        self.execution_id: Optional[str] = None
        self.workflow_id: Optional[str] = None

    def _transition(self, new_state: ExecutionState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(
                f"Execution {self.execution_id} already finished as {self.state}, "
                f"cannot move to {new_state}"
            )
        logger.debug(f"Execution {self.execution_id}: {self.state} -> {new_state}")
        self.state = new_state

    @staticmethod
    def get_poll_interval(elapsed: float) -> float:
        """Seconds to wait before the next poll, given the seconds already spent polling."""
        if elapsed <= 30:
            return 2
        if elapsed <= 90:
            return 5
        return 10

    async def start(self, workflow_id: str, input_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Ask n8n to run a workflow and remember the execution id."""
        execution = await self.api.execute_workflow(workflow_id, input_data)
        execution = execution or {}
        execution_id = execution.get("id", execution.get("executionId"))

        self.workflow_id = workflow_id
        self.execution_id = str(execution_id) if execution_id is not None else None
        self._transition(ExecutionState.STARTED)
        logger.info(f"Started execution {self.execution_id} of workflow {workflow_id}")
        return execution

    def _completed_record(self, execution: Dict[str, Any], elapsed: float) -> Dict[str, Any]:
        status = execution.get("status") or ("success" if execution.get("finished") else "error")
        failed = status in ERROR_STATUSES

        started_at = parse_timestamp(execution.get("startedAt"))
        stopped_at = parse_timestamp(execution.get("stoppedAt"))
        if started_at and stopped_at:
            duration = (stopped_at - started_at).total_seconds()
        else:
            duration = elapsed

        record = {
            "executionId": self.execution_id,
            "workflowId": execution.get("workflowId", self.workflow_id),
            "status": status,
            "startTime": execution.get("startedAt"),
            "endTime": execution.get("stoppedAt") or _utc_now_iso(),
            "duration": round(duration, 3),
            "data": execution.get("data"),
        }
        if failed:
            record["error"] = extract_error_message(execution) or f"Execution finished with status '{status}'"

        self._transition(ExecutionState.FAILED if failed else ExecutionState.SUCCEEDED)
        return record

    async def poll(self, execution_id: Optional[str] = None, timeout: float = 300) -> Dict[str, Any]:
        """Poll an execution until it finishes or ``timeout`` seconds pass.

        Returns the final execution record with ``duration`` in seconds. A
        timeout is not an error: the record has ``status`` ``timeout`` and a
        duration equal to ``timeout``. Errors from the API propagate.
        """
        if execution_id is not None:
            self.execution_id = str(execution_id)
        if self.execution_id is None:
            raise ValueError("No execution to poll: start one first or pass an execution id")

        self._transition(ExecutionState.POLLING)
        start_time_iso = _utc_now_iso()
        start = self._clock()
        poll_count = 0

        while self._clock() - start < timeout:
            execution = await self.api.get_execution(self.execution_id)
            poll_count += 1
            execution = execution or {}
            logger.debug(
                f"[Poll {poll_count}] Execution {self.execution_id}: "
                f"{'finished' if is_finished(execution) else 'running'}"
            )

            elapsed = self._clock() - start
            if is_finished(execution):
                return self._completed_record(execution, elapsed)

            remaining = timeout - elapsed
            if remaining <= 0:
                break
            await self._sleep(min(self.get_poll_interval(elapsed), remaining))

        self._transition(ExecutionState.TIMED_OUT)
        logger.info(f"Execution {self.execution_id} timed out after {timeout} seconds")
        return {
            "executionId": self.execution_id,
            "workflowId": self.workflow_id,
            "status": "timeout",
            "startTime": start_time_iso,
            "endTime": _utc_now_iso(),
            "duration": timeout,
            "error": f"Execution timed out after {timeout} seconds",
        }

    async def run(
        self,
        workflow_id: str,
        input_data: Optional[Dict[str, Any]] = None,
        timeout: float = 300,
    ) -> Dict[str, Any]:
        """Start a workflow and wait for it to finish."""
        await self.start(workflow_id, input_data)
        return await self.poll(timeout=timeout)
