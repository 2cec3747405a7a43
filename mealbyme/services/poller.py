"""
Run status polling.

A run moves Submitted -> Running -> one terminal state. The poller never
cancels a run remotely: timing out only means we stop asking.

Two shapes share the same transition rule:
- poll_once(): one step, driven by the browser calling the status endpoint
  again (survives page reloads and request time limits)
- wait(): a bounded loop inside a single request
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from mealbyme.errors import GenerationTimeoutError, UpstreamServiceError
from mealbyme.services.assistant import AssistantService, JobHandle


class RunState(str, enum.Enum):
    SUBMITTED = "submitted"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self not in (RunState.SUBMITTED, RunState.RUNNING)

    @property
    def is_failure(self) -> bool:
        return self in (RunState.FAILED, RunState.CANCELLED, RunState.EXPIRED)


_TERMINAL_STATUSES = {
    "completed": RunState.COMPLETED,
    "failed": RunState.FAILED,
    "cancelled": RunState.CANCELLED,
    "expired": RunState.EXPIRED,
}


def classify_run_status(status: str) -> RunState:
    """Map a generation-service run status onto our state machine."""
    # queued, in_progress, requires_action, cancelling, ... are all "still going"
    return _TERMINAL_STATUSES.get(status, RunState.RUNNING)


@dataclass
class PollResult:
    state: RunState
    attempt: int
    raw_status: Optional[str] = None  # None when the service was not asked

    def raise_for_state(self) -> None:
        """Turn terminal failures into classified errors."""
        if self.state.is_failure:
            raise UpstreamServiceError(
                f"Generation failed with status: {self.raw_status}",
                detail=f"run ended as {self.raw_status} on attempt {self.attempt}",
            )
        if self.state == RunState.TIMED_OUT:
            raise GenerationTimeoutError(
                "Generation is taking longer than expected. Please try again.",
                detail=f"gave up after {self.attempt - 1} attempts",
            )


class RunPoller:
    """Polls one run until it reaches a terminal state or the budget runs out."""

    def __init__(
        self,
        assistant: AssistantService,
        max_attempts: int = 30,
        interval_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.assistant = assistant
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds
        self._sleep = sleep

    async def poll_once(self, handle: JobHandle, attempt: int = 1) -> PollResult:
        """
        Advance the state machine by one step.

        attempt is 1-based. Past max_attempts the result is TIMED_OUT
        regardless of what the service would say, and the service is not asked.
        """
        if attempt > self.max_attempts:
            return PollResult(state=RunState.TIMED_OUT, attempt=attempt)

        status = await self.assistant.get_run_status(handle)
        return PollResult(state=classify_run_status(status), attempt=attempt, raw_status=status)

    async def wait(self, handle: JobHandle) -> PollResult:
        """Poll until terminal, sleeping interval_seconds between attempts."""
        attempt = 1
        while True:
            result = await self.poll_once(handle, attempt)
            if result.state.is_terminal:
                if result.state != RunState.COMPLETED:
                    print(f"⚠️ Run {handle.run_id} ended as {result.state.value} (attempt {attempt})")
                return result
            await self._sleep(self.interval_seconds)
            attempt += 1
