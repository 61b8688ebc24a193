"""Concurrent LLM dispatch with a timeout and one inline retry."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from repomaint.analyzers.llm_client import LLMResponse

logger = logging.getLogger(__name__)

MAX_CONCURRENT = 5


class DispatchError(Exception):
    """Raised when both the dispatched call and its retry fail."""


class DispatchState(str, Enum):
    """Stages of a single dispatch_with_fallback call."""

    IDLE = "idle"
    DISPATCHED = "dispatched"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    RETRYING_INLINE = "retrying_inline"
    DONE = "done"


@dataclass(frozen=True)
class DispatchTrace:
    """States visited and attempts made by one dispatch_with_fallback call."""

    path: tuple[DispatchState, ...]
    attempts: int


def default_concurrency() -> int:
    return max(1, min(os.cpu_count() or 1, MAX_CONCURRENT))


class CompletionClient(Protocol):
    async def complete(self, prompt: str) -> LLMResponse: ...


class LLMDispatcher:
    """Runs LLM calls as bounded background tasks.

    A call that times out or fails is abandoned and retried exactly once,
    awaited directly by the caller. There is no backoff and no second
    concurrent attempt.
    """

    def __init__(
        self,
        client: CompletionClient,
        max_concurrent: int | None = None,
        timeout: float = 30.0,
        grace: float = 2.0,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            client: Anything with an async ``complete(prompt)``.
            max_concurrent: Calls allowed in flight at once (capped at 5).
                Defaults to the CPU count under that cap.
            timeout: Seconds allowed for each dispatched attempt.
            grace: Seconds shutdown waits for outstanding calls.
        """
        if max_concurrent is None:
            max_concurrent = default_concurrency()
        self.client = client
        self.max_concurrent = max(1, min(max_concurrent, MAX_CONCURRENT))
        self.timeout = timeout
        self.grace = grace
        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._tasks: set[asyncio.Task[LLMResponse]] = set()
        self._closed = False

        # Trace of the most recently finished dispatch_with_fallback call
        self.last_trace = DispatchTrace(path=(), attempts=0)

    @property
    def available(self) -> bool:
        return not self._closed

    @property
    def last_path(self) -> list[DispatchState]:
        return list(self.last_trace.path)

    @property
    def attempts(self) -> int:
        return self.last_trace.attempts

    async def _bounded_complete(self, prompt: str) -> LLMResponse:
        async with self._semaphore:
            return await self.client.complete(prompt)

    def _spawn(self, prompt: str) -> asyncio.Task[LLMResponse]:
        task = asyncio.create_task(self._bounded_complete(prompt))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def dispatch_with_fallback(self, prompt: str) -> LLMResponse:
        """Send a prompt, retrying inline once on timeout or error.

        Returns:
            The model response from whichever attempt succeeded.

        Raises:
            DispatchError: If the dispatcher is shut down, or the retry fails too.
        """
        if self._closed:
            raise DispatchError("Dispatcher has been shut down")

        # Each call keeps its own path; it is published only when the call ends.
        path = [DispatchState.IDLE, DispatchState.DISPATCHED]
        attempts = 1
        try:
            try:
                response = await asyncio.wait_for(self._spawn(prompt), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning(f"LLM call timed out after {self.timeout}s, retrying inline")
                path.append(DispatchState.TIMED_OUT)
            except Exception as e:
                logger.warning(f"LLM call failed ({e}), retrying inline")
                path.append(DispatchState.FAILED)
            else:
                path += [DispatchState.SUCCEEDED, DispatchState.DONE]
                return response

            path.append(DispatchState.RETRYING_INLINE)
            attempts += 1
            try:
                response = await self.client.complete(prompt)
            except Exception as e:
                raise DispatchError(f"LLM call failed after retry: {e}") from e
            finally:
                path.append(DispatchState.DONE)
            return response
        finally:
            self.last_trace = DispatchTrace(path=tuple(path), attempts=attempts)

    async def dispatch_multiple(self, prompts: list[str]) -> list[LLMResponse | None]:
        """Send independent prompts in waves of ``max_concurrent``.

        A prompt whose call fails or times out yields None in its slot; the
        other results are unaffected.
        """
        if self._closed:
            raise DispatchError("Dispatcher has been shut down")

        results: list[LLMResponse | None] = []
        for start in range(0, len(prompts), self.max_concurrent):
            wave = prompts[start : start + self.max_concurrent]
            tasks = [self._spawn(prompt) for prompt in wave]
            outcomes = await asyncio.gather(
                *(asyncio.wait_for(task, timeout=self.timeout) for task in tasks),
                return_exceptions=True,
            )
            for offset, outcome in enumerate(outcomes):
                if isinstance(outcome, BaseException):
                    logger.warning(f"Prompt {start + offset} failed: {outcome!r}")
                    results.append(None)
                else:
                    results.append(outcome)
        return results

    async def shutdown(self) -> None:
        """Stop accepting work; wait up to ``grace`` then cancel leftovers."""
        self._closed = True
        pending = [task for task in self._tasks if not task.done()]
        if not pending:
            return

        _, still_running = await asyncio.wait(pending, timeout=self.grace)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.info(f"Cancelled {len(still_running)} outstanding LLM calls")
            await asyncio.gather(*still_running, return_exceptions=True)

    async def __aenter__(self) -> LLMDispatcher:
        return self

    async def __aexit__(self, *args) -> None:
        await self.shutdown()
