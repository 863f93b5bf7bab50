"""
Placeholder-wrapped asynchronous jobs.

A job posts a transient placeholder ("thinking...", "generating image..."),
runs its work, removes the placeholder on every exit path and only then
delivers the result or an error message. Work that must outlive the
current Slack handler is spawned as a detached task whose failures are
routed back to the user through an explicit error callback.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Coroutine, Optional, Set

from models.job import JobState, PendingJob

logger = logging.getLogger(__name__)

PostPlaceholder = Callable[[], Awaitable[Any]]
ClearPlaceholder = Callable[[Any], Awaitable[None]]
Work = Callable[[], Awaitable[Any]]
Deliver = Callable[[Any], Awaitable[None]]
DeliverError = Callable[[BaseException], Awaitable[None]]


class AsyncJobRunner:
    """Runs units of work behind a transient UI placeholder."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    async def run(
        self,
        name: str,
        post_placeholder: PostPlaceholder,
        clear_placeholder: ClearPlaceholder,
        work: Work,
        deliver: Deliver,
        deliver_error: DeliverError
    ) -> PendingJob:
        """
        Run one job to completion.

        Never raises: work failures go to ``deliver_error``; failures in the
        placeholder or delivery callbacks are logged.

        Returns:
            The resolved PendingJob
        """
        job = PendingJob(name=name)

        try:
            job.placeholder_handle = await post_placeholder()
        except Exception as e:
            logger.warning(f"[{name}] Failed to post placeholder: {e}")
        job.state = JobState.PLACEHOLDER_POSTED

        try:
            job.result = await work()
            job.state = JobState.WORK_SUCCEEDED
        except Exception as e:
            job.error = e
            job.state = JobState.WORK_FAILED
            logger.error(f"[{name}] Job failed: {e}", exc_info=True)
        finally:
            await self._clear(job, clear_placeholder)

        if job.error is None:
            try:
                await deliver(job.result)
            except Exception as e:
                logger.error(f"[{name}] Failed to deliver result: {e}", exc_info=True)
                job.error = e
                await self._deliver_error(job, deliver_error)
        else:
            await self._deliver_error(job, deliver_error)

        job.state = JobState.RESULT_DELIVERED
        logger.info(f"[{name}] Job finished in {int((time.time() - job.started_at) * 1000)}ms, ok={job.error is None}")
        return job

    async def _clear(self, job: PendingJob, clear_placeholder: ClearPlaceholder) -> None:
        if job.placeholder_cleared:
            return
        job.placeholder_cleared = True
        if job.placeholder_handle is not None:
            try:
                await clear_placeholder(job.placeholder_handle)
            except Exception as e:
                logger.warning(f"[{job.name}] Failed to clear placeholder: {e}")
        job.state = JobState.PLACEHOLDER_CLEARED

    async def _deliver_error(self, job: PendingJob, deliver_error: DeliverError) -> None:
        try:
            await deliver_error(job.error)
        except Exception as e:
            logger.error(f"[{job.name}] Failed to notify user about failure: {e}")

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        on_error: Callable[[BaseException], Awaitable[None]],
        name: Optional[str] = None
    ) -> asyncio.Task:
        """
        Run ``coro`` detached from the caller.

        The caller has usually already answered Slack, so any exception is
        passed to ``on_error`` to notify the user instead of being lost.
        """
        task = asyncio.create_task(self._guarded(coro, on_error, name or "job"), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guarded(self, coro, on_error, name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            logger.info(f"[{name}] Detached job cancelled")
            raise
        except Exception as e:
            logger.error(f"[{name}] Detached job failed: {e}", exc_info=True)
            try:
                await on_error(e)
            except Exception as notify_error:
                logger.error(f"[{name}] Failed to notify user about failure: {notify_error}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for detached jobs to finish."""
        if not self._tasks:
            return
        done, not_done = await asyncio.wait(list(self._tasks), timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning(f"Cancelled {len(not_done)} detached jobs still running at shutdown")
