# lcs/infra/signal_worker.py
"""
In-process async signal worker.

Polls the signal queue, claims due signals, and runs each one through
the dispatch service.  ORBT decisions that ask for another attempt are
re-enqueued here; the pipeline itself never retries.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from lcs.core.engine.domain import RunOutcome
from lcs.core.engine.ports import AsyncSignalQueue, QueuedSignal, QueueStatus
from lcs.core.engine.use_cases import DispatchService
from lcs.core.pipeline.types import PipelineResult
from lcs.infra.logging_config import get_logger
from lcs.infra.metrics import inc_counter

logger = get_logger(__name__)

_STATUS_FOR_OUTCOME = {
    RunOutcome.DELIVERED: QueueStatus.COMPLETED,
    RunOutcome.BLOCKED: QueueStatus.SKIPPED,
    RunOutcome.REJECTED: QueueStatus.SKIPPED,
    RunOutcome.DELIVERY_FAILED: QueueStatus.FAILED,
    RunOutcome.ERROR: QueueStatus.FAILED,
}


def queue_status_for(result: PipelineResult) -> QueueStatus:
    return _STATUS_FOR_OUTCOME.get(result.outcome, QueueStatus.FAILED)


class SignalWorker:
    """
    Usage:
        worker = SignalWorker(queue, dispatch_service)
        await worker.start()
        ...
        await worker.stop()
    """

    def __init__(
        self,
        queue: AsyncSignalQueue,
        service: DispatchService,
        *,
        poll_interval: float = 2.0,
        batch_size: int = 10,
        stale_timeout: int = 300,
        requeue_enabled: bool = True,
        retry_delay_seconds: float = 900,
    ):
        self._queue = queue
        self._service = service
        self._poll_interval = poll_interval
        self._batch_size = batch_size
        self._stale_timeout = stale_timeout
        self._requeue_enabled = requeue_enabled
        self._retry_delay = retry_delay_seconds
        self._task: asyncio.Task | None = None
        self._running = False
        self._loop_count = 0

    @property
    def running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the worker loop as an asyncio task."""
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="signal_worker")
        self._task.add_done_callback(self._on_task_done)
        logger.info(
            f"Signal worker started: poll={self._poll_interval}s, batch={self._batch_size}, "
            f"requeue={self._requeue_enabled}",
        )

    async def stop(self) -> None:
        """Graceful shutdown: stop polling and cancel the loop."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Signal worker stopped")

    async def run_once(self) -> int:
        """Claim and process one batch. Returns the number of signals claimed."""
        items = await self._queue.claim_batch(self._batch_size)
        if items:
            await asyncio.gather(*(self._execute(item) for item in items), return_exceptions=True)
        return len(items)

    async def _loop(self) -> None:
        while self._running:
            try:
                self._loop_count += 1

                # Periodically reset stale PROCESSING rows (~every 60 loops)
                if self._loop_count % 60 == 0:
                    try:
                        await self._queue.reset_stale_processing(self._stale_timeout)
                    except Exception as exc:
                        logger.warning(f"Stale signal reset failed: {exc}")

                if await self.run_once():
                    await asyncio.sleep(0.1)
                else:
                    await asyncio.sleep(self._poll_interval)

            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(f"Signal worker loop error: {exc}", exc_info=True)
                inc_counter("lcs_signal_worker_loop_errors_total")
                await asyncio.sleep(self._poll_interval * 2)

    async def _execute(self, item: QueuedSignal) -> Optional[PipelineResult]:
        try:
            result = await self._service.dispatch(
                item.signal,
                channel=item.channel_override,
                attempt=item.attempt,
                communication_id=item.communication_id,
            )
        except Exception as exc:
            error_msg = f"{exc.__class__.__name__}: {exc}"[:500]
            await self._queue.finish(item.id, QueueStatus.FAILED, error_message=error_msg)
            inc_counter("lcs_signals_processed_total", status=QueueStatus.FAILED.value)
            logger.error(
                f"Signal {item.id} crashed the pipeline: {error_msg}",
                exc_info=True,
                extra={"company_id": item.signal.sovereign_company_id},
            )
            return None

        status = queue_status_for(result)
        await self._queue.finish(
            item.id,
            status,
            outcome=result.outcome.value,
            error_message=result.failure_reason,
        )
        inc_counter("lcs_signals_processed_total", status=status.value)

        if result.orbt is not None and result.orbt.should_requeue and self._requeue_enabled:
            await self._requeue(item, result)

        logger.info(
            f"Signal {item.id} processed: outcome={result.outcome.value}, attempt={item.attempt}",
            extra={
                "communication_id": result.communication_id,
                "message_run_id": result.message_run_id,
                "company_id": item.signal.sovereign_company_id,
            },
        )
        return result

    async def _requeue(self, item: QueuedSignal, result: PipelineResult) -> str:
        decision = result.orbt
        queue_id = await self._queue.enqueue(
            item.signal,
            attempt=decision.next_attempt,
            communication_id=result.communication_id,
            channel=decision.next_channel,
            delay_seconds=self._retry_delay,
        )
        inc_counter("lcs_orbt_requeued_total", action=decision.action.value)
        logger.info(
            f"ORBT {decision.action.value}: requeued as {queue_id} on "
            f"{decision.next_channel.value}, attempt {decision.next_attempt}",
            extra={"communication_id": result.communication_id},
        )
        return queue_id

    @staticmethod
    def _on_task_done(task: asyncio.Task) -> None:
        """Log unexpected worker death."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error(
                f"Signal worker task died unexpectedly: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )
