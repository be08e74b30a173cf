"""background ledger writer: bounded queue, one consumer, appends run in a worker thread"""

import asyncio
import logging
from typing import Optional

from auditflow.ledger.audit_ledger import AuditLedger
from auditflow.models.findings import AnalysisReport

logger = logging.getLogger(__name__)

_STOP = object()


class LedgerWriter:
    """
    Decouples report delivery from ledger I/O.

    When the queue is full the newest report is dropped, counted in
    `dropped` and logged. Appends are serialized by the single consumer,
    so commit order follows submission order.
    """

    def __init__(self, ledger: AuditLedger, queue_size: int = 256):
        self.ledger = ledger
        self.queue_size = queue_size
        self.dropped = 0
        self.written = 0
        self.failed = 0
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._closed = False

    def _ensure_started(self) -> None:
        if self._consumer is None:
            self._queue = asyncio.Queue(maxsize=self.queue_size)
            self._consumer = asyncio.create_task(self._run(), name="ledger-writer")

    def submit(self, report: AnalysisReport) -> bool:
        """enqueue without waiting. returns False if the report was dropped."""
        if self._closed or not self.ledger.enabled:
            return False
        self._ensure_started()
        try:
            self._queue.put_nowait(report)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"[ledger] writer queue full ({self.queue_size}), dropping report {report.analysis_id}",
                extra={"dropped": self.dropped},
            )
            return False
        return True

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is _STOP:
                    return
                await asyncio.to_thread(self.ledger.append, item)
                self.written += 1
            except Exception as e:
                self.failed += 1
                logger.error(f"[ledger] append failed for {item.analysis_id}: {e}")
            finally:
                self._queue.task_done()

    async def flush(self) -> None:
        """wait until everything queued so far is written"""
        if self._queue is not None:
            await self._queue.join()

    async def aclose(self) -> None:
        """drain the queue and stop the consumer"""
        if self._closed:
            return
        self._closed = True
        if self._consumer is None:
            return
        # the sentinel may need to wait for room; the consumer is draining
        await self._queue.put(_STOP)
        await self._consumer
        logger.info(
            f"[ledger] writer closed: {self.written} written, {self.dropped} dropped, {self.failed} failed"
        )

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0
