import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from tracewarden.core.config import settings

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    def __init__(self, worker_name: str, max_queue_size: Optional[int] = None):
        """
        Initialize the worker with a name, an empty in-process queue and a stopped task state.

        Parameters:
            worker_name (str): Identifier for the worker instance; used in logging.
            max_queue_size (Optional[int]): Queue bound; submissions beyond it are dropped.
        """
        self.worker_name = worker_name
        self.max_queue_size = (
            settings.ANALYSIS_QUEUE_MAX_SIZE if max_queue_size is None else max_queue_size
        )
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self.running = False
        self.worker_task = None
        self.processed_count = 0
        self.dropped_count = 0

    async def start(self):
        """
        Start the worker's background consume loop.

        If the worker is already running, no action is taken.
        """
        if self.running:
            logger.warning(f"Worker {self.worker_name} is already running")
            return

        self.running = True
        self.worker_task = asyncio.create_task(self._run_worker())
        logger.info(f"Worker {self.worker_name} started")

    async def stop(self):
        """
        Stop the worker loop and cancel its background task.

        Messages still queued stay in the queue and can be processed with drain().
        """
        if not self.running:
            return

        self.running = False
        if self.worker_task:
            self.worker_task.cancel()
            try:
                await self.worker_task
            except asyncio.CancelledError:
                pass
            self.worker_task = None

        logger.info(f"Worker {self.worker_name} stopped")

    def submit(self, message: Dict[str, Any]) -> bool:
        """Enqueue a message without waiting. Returns False when the queue is full."""
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped_count += 1
            logger.warning(
                f"Worker {self.worker_name} queue full ({self.max_queue_size}), dropping message"
            )
            return False
        return True

    @property
    def pending(self) -> int:
        return self.queue.qsize()

    async def drain(self):
        """
        Wait until every queued message has been processed.

        When the background loop is not running the pending messages are
        processed inline on the caller's task.
        """
        if self.running:
            await self.queue.join()
            return

        while True:
            try:
                message = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            try:
                await self._handle(message)
            finally:
                self.queue.task_done()

    async def _handle(self, message: Dict[str, Any]):
        try:
            await self.process_message(message)
            self.processed_count += 1
            logger.debug(f"Worker {self.worker_name} processed message successfully")
        except Exception:
            logger.exception(f"Worker {self.worker_name} failed to process message")

    async def _run_worker(self):
        """
        Consume the queue while the running flag is set.

        Failures of individual messages are logged and never stop the loop.
        """
        while self.running:
            try:
                message = await self.queue.get()
            except asyncio.CancelledError:
                break

            try:
                await self._handle(message)
            finally:
                self.queue.task_done()

    @abstractmethod
    async def process_message(self, message_body: Dict[str, Any]):
        """
        Handle a single queued message.

        Parameters:
            message_body (Dict[str, Any]): The message as submitted.
        """
        pass
