"""
Payment Event Dispatcher
========================
In-process queue between the payment listener and the job orchestrator.

Each PaidInvoiceEvent runs in its own task, so one slow job never blocks
the queue. In-flight tasks are tracked and drained on stop.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Optional

import structlog

from ln_imagegen.schemas.events import PaidInvoiceEvent

EventHandler = Callable[[PaidInvoiceEvent], Awaitable[None]]


class IEventPublisher(ABC):
    """Event publisher interface"""

    @abstractmethod
    async def publish(self, event: PaidInvoiceEvent) -> bool:
        pass


class PaymentEventDispatcher(IEventPublisher):

    def __init__(self, handler: EventHandler, maxsize: int = 0):
        self._handler = handler
        self._queue: asyncio.Queue[Optional[PaidInvoiceEvent]] = asyncio.Queue(maxsize=maxsize)
        self._consumer: Optional[asyncio.Task] = None
        self._in_flight: set[asyncio.Task] = set()
        self._logger = structlog.get_logger().bind(component="payment_event_dispatcher")

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def start(self) -> None:
        if self.running:
            return
        self._consumer = asyncio.create_task(self._consume(), name="payment-event-consumer")
        self._logger.info("dispatcher_started")

    async def stop(self, drain_timeout: Optional[float] = None) -> None:
        """Stop consuming and wait for in-flight jobs to finish"""
        if self._consumer is not None:
            await self._queue.put(None)
            await self._consumer
            self._consumer = None

        if self._in_flight:
            self._logger.info("draining_jobs", count=len(self._in_flight))
            done, pending = await asyncio.wait(set(self._in_flight), timeout=drain_timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                self._logger.warning("jobs_cancelled_on_stop", count=len(pending))
        self._logger.info("dispatcher_stopped")

    async def health_check(self) -> bool:
        return self.running

    async def publish(self, event: PaidInvoiceEvent) -> bool:
        if not self.running:
            raise ConnectionError("Dispatcher not running")
        await self._queue.put(event)
        self._logger.info("event_published",
                          event_type=event.event_type.value,
                          event_id=event.event_id,
                          invoice_id=event.payload.invoice_id)
        return True

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            if event is None:
                self._queue.task_done()
                return
            task = asyncio.create_task(self._run(event), name=f"job-{event.payload.invoice_id}")
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            self._queue.task_done()

    async def _run(self, event: PaidInvoiceEvent) -> None:
        try:
            await self._handler(event)
        except Exception as e:
            self._logger.error("handler_error",
                               event_id=event.event_id,
                               invoice_id=event.payload.invoice_id,
                               error=str(e),
                               exc_info=True)
