"""
Connection

Owns one open websocket for one connect cycle plus the three tasks that
share it:
- receiver: reads frames and hands decoded records to the client
- dispatcher: single consumer of the outbound FIFO queue
- heartbeat: enqueues a keep-alive message every interval

All three stop on a single closing signal. A graceful close drains the
queue before the socket is released; a failure detected by the receiver
tears everything down without writing.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional

from websockets.exceptions import ConnectionClosed

from .errors import RuntimeSocketError
from .models.records import InboundRecord
from .providers import ProviderAdapter
from .utils.logger import get_logger

logger = get_logger(__name__)

# Going away
EXPECTED_CLOSE_CODES = {1001}

_STOP = object()

RecordCallback = Callable[[InboundRecord], Awaitable[None]]
ErrorCallback = Callable[[Exception], Awaitable[None]]
LostCallback = Callable[["Connection", Optional[Exception]], Awaitable[None]]


def close_code(exc: ConnectionClosed) -> Optional[int]:
    """Close code received from the peer; 1006 when no close frame arrived"""
    if hasattr(exc, "rcvd"):
        return exc.rcvd.code if exc.rcvd is not None else 1006
    return getattr(exc, "code", None)


class Connection:
    """Supervised task group around a single websocket"""

    def __init__(
        self,
        ws: Any,
        adapter: ProviderAdapter,
        on_record: RecordCallback,
        on_error: ErrorCallback,
        on_lost: LostCallback,
        heartbeat_interval: float = 3.0,
        write_timeout: float = 10.0,
        read_timeout: float = 30.0
    ):
        self.ws = ws
        self.adapter = adapter
        self._on_record = on_record
        self._on_error = on_error
        self._on_lost = on_lost
        self.heartbeat_interval = heartbeat_interval
        self.write_timeout = write_timeout
        self.read_timeout = read_timeout

        self.queue: asyncio.Queue = asyncio.Queue()
        self._closing = asyncio.Event()
        self._closed = asyncio.Event()

        self._receiver_task: Optional[asyncio.Task] = None
        self._dispatcher_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None

        self.failure: Optional[Exception] = None
        self.stats = {
            "records_received": 0,
            "messages_sent": 0,
            "write_errors": 0,
            "heartbeats": 0
        }

    @property
    def closing(self) -> bool:
        return self._closing.is_set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def start(self) -> None:
        provider = self.adapter.provider.value
        self._receiver_task = asyncio.create_task(
            self._receive_loop(), name=f"{provider}-receiver"
        )
        self._dispatcher_task = asyncio.create_task(
            self._dispatch_loop(), name=f"{provider}-dispatcher"
        )
        self._heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(), name=f"{provider}-heartbeat"
        )
        logger.debug("connection_tasks_started", provider=provider)

    def send(self, message: Dict[str, Any]) -> None:
        """Enqueue an outbound message; never blocks"""
        if self.closing:
            logger.warning("send_after_close_ignored", message_type=message.get("event"))
            return
        self.queue.put_nowait(message)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def close(self, drain_timeout: float = 10.0) -> None:
        """
        Graceful shutdown

        Stops the heartbeat, lets the dispatcher write everything queued so
        far (bounded by drain_timeout), then closes the socket.

        Raises:
            RuntimeSocketError: the socket failed to close
        """
        if self.closing:
            await self.wait_closed()
            return

        self._closing.set()
        await self._cancel(self._heartbeat_task)

        try:
            await self._drain(drain_timeout)
        finally:
            try:
                await self.ws.close()
            except Exception as e:
                logger.error("websocket_close_failed", error=str(e), error_type=type(e).__name__)
                raise RuntimeSocketError(f"Failed to close websocket: {e}") from e
            finally:
                await self._stop_receiver(drain_timeout)
                self._closed.set()

    async def _drain(self, drain_timeout: float) -> None:
        pending = self.queue.qsize()
        self.queue.put_nowait(_STOP)
        try:
            await asyncio.wait_for(self._dispatcher_task, timeout=drain_timeout)
            logger.debug("dispatcher_drained", messages=pending)
        except asyncio.TimeoutError:
            logger.warning(
                "dispatcher_drain_timeout",
                timeout_seconds=drain_timeout,
                dropped=self.queue.qsize()
            )
        except Exception as e:
            logger.error("dispatcher_failed", error=str(e), error_type=type(e).__name__)
            await self._on_error(RuntimeSocketError(f"Dispatcher failed: {e}"))

    async def _teardown(self, error: Optional[Exception]) -> None:
        """Stop everything after the receiver saw the socket die"""
        if self.closing:
            return
        self._closing.set()
        self.failure = error

        dropped = self.queue.qsize()
        await self._cancel(self._heartbeat_task)
        await self._cancel(self._dispatcher_task)

        try:
            await self.ws.close()
        except Exception as e:
            logger.debug("websocket_close_after_failure", error=str(e))

        self._closed.set()
        logger.warning(
            "connection_lost",
            error=str(error) if error else None,
            dropped_messages=dropped
        )
        await self._on_lost(self, error)

    async def _receive_loop(self) -> None:
        while True:
            try:
                frame = await asyncio.wait_for(self.ws.recv(), timeout=self.read_timeout)
            except asyncio.TimeoutError:
                await self._teardown(
                    RuntimeSocketError(f"No data received for {self.read_timeout}s")
                )
                return
            except ConnectionClosed as e:
                code = close_code(e)
                if self.closing or code in EXPECTED_CLOSE_CODES:
                    logger.info("connection_closed", code=code)
                    await self._teardown(None)
                    return
                logger.error("connection_closed_unexpectedly", code=code, reason=str(e))
                await self._teardown(
                    RuntimeSocketError(f"Websocket closed unexpectedly: {e}", code=code)
                )
                return
            except Exception as e:
                logger.error("receive_error", error=str(e), error_type=type(e).__name__)
                await self._teardown(RuntimeSocketError(f"Websocket read failed: {e}"))
                return

            await self._handle_frame(frame)

    async def _handle_frame(self, frame: Any) -> None:
        try:
            data = json.loads(frame)
        except (TypeError, ValueError) as e:
            logger.error("json_decode_error", error=str(e))
            await self._on_error(RuntimeSocketError(f"Undecodable frame: {e}"))
            return

        items = data if isinstance(data, list) else [data]
        for item in items:
            if not isinstance(item, dict):
                logger.debug("non_object_frame_skipped", item_type=type(item).__name__)
                continue
            self.stats["records_received"] += 1
            await self._on_record(self.adapter.parse_record(item))

    async def _dispatch_loop(self) -> None:
        while True:
            message = await self.queue.get()
            if message is _STOP:
                return

            try:
                await asyncio.wait_for(
                    self.ws.send(json.dumps(message)),
                    timeout=self.write_timeout
                )
            except ConnectionClosed as e:
                # the receiver reports the closure itself
                self.stats["write_errors"] += 1
                logger.warning(
                    "dispatch_on_closed_socket",
                    message_type=message.get("event"),
                    code=close_code(e)
                )
                continue
            except Exception as e:
                self.stats["write_errors"] += 1
                logger.warning(
                    "dispatch_write_failed",
                    message_type=message.get("event"),
                    error=str(e) or type(e).__name__
                )
                await self._on_error(
                    RuntimeSocketError(f"Websocket write failed: {str(e) or type(e).__name__}")
                )
                continue

            self.stats["messages_sent"] += 1
            logger.debug("message_sent", message_type=message.get("event"))

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            self.stats["heartbeats"] += 1
            self.send(self.adapter.heartbeat_message())

    async def _stop_receiver(self, timeout: float) -> None:
        task = self._receiver_task
        if task is None or task is asyncio.current_task() or task.done():
            return
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            await self._cancel(task)

    @staticmethod
    async def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
