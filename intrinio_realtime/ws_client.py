"""
Intrinio Realtime WebSocket Client

Async client for the Intrinio realtime feed (IEX / QUODD):
- Authentication (token per connect cycle)
- Dynamic channel subscriptions (join / leave)
- Heartbeat keep-alive
- Delivery of inbound records to registered handlers

There is no automatic reconnection: a lost connection is reported through
the error handlers and the caller decides whether to connect() again.
"""

import asyncio
import inspect
import time
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import websockets
from websockets.exceptions import WebSocketException

from .config.settings import FanOutPolicy, RealtimeSettings, get_settings
from .connection import Connection
from .errors import AuthError, DialError, HandlerError
from .http_clients import TokenClient
from .models.records import InboundRecord
from .providers import Provider, get_adapter
from .subscription_reconciler import SubscriptionReconciler
from .utils.logger import get_logger

logger = get_logger(__name__)

QuoteHandler = Callable[[InboundRecord], Optional[Awaitable[None]]]
ErrorHandler = Callable[[Exception], Optional[Awaitable[None]]]
ConnectFactory = Callable[[str], Awaitable[Any]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"


async def open_websocket(url: str) -> Any:
    """Default dialer"""
    return await websockets.connect(
        url,
        ping_interval=30,
        ping_timeout=10,
        close_timeout=10
    )


async def _invoke(handler: Callable, arg: Any) -> None:
    result = handler(arg)
    if inspect.isawaitable(result):
        await result


class RealtimeClient:
    """
    Realtime client for one provider

    Control-plane calls (connect, disconnect, join, leave, leave_all) must
    come from one logical caller; they are not safe to call concurrently.
    """

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        provider: Union[Provider, str, None] = None,
        settings: Optional[RealtimeSettings] = None,
        authenticator: Optional[Any] = None,
        connect_factory: Optional[ConnectFactory] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            username: API username (defaults to INTRINIO_USERNAME)
            password: API password (defaults to INTRINIO_PASSWORD)
            provider: Provider or its name (defaults to INTRINIO_PROVIDER)
            settings: Timing/handler settings
            authenticator: Object with an async fetch_token(auth_url, username, password)
            connect_factory: Coroutine function opening a websocket for a URL
            clock: Wall clock used for QUODD heartbeats

        Raises:
            InvalidProviderError: provider is not iex or quodd
        """
        self.settings = settings or get_settings()
        self.username = username if username is not None else self.settings.username
        self.password = password if password is not None else self.settings.password

        self.adapter = get_adapter(
            provider if provider is not None else self.settings.provider,
            clock=clock
        )
        self.provider = self.adapter.provider
        self.reconciler = SubscriptionReconciler(self.adapter)

        self._authenticator = authenticator
        self._connect_factory = connect_factory or open_websocket

        self._state = ConnectionState.DISCONNECTED
        self._connection: Optional[Connection] = None

        self._quote_handlers: List[QuoteHandler] = []
        self._error_handlers: List[ErrorHandler] = []
        self._next_handler = 0

        self.stats = {
            "records_received": 0,
            "errors": 0,
            "connections": 0,
            "last_message_time": None
        }

        self.logger = logger.bind(provider=self.provider.value)
        self.logger.info("realtime_client_initialized")

    # =============================================
    # STATE
    # =============================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._connection is not None

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            self.logger.debug("state_changed", previous=self._state.value, state=state.value)
        self._state = state

    # =============================================
    # LIFECYCLE
    # =============================================

    async def connect(self) -> None:
        """
        Fetch a token, open the websocket and start the background tasks

        A connection already open is closed first. Channels joined before
        are replayed onto the new socket.

        Raises:
            AuthError: the credential exchange failed
            DialError: the websocket could not be opened
        """
        if self._connection is not None:
            await self.disconnect()

        self._set_state(ConnectionState.CONNECTING)
        self.logger.info("connecting", url=self.adapter.websocket_url)

        try:
            token = await self._fetch_token()
            try:
                ws = await self._connect_factory(self.adapter.socket_url(token))
            except (WebSocketException, OSError, asyncio.TimeoutError) as e:
                self.logger.error("dial_failed", error=str(e), error_type=type(e).__name__)
                raise DialError(f"Could not open websocket: {e}") from e
        except Exception:
            self._set_state(ConnectionState.DISCONNECTED)
            raise

        self._connection = Connection(
            ws,
            self.adapter,
            on_record=self._deliver_record,
            on_error=self._report_error,
            on_lost=self._connection_lost,
            heartbeat_interval=self.settings.heartbeat_interval,
            write_timeout=self.settings.write_timeout,
            read_timeout=self.settings.read_timeout
        )
        self._connection.start()
        self._set_state(ConnectionState.CONNECTED)
        self.stats["connections"] += 1
        self.logger.info("connected")

        self.reconciler.reset_joined()
        self._reconcile()

    async def disconnect(self) -> None:
        """
        Drain queued messages, close the socket and stop the tasks

        No-op when not connected; safe to call repeatedly.
        """
        connection = self._connection
        if connection is None:
            return
        if self._state != ConnectionState.CONNECTED:
            await connection.wait_closed()
            return

        self._set_state(ConnectionState.CLOSING)
        self.logger.info("closing")
        try:
            await connection.close(self.settings.drain_timeout)
        finally:
            if self._connection is connection:
                self._connection = None
            self._set_state(ConnectionState.DISCONNECTED)
            self.logger.info("websocket_closed")

    async def _fetch_token(self) -> str:
        if not self.username or not self.password:
            raise AuthError("Missing credentials")

        if self._authenticator is not None:
            return await self._authenticator.fetch_token(
                self.adapter.auth_url, self.username, self.password
            )

        client = TokenClient(timeout=self.settings.auth_timeout)
        try:
            return await client.fetch_token(self.adapter.auth_url, self.username, self.password)
        finally:
            await client.close()

    async def _connection_lost(self, connection: Connection, error: Optional[Exception]) -> None:
        if self._connection is connection:
            self._connection = None
            self._set_state(ConnectionState.DISCONNECTED)
        if error is not None:
            await self._report_error(error)

    async def __aenter__(self) -> "RealtimeClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    # =============================================
    # SUBSCRIPTIONS
    # =============================================

    def join(self, *channels: str) -> None:
        self.reconciler.add(channels)
        self._reconcile()

    def leave(self, *channels: str) -> None:
        self.reconciler.discard(channels)
        self._reconcile()

    def leave_all(self) -> None:
        self.reconciler.clear()
        self._reconcile()

    @property
    def channels(self) -> List[str]:
        return sorted(self.reconciler.desired)

    @property
    def joined_channels(self) -> List[str]:
        return sorted(self.reconciler.joined)

    def _reconcile(self) -> List[Dict[str, Any]]:
        sink = self._connection.send if self.connected else None
        return self.reconciler.reconcile(sink)

    # =============================================
    # HANDLERS
    # =============================================

    def on_quote(self, handler: Optional[QuoteHandler]) -> None:
        """Replace every quote handler with `handler`"""
        self._quote_handlers = [handler] if handler is not None else []
        self._next_handler = 0

    def add_quote_handler(self, handler: QuoteHandler) -> None:
        self._quote_handlers.append(handler)

    def remove_quote_handler(self, handler: QuoteHandler) -> None:
        if handler in self._quote_handlers:
            self._quote_handlers.remove(handler)

    def on_error(self, handler: Optional[ErrorHandler]) -> None:
        """Replace the error handler"""
        self._error_handlers = [handler] if handler is not None else []

    def _select_handlers(self) -> List[QuoteHandler]:
        handlers = list(self._quote_handlers)
        if not handlers or self.settings.fan_out == FanOutPolicy.BROADCAST:
            return handlers
        handler = handlers[self._next_handler % len(handlers)]
        self._next_handler = (self._next_handler + 1) % len(handlers)
        return [handler]

    async def _deliver_record(self, record: InboundRecord) -> None:
        self.stats["records_received"] += 1
        self.stats["last_message_time"] = datetime.now().isoformat()

        for handler in self._select_handlers():
            try:
                await _invoke(handler, record)
            except Exception as e:
                self.logger.error(
                    "quote_handler_error",
                    error=str(e),
                    error_type=type(e).__name__,
                    record_event=record.event
                )
                error = HandlerError(f"Quote handler failed: {e}")
                error.__cause__ = e
                await self._report_error(error)

    async def _report_error(self, error: Exception) -> None:
        self.stats["errors"] += 1
        if not self._error_handlers:
            self.logger.warning(
                "unhandled_realtime_error",
                error=str(error),
                error_type=type(error).__name__
            )
            return

        for handler in list(self._error_handlers):
            try:
                await _invoke(handler, error)
            except Exception:
                self.logger.exception("error_handler_failed")

    # =============================================
    # STATS
    # =============================================

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "connection": dict(self._connection.stats) if self._connection else None,
            "state": self._state.value,
            "is_connected": self.connected,
            "subscriptions": self.reconciler.get_metrics()
        }
