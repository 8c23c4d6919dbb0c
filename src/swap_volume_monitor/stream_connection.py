import asyncio
import json
import logging
from typing import Awaitable, Callable, Dict, List, Optional

import aiohttp

from swap_volume_monitor.config import RECONNECT_CONFIG
from swap_volume_monitor.models import ConnectionState

logger = logging.getLogger("StreamConnection")

LogHandler = Callable[[Dict], Awaitable[None]]
StatusListener = Callable[[ConnectionState, str], None]

CLOSE_REASONS = {
    1006: "Connection closed abnormally",
    1015: "TLS handshake failed",
}


def reconnect_delay(attempts: int, config: Dict = RECONNECT_CONFIG) -> float:
    """Backoff delay (seconds) before retry number attempts + 1"""
    delay = config["initial_delay"] * config["backoff_multiplier"] ** attempts
    return min(delay, config["max_delay"])


class StreamConnection:
    """
    One WebSocket subscription to the chain's log feed.

    Subscribes to a list of topic0 values, hands each log notification to
    the log handler, and reconnects with exponential backoff after an
    unexpected close until the attempt budget is spent.
    """

    def __init__(
        self,
        url: str,
        topics: List[str],
        on_log: LogHandler,
        reconnect_config: Optional[Dict] = None,
        session: Optional[aiohttp.ClientSession] = None,
        status_listener: Optional[StatusListener] = None,
    ):
        self.url = url
        self.topics = list(topics)
        self.on_log = on_log
        self.config = {**RECONNECT_CONFIG, **(reconnect_config or {})}
        self.status_listener = status_listener

        self.state = ConnectionState.DISCONNECTED
        self.status = "Not connected"
        self.reconnect_attempts = 0
        self.subscriptions: Dict[int, str] = {}
        self.messages_received = 0
        self.message_errors = 0

        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._task: Optional[asyncio.Task] = None
        self._reconnect_timer: Optional[asyncio.TimerHandle] = None
        self._user_disconnected = False

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def _transition(self, state: ConnectionState, status: str):
        self.state = state
        self.status = status
        logger.info(f"Connection state: {state.value} ({status})")
        if self.status_listener:
            try:
                self.status_listener(state, status)
            except Exception as e:
                logger.error(f"Error in status listener: {e}")

    async def connect(self):
        """Open the stream. Also the manual way out of FAILED."""
        if self._task and not self._task.done():
            logger.warning("Stream connection is already running")
            return

        self._cancel_reconnect_timer()
        self._user_disconnected = False
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        self._start_attempt()

    def _start_attempt(self):
        self._reconnect_timer = None
        if self._user_disconnected:
            return
        self._task = asyncio.ensure_future(self._run_session())

    async def _run_session(self):
        self._transition(ConnectionState.CONNECTING, "Connecting")
        close_reason = None
        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(self.url),
                timeout=self.config["connect_timeout"],
            )
            self.reconnect_attempts = 0
            self._transition(ConnectionState.CONNECTED, "Connected")
            await self._subscribe()

            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self.handle_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"WebSocket error: {self._ws.exception()}")
                    close_reason = "Connection error"
                    break
                elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                    break

            logger.info(f"WebSocket closed (code: {self._ws.close_code})")
            if close_reason is None:
                close_reason = CLOSE_REASONS.get(self._ws.close_code, "Connection closed")
        except asyncio.TimeoutError:
            logger.error(f"WebSocket connection to {self.url} timed out")
            close_reason = "Connection timed out"
        except (aiohttp.ClientError, OSError) as e:
            logger.error(f"WebSocket connection error: {e}")
            close_reason = "Connection error"
        finally:
            if self._ws is not None and not self._ws.closed:
                await self._ws.close()
            self._ws = None

        if self._user_disconnected:
            return
        self._transition(ConnectionState.DISCONNECTED, close_reason)
        self._schedule_reconnect()

    async def _subscribe(self):
        for request_id, topic in enumerate(self.topics, start=1):
            request = {
                "jsonrpc": "2.0",
                "id": request_id,
                "method": "eth_subscribe",
                "params": ["logs", {"topics": [topic]}],
            }
            await self._ws.send_str(json.dumps(request))
        logger.info(f"Sent {len(self.topics)} subscribe requests")

    async def handle_message(self, raw: str):
        """Process one inbound frame. Never raises."""
        self.messages_received += 1
        try:
            message = json.loads(raw)
            if not isinstance(message, dict):
                raise ValueError(f"unexpected message: {raw!r}")

            if message.get("method") == "eth_subscription":
                log = (message.get("params") or {}).get("result")
                if isinstance(log, dict):
                    await self.on_log(log)
            elif "error" in message:
                logger.warning(f"JSON-RPC error for request {message.get('id')}: {message['error']}")
            elif message.get("id") is not None and "result" in message:
                self.subscriptions[message["id"]] = message["result"]
                logger.info(f"Subscription {message['id']} active: {message['result']}")
        except Exception as e:
            self.message_errors += 1
            logger.error(f"Failed to process stream message: {e}")

    def _schedule_reconnect(self):
        max_attempts = self.config["max_attempts"]
        if self.reconnect_attempts >= max_attempts:
            self.reconnect_attempts = 0
            self._transition(ConnectionState.FAILED, "Reconnect failed, retry manually")
            return

        delay = reconnect_delay(self.reconnect_attempts, self.config)
        self.reconnect_attempts += 1
        self._transition(
            ConnectionState.RECONNECTING,
            f"Reconnecting... ({self.reconnect_attempts}/{max_attempts})",
        )
        logger.info(f"Reconnecting in {delay:.1f}s")
        loop = asyncio.get_running_loop()
        self._reconnect_timer = loop.call_later(delay, self._start_attempt)

    def _cancel_reconnect_timer(self):
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    async def disconnect(self):
        """User-initiated close; never followed by a reconnect."""
        self._user_disconnected = True
        self._cancel_reconnect_timer()

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None

        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
            self._session = None

        self.reconnect_attempts = 0
        self.subscriptions.clear()
        self._transition(ConnectionState.DISCONNECTED, "Disconnected")
