"""
Transport Client for robot communication.

Handles:
- tcp://host:port - raw byte stream (asyncio streams)
- ws://, wss:// - WebSocket binary frames (websockets)
- Fixed-interval reconnection
- Message queue for decoupled sending
- Connection status callbacks
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional
from urllib.parse import urlsplit

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"
    DISCONNECTED = "disconnected"


@dataclass
class ConnectionStats:
    """Statistics about the robot connection."""
    connected: bool = False
    connect_time: Optional[float] = None
    disconnect_time: Optional[float] = None
    reconnect_attempts: int = 0
    messages_sent: int = 0
    messages_failed: int = 0
    last_send_time: Optional[float] = None


class _TcpLink:
    """Raw TCP byte stream."""

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    async def open(self) -> None:
        self._reader, self._writer = await asyncio.open_connection(self.host, self.port)

    async def send(self, data: bytes) -> None:
        self._writer.write(data)
        await self._writer.drain()

    async def wait_closed(self) -> None:
        # The robot does not reply; any bytes it sends are only logged
        while True:
            chunk = await self._reader.read(1024)
            if not chunk:
                return
            logger.debug(f"Received from robot: {chunk!r}")

    async def close(self) -> None:
        if self._writer is None:
            return
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error closing TCP stream: {e}")


class _WebSocketLink:
    """WebSocket connection sending binary frames."""

    def __init__(self, url: str):
        self.url = url
        self._ws = None

    async def open(self) -> None:
        self._ws = await websockets.connect(
            self.url,
            ping_interval=20,
            ping_timeout=10,
            close_timeout=5,
        )

    async def send(self, data: bytes) -> None:
        await self._ws.send(data)

    async def wait_closed(self) -> None:
        try:
            async for message in self._ws:
                logger.debug(f"Received from server: {message!r}")
        except ConnectionClosed:
            pass

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()


class TransportClient:
    """
    Async robot client with automatic reconnection.

    Features:
    - Non-blocking sends via a bounded queue
    - Fixed retry interval on connection failure or loss
    - Status callback on every connection state change
    - Messages are dropped (and counted) while not connected
    """

    def __init__(
        self,
        url: str,
        retry_interval_s: float = 3.0,
        queue_size: int = 100,
        on_status_change: Optional[Callable[[ConnectionStatus], None]] = None,
    ):
        """
        Initialize transport client.

        Args:
            url: tcp://host:port or ws(s)://host:port/path
            retry_interval_s: Delay between reconnect attempts
            queue_size: Maximum number of queued outgoing messages
            on_status_change: Called with the new ConnectionStatus

        Raises:
            ValueError: Unsupported scheme or missing host/port.
        """
        self.url = url
        self.retry_interval = retry_interval_s
        self.on_status_change = on_status_change

        parts = urlsplit(url)
        self.scheme = parts.scheme
        if self.scheme == "tcp":
            if not parts.hostname or parts.port is None:
                raise ValueError(f"tcp URL needs host and port: {url}")
            self._host, self._port = parts.hostname, parts.port
        elif self.scheme not in ("ws", "wss"):
            raise ValueError(f"Unsupported transport scheme: {url}")

        # Connection state
        self._link = None
        self._running = False
        self.status = ConnectionStatus.DISCONNECTED

        # Message queue; None is the shutdown signal
        self._send_queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)

        self.stats = ConnectionStats()

        # Tasks
        self._connect_task: Optional[asyncio.Task] = None
        self._send_task: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        """Check if currently connected."""
        return self.status is ConnectionStatus.CONNECTED and self._link is not None

    def _make_link(self):
        if self.scheme == "tcp":
            return _TcpLink(self._host, self._port)
        return _WebSocketLink(self.url)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self.status:
            return
        self.status = status
        logger.debug(f"Connection status: {status.value}")
        if self.on_status_change:
            try:
                self.on_status_change(status)
            except Exception as e:
                logger.warning(f"Status callback failed: {e}")

    async def start(self) -> None:
        """Start the connection and sender tasks."""
        if self._running:
            return

        self._running = True
        self._connect_task = asyncio.create_task(self._connection_loop())
        self._send_task = asyncio.create_task(self._send_loop())

        logger.info(f"Transport client started, connecting to {self.url}")

    async def stop(self) -> None:
        """Flush queued messages (while connected) and stop."""
        if not self._running:
            return

        logger.info("Transport client stopping...")
        self._running = False

        # Let the sender drain up to the shutdown signal
        try:
            self._send_queue.put_nowait(None)
        except asyncio.QueueFull:
            logger.warning("Send queue full at shutdown, pending messages dropped")

        if self._send_task:
            try:
                await asyncio.wait_for(self._send_task, timeout=1.0)
            except asyncio.TimeoutError:
                logger.warning("Sender did not drain in time")
            except asyncio.CancelledError:
                pass

        if self._connect_task:
            self._connect_task.cancel()
            try:
                await self._connect_task
            except asyncio.CancelledError:
                pass

        if self._link is not None:
            await self._link.close()
            self._link = None

        self._set_status(ConnectionStatus.DISCONNECTED)
        logger.info("Transport client stopped")

    def send(self, data: bytes) -> bool:
        """
        Queue encoded bytes for sending.

        Non-blocking. Returns False if the queue is full.
        """
        try:
            self._send_queue.put_nowait(data)
            return True
        except asyncio.QueueFull:
            self.stats.messages_failed += 1
            logger.warning("Send queue full, dropping message")
            return False

    async def _connection_loop(self) -> None:
        """Main connection loop with fixed-interval reconnection."""
        while self._running:
            self._set_status(ConnectionStatus.CONNECTING)
            link = self._make_link()

            try:
                logger.info(f"Connecting to {self.url}...")
                await link.open()
            except asyncio.CancelledError:
                raise
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                logger.error(f"Connection failed: {e}")
                self._set_status(ConnectionStatus.FAILED)
            else:
                await self._hold(link)

            if not self._running:
                break

            logger.info(f"Reconnecting in {self.retry_interval:.1f}s...")
            await asyncio.sleep(self.retry_interval)
            self.stats.reconnect_attempts += 1

    async def _hold(self, link) -> None:
        """Keep an open link registered until the peer closes it."""
        self._link = link
        self.stats.connected = True
        self.stats.connect_time = time.time()
        self._set_status(ConnectionStatus.CONNECTED)
        logger.info("Connected to robot")

        try:
            await link.wait_closed()
        except (OSError, WebSocketException) as e:
            logger.warning(f"Connection lost: {e}")
        finally:
            self._link = None
            self.stats.connected = False
            self.stats.disconnect_time = time.time()
            await link.close()

        self._set_status(ConnectionStatus.DISCONNECTED)
        logger.warning("Disconnected from robot")

    async def _send_loop(self) -> None:
        """Process outgoing message queue."""
        while True:
            try:
                message = await asyncio.wait_for(self._send_queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                if not self._running:
                    break
                continue

            if message is None:
                break

            link = self._link
            if link is None or not self.connected:
                # Not connected, drop message
                self.stats.messages_failed += 1
                logger.debug("Not connected, dropping message")
                continue

            try:
                await link.send(message)
                self.stats.messages_sent += 1
                self.stats.last_send_time = time.time()
            except (OSError, WebSocketException) as e:
                self.stats.messages_failed += 1
                logger.warning(f"Send failed: {e}")

    def get_stats(self) -> dict:
        """Get connection statistics."""
        return {
            "status": self.status.value,
            "connected": self.connected,
            "connect_time": self.stats.connect_time,
            "disconnect_time": self.stats.disconnect_time,
            "reconnect_attempts": self.stats.reconnect_attempts,
            "messages_sent": self.stats.messages_sent,
            "messages_failed": self.stats.messages_failed,
            "last_send_time": self.stats.last_send_time,
            "queue_size": self._send_queue.qsize(),
        }
