import asyncio
import hashlib
import hmac
import json
import logging
import os
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from .messages import Command, Event, decode_command, decode_event

MAX_MSG_SIZE = int(os.getenv("TESTCHAIN_IPC_MAX", "8000000"))
IPC_SECRET = os.getenv("TESTCHAIN_IPC_SECRET")
MAX_SKEW = int(os.getenv("TESTCHAIN_IPC_SKEW", "60"))

logger = logging.getLogger(__name__)


def _canonical(msg: Dict[str, Any]) -> str:
    return json.dumps(msg, separators=(",", ":"), sort_keys=True)


def _sign_payload(payload: str, secret: Optional[str]) -> str:
    if not secret:
        return ""
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def encode_message(msg: Dict[str, Any], secret: Optional[str] = IPC_SECRET) -> bytes:
    if secret:
        msg = dict(msg)
        if "ts" not in msg:
            msg["ts"] = int(time.time())
        unsigned = {k: v for k, v in msg.items() if k != "mac"}
        msg["mac"] = _sign_payload(_canonical(unsigned), secret)
    return (_canonical(msg) + "\n").encode()


def decode_message(line: bytes, secret: Optional[str] = IPC_SECRET) -> Dict[str, Any]:
    if len(line) > MAX_MSG_SIZE:
        raise ValueError("Message too large")
    msg = json.loads(line.decode())
    if not isinstance(msg, dict):
        raise ValueError("Message must be an object")
    if secret:
        mac = msg.get("mac", "")
        try:
            ts = int(msg.get("ts", 0))
        except (TypeError, ValueError, OverflowError) as exc:
            raise ValueError("Message timestamp missing or malformed") from exc
        if abs(int(time.time()) - ts) > MAX_SKEW:
            raise ValueError("Message timestamp out of range")
        unsigned = {k: v for k, v in msg.items() if k != "mac"}
        expected = _sign_payload(_canonical(unsigned), secret)
        if not hmac.compare_digest(str(mac), expected):
            raise ValueError("Bad message mac")
        msg.pop("mac", None)
        msg.pop("ts", None)
    return msg


class TransportChannel:
    """Bidirectional, at-most-once message channel to a remote consumer.

    `send` never blocks and may be called from any thread; calls made off
    the owning loop are handed over with `call_soon_threadsafe`.
    """

    def __init__(self) -> None:
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def send(self, event: Event) -> None:
        loop = self._loop
        if loop is None or _running_loop() is loop:
            self._send(event)
        elif not loop.is_closed():
            loop.call_soon_threadsafe(self._send, event)

    def _send(self, event: Event) -> None:
        raise NotImplementedError

    async def receive(self) -> Optional[Command]:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class QueueTransport(TransportChannel):
    """In-process channel: a queue per direction."""

    def __init__(self) -> None:
        super().__init__()
        self.commands: "asyncio.Queue[Optional[Command]]" = asyncio.Queue()
        self.events: "asyncio.Queue[Event]" = asyncio.Queue()

    def _send(self, event: Event) -> None:
        self.events.put_nowait(event)

    async def receive(self) -> Optional[Command]:
        return await self.commands.get()

    def close(self) -> None:
        self.commands.put_nowait(None)

    # consumer side

    def consumer_send(self, command: Command) -> None:
        self.commands.put_nowait(command)

    async def consumer_receive(self) -> Event:
        return await self.events.get()

    def drain_events(self) -> list:
        out = []
        while not self.events.empty():
            out.append(self.events.get_nowait())
        return out


class StreamTransport(TransportChannel):
    """Newline-delimited JSON over an asyncio stream pair."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        secret: Optional[str] = IPC_SECRET,
    ) -> None:
        super().__init__()
        self.reader = reader
        self.writer = writer
        self.secret = secret

    def _send(self, event: Event) -> None:
        if self.writer.is_closing():
            logger.debug("dropping %s: stream closed", event.TAG)
            return
        self.writer.write(encode_message(event.to_dict(), self.secret))

    async def receive(self) -> Optional[Command]:
        while True:
            try:
                line = await self.reader.readline()
            except ValueError as exc:
                # oversized line; the stream has already discarded it
                logger.warning("dropping inbound message: %s", exc)
                continue
            if not line:
                return None
            try:
                return decode_command(decode_message(line, self.secret))
            except ValueError as exc:
                logger.warning("dropping inbound message: %s", exc)

    def close(self) -> None:
        if not self.writer.is_closing():
            self.writer.close()


class StreamConsumer:
    """Consumer end of a StreamTransport; used by clients and tests."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        secret: Optional[str] = IPC_SECRET,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.secret = secret

    @staticmethod
    async def connect(host: str, port: int, secret: Optional[str] = IPC_SECRET) -> "StreamConsumer":
        reader, writer = await asyncio.open_connection(host, port, limit=MAX_MSG_SIZE)
        return StreamConsumer(reader, writer, secret)

    async def send(self, command: Command) -> None:
        self.writer.write(encode_message(command.to_dict(), self.secret))
        await self.writer.drain()

    async def receive(self) -> Optional[Event]:
        line = await self.reader.readline()
        if not line:
            return None
        return decode_event(decode_message(line, self.secret))

    async def close(self) -> None:
        self.writer.close()
        await self.writer.wait_closed()


async def serve_once(
    host: str,
    port: int,
    handler: Callable[[StreamTransport], Awaitable[None]],
    secret: Optional[str] = IPC_SECRET,
    on_listening: Optional[Callable[[int], None]] = None,
) -> None:
    """Accept a single consumer connection and run `handler` on it."""
    connected: "asyncio.Future[StreamTransport]" = asyncio.get_running_loop().create_future()

    async def _accept(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        if connected.done():
            writer.close()
            await writer.wait_closed()
            return
        connected.set_result(StreamTransport(reader, writer, secret))

    server = await asyncio.start_server(_accept, host, port, limit=MAX_MSG_SIZE)
    if on_listening:
        on_listening(server.sockets[0].getsockname()[1])
    try:
        transport = await connected
        server.close()
        try:
            await handler(transport)
        finally:
            transport.close()
    finally:
        server.close()
        await server.wait_closed()
