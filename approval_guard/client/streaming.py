"""Live request status over the approval service's server-sent event stream."""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Callable, Optional

from loguru import logger

from .exceptions import GuardTransportError
from .gateway import GuardGateway
from .models import StateEvent

# Maximum size for a buffered incomplete block to prevent memory exhaustion
MAX_BUFFER_SIZE = 1024 * 1024  # 1MB

INITIAL_BACKOFF_MS = 1000
MAX_BACKOFF_MS = 15000

STATE_EVENT = "state"

StateListener = Callable[[StateEvent], None]


@dataclass
class SSEBlock:
    """One blank-line delimited block of the event stream."""

    event: str = "message"
    data: str = ""


class SSEParser:
    """Incremental parser for the event stream text protocol.

    Text is fed in arbitrary chunks; complete blocks are returned as soon as
    their terminating blank line arrives.
    """

    def __init__(self):
        self.buffer = ""

    def feed(self, text: str) -> list[SSEBlock]:
        self.buffer = (self.buffer + text).replace("\r\n", "\n")
        blocks = []
        while True:
            idx = self.buffer.find("\n\n")
            if idx < 0:
                break
            raw = self.buffer[:idx]
            self.buffer = self.buffer[idx + 2 :]
            blocks.append(self.parse_block(raw))

        if len(self.buffer) > MAX_BUFFER_SIZE:
            logger.warning(
                f"Event stream buffer exceeded {MAX_BUFFER_SIZE} bytes without a block delimiter, "
                "discarding buffered data"
            )
            self.buffer = ""
        return blocks

    @staticmethod
    def parse_block(raw: str) -> SSEBlock:
        event = "message"
        data_lines = []
        for line in raw.split("\n"):
            line = line.rstrip("\r")
            if line.startswith("event:"):
                event = line[6:].strip() or "message"
            elif line.startswith("data:"):
                data_lines.append(line[5:].strip())
            # Comments (":"), id: and retry: fields carry nothing we use
        return SSEBlock(event=event, data="\n".join(data_lines))


@dataclass
class StreamSession:
    """One logical attempt to follow a request over the event stream."""

    generation: int
    request_id: str
    token: str
    backoff_ms: int = INITIAL_BACKOFF_MS
    terminal: bool = False
    task: Optional[asyncio.Task] = field(default=None, repr=False)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class LiveStreamTracker:
    """Keeps at most one live event-stream session and reconnects it with backoff.

    Sessions are identified by a generation number. Every step of a session's
    task compares its generation with the current session before delivering
    events or scheduling a reconnect, so completions from a replaced or stopped
    session are discarded.
    """

    def __init__(
        self,
        gateway: GuardGateway,
        initial_backoff_ms: int = INITIAL_BACKOFF_MS,
        max_backoff_ms: int = MAX_BACKOFF_MS,
    ):
        self.gateway = gateway
        self.initial_backoff_ms = initial_backoff_ms
        self.max_backoff_ms = max_backoff_ms
        self._session: Optional[StreamSession] = None
        self._generation = 0
        self._listener: Optional[StateListener] = None

    def on_state(self, listener: Optional[StateListener]) -> None:
        """Register the listener for normalized state events, replacing any previous one."""
        self._listener = listener

    @property
    def active(self) -> bool:
        return self._session is not None

    @property
    def current_request_id(self) -> Optional[str]:
        return self._session.request_id if self._session else None

    @property
    def session(self) -> Optional[StreamSession]:
        return self._session

    def start(self, request_id: str, token: str) -> StreamSession:
        """Stop any running session and start following ``request_id``.

        Must be called from a running event loop. Returns immediately; the
        connection runs in a background task.
        """
        self.stop()
        self._generation += 1
        session = StreamSession(
            generation=self._generation,
            request_id=request_id,
            token=token,
            backoff_ms=self.initial_backoff_ms,
        )
        self._session = session
        session.task = asyncio.get_running_loop().create_task(
            self._run(session), name=f"approval-stream-{request_id}"
        )
        return session

    def stop(self) -> None:
        """Cancel the in-flight connection and release the session. Idempotent."""
        session = self._session
        if session is None:
            return
        self._session = None
        task = session.task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        logger.debug(f"Live stream for request {session.request_id} stopped")

    async def aclose(self) -> None:
        """Stop the current session and wait for its task to unwind."""
        session = self._session
        self.stop()
        task = session.task if session is not None else None
        if task is not None and task is not _current_task():
            await asyncio.gather(task, return_exceptions=True)

    async def wait_closed(self) -> None:
        """Wait until the current session's task has finished."""
        session = self._session
        if session is not None and session.task is not None:
            await asyncio.gather(session.task, return_exceptions=True)

    def _is_current(self, session: StreamSession) -> bool:
        return self._session is not None and self._session.generation == session.generation

    async def _run(self, session: StreamSession) -> None:
        try:
            while self._is_current(session) and not session.terminal:
                try:
                    await self._connect(session)
                except GuardTransportError as e:
                    if not self._is_current(session) or session.terminal:
                        return
                    logger.warning(f"Live stream error for request {session.request_id}: {e}")
                else:
                    if not self._is_current(session) or session.terminal:
                        break
                    logger.debug(
                        f"Live stream for request {session.request_id} ended without terminal state"
                    )
                await self._backoff(session)
        finally:
            # A finished task never leaves its session behind as active
            if self._is_current(session):
                if session.terminal:
                    logger.info(
                        f"Live stream for request {session.request_id} reached terminal state"
                    )
                else:
                    logger.warning(f"Live stream for request {session.request_id} ended unexpectedly")
                self.stop()

    async def _connect(self, session: StreamSession) -> None:
        logger.info(f"Live stream connect for request {session.request_id}")
        parser = SSEParser()
        stream = self.gateway.stream(session.token)
        try:
            async for chunk in stream:
                if not self._is_current(session):
                    return
                for block in parser.feed(chunk):
                    self._handle_block(session, block)
                    if not self._is_current(session):
                        return
                if session.terminal:
                    return
        finally:
            await stream.aclose()

    async def _backoff(self, session: StreamSession) -> None:
        delay_ms = session.backoff_ms
        logger.debug(f"Live stream reconnect in {delay_ms}ms (request {session.request_id})")
        session.backoff_ms = min(session.backoff_ms * 2, self.max_backoff_ms)
        await asyncio.sleep(delay_ms / 1000)

    def _handle_block(self, session: StreamSession, block: SSEBlock) -> None:
        if block.event != STATE_EVENT:
            return
        try:
            payload = json.loads(block.data)
        except json.JSONDecodeError as e:
            logger.debug(f"Dropping malformed state event for {session.request_id}: {e}")
            return
        if not isinstance(payload, dict):
            logger.debug(f"Dropping non-object state event for {session.request_id}: {payload!r}")
            return

        try:
            event = StateEvent.from_payload(session.request_id, payload)
        except ValueError as e:
            logger.debug(f"Dropping mistyped state event for {session.request_id}: {e}")
            return
        if event.is_terminal:
            session.terminal = True
        self._emit(event)

    def _emit(self, event: StateEvent) -> None:
        if self._listener is None:
            return
        try:
            self._listener(event)
        except Exception:
            logger.exception(f"State listener failed for request {event.request_id}")
