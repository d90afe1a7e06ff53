"""Session driver.

This is the single place that owns:
- the event stream subscription (open on enter, cancel on close)
- routing snapshots to the reconciler and requests to the tracker
- the request countdown and its implicit timeout response
- submitting user events tagged with the tracked seqnum

It depends only on the transport port, not on aiohttp.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from duelsync.config import ClientConfig
from duelsync.core.api import Phase, Session, SessionEvent, SubmitResult
from duelsync.core.cost import is_satisfied
from duelsync.core.ports import GameTransportPort
from duelsync.core.reconciler import StateReconciler
from duelsync.core.timer import CountdownTimer
from duelsync.core.tracker import ActionRequestTracker
from duelsync.protocol.errors import NotJoinedError, SessionEndedError, SubscriptionError
from duelsync.protocol.events import InboundMessage, parse_message
from duelsync.protocol.models import (
    CostAction,
    EndTurn,
    GameState,
    NoResponse,
    PayCost,
    PlayCard,
    RequestUserEvent,
    TurnAction,
    UserEvent,
)

log = logging.getLogger("session")

_END = object()


class GameSubscription:
    """Live event stream for one session.

    Use as an async context manager and iterate it for SessionEvents.
    `close()` tears everything down once, whichever way the scope exits.
    """

    def __init__(self, driver: SessionDriver, stream: AsyncIterator[dict]):
        self._driver = driver
        self._events: asyncio.Queue[object] = asyncio.Queue()
        self._error: BaseException | None = None
        self._closed = False
        self._closed_locally = False
        self._teardown_task: asyncio.Future | None = None
        self._pump_task = asyncio.create_task(self._pump(stream))

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: SessionEvent) -> None:
        if not self._closed:
            self._events.put_nowait(event)

    async def _pump(self, stream: AsyncIterator[dict]) -> None:
        try:
            async for payload in stream:
                if not isinstance(payload, dict):
                    continue
                message = parse_message(
                    payload, default_timeout_ms=self._driver.default_timeout_ms
                )
                if message is None:
                    continue
                self._driver.route(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning(f"Event stream failed: {type(e).__name__}: {e}")
            self._error = e
        finally:
            self._driver.stream_closed()
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception as e:
                    log.debug(f"Event stream close raised: {e}")
            self._events.put_nowait(_END)

    def __aiter__(self) -> GameSubscription:
        return self

    async def __anext__(self) -> SessionEvent:
        if self._closed_locally:
            raise StopAsyncIteration

        item = await self._events.get()
        if item is not _END:
            return item  # type: ignore[return-value]

        # Keep the terminal marker so later calls end the same way.
        self._events.put_nowait(_END)
        finished = self._driver.phase is Phase.FINISHED
        await self.close()
        if self._closed_locally and self._error is None:
            raise StopAsyncIteration
        if self._error is not None:
            raise SessionEndedError(f"Event stream failed: {self._error}") from self._error
        if not finished:
            raise SessionEndedError("Event stream ended before the game finished")
        raise StopAsyncIteration

    async def close(self) -> None:
        if self._teardown_task is None:
            self._closed = True
            if not self._pump_task.done():
                self._closed_locally = True
            self._pump_task.cancel()
            self._teardown_task = asyncio.ensure_future(self._teardown())
        # Teardown runs to completion even if the caller is cancelled here;
        # the caller still gets its CancelledError.
        await asyncio.shield(self._teardown_task)

    async def _teardown(self) -> None:
        # asyncio.wait doesn't raise the pump's CancelledError.
        await asyncio.wait({self._pump_task})
        try:
            await self._driver.release(self)
        finally:
            self._events.put_nowait(_END)

    async def __aenter__(self) -> GameSubscription:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class SessionDriver:
    def __init__(
        self,
        transport: GameTransportPort,
        *,
        config: ClientConfig | None = None,
        timer: CountdownTimer | None = None,
    ):
        self._transport = transport
        self._config = config or ClientConfig()
        self.default_timeout_ms = self._config.resolve_default_timeout_ms()

        self._timer = timer or CountdownTimer(interval_s=self._config.resolve_tick_interval_s())
        self._tracker = ActionRequestTracker()
        self._reconciler = StateReconciler()

        self._session: Session | None = None
        self._subscription: GameSubscription | None = None
        self._remaining_ms: float | None = None
        self._background: set[asyncio.Task] = set()

    # -----------------
    # Read-only views
    # -----------------

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def state(self) -> GameState | None:
        return self._reconciler.state

    @property
    def phase(self) -> Phase:
        return self._reconciler.phase

    @property
    def pending(self) -> RequestUserEvent | None:
        return self._tracker.current()

    @property
    def remaining_ms(self) -> float | None:
        return self._remaining_ms

    @property
    def timer_active(self) -> bool:
        return self._timer.active

    # -----------------
    # Session lifecycle
    # -----------------

    def join(self, session: Session) -> None:
        if self._subscription is not None:
            raise SubscriptionError("Leave the current room before joining another")
        self._session = session
        self._reconciler = StateReconciler()
        self._tracker = ActionRequestTracker()
        self._remaining_ms = None
        log.info(f"Session ready for room {session.room_name} ({session.room_id})")

    async def leave(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
        self._session = None

    def enter(self) -> GameSubscription:
        """Open the event stream for the joined room."""
        session = self._session
        if session is None:
            raise NotJoinedError("entering the game")
        if self._subscription is not None:
            raise SubscriptionError(f"Already subscribed to room {session.room_name}")

        log.info(f"Entering game in room {session.room_name}")
        self._subscription = GameSubscription(self, self._transport.stream_events(session))
        return self._subscription

    async def release(self, subscription: GameSubscription) -> None:
        if subscription is not self._subscription:
            return
        await self._timer.wait_stopped()
        self._tracker.clear()
        self._remaining_ms = None

        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

        self._subscription = None
        self._session = None
        log.info("Left game session")

    async def ping(self) -> None:
        if self._session is None:
            raise NotJoinedError("pinging")
        await self._transport.ping(self._session)

    # -----------------
    # Inbound routing
    # -----------------

    def _emit(self, event: SessionEvent) -> None:
        if self._subscription is not None:
            self._subscription.push(event)

    def route(self, message: InboundMessage) -> None:
        if isinstance(message, GameState):
            was_finished = self._reconciler.finished
            self._reconciler.apply(message)
            if self._reconciler.finished and not was_finished:
                self.halt_countdown()
                self._tracker.clear()
                self._emit(("finished", message))
            else:
                self._emit(("state", message))
        elif isinstance(message, RequestUserEvent):
            self._track(message)
            self._emit(("request", message))
        else:
            raise TypeError(f"Unsupported inbound message: {type(message).__name__}")

    def _track(self, request: RequestUserEvent) -> None:
        previous = self._tracker.current()
        if previous is not None:
            log.debug(f"Request {previous.seqnum} superseded by {request.seqnum}")
        generation = self._tracker.set(request)
        self._remaining_ms = float(request.timeout_ms)
        self._timer.start(lambda elapsed_ms: self._on_tick(generation, elapsed_ms))

    def halt_countdown(self) -> None:
        self._timer.stop()
        self._remaining_ms = None

    def stream_closed(self) -> None:
        # Nobody is listening for answers once the stream is gone.
        self.halt_countdown()
        self._tracker.clear()

    # -----------------
    # Countdown
    # -----------------

    def _on_tick(self, generation: int, elapsed_ms: float) -> None:
        if generation != self._tracker.generation or self._remaining_ms is None:
            return

        self._remaining_ms -= elapsed_ms
        if self._remaining_ms > 0:
            return

        self._remaining_ms = 0.0
        self._timer.stop()
        # A manual submit racing this tick has already cleared the tracker.
        request = self._tracker.take(generation=generation)
        if request is None:
            return

        task = asyncio.create_task(self._submit_timeout(request))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _submit_timeout(self, request: RequestUserEvent) -> None:
        session = self._session
        if session is None:
            return
        log.info(f"Request {request.seqnum} timed out after {request.timeout_ms}ms")
        try:
            await self._transport.submit_user_event(session, request.seqnum, NoResponse())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error(f"Failed to submit timeout response for {request.seqnum}: {e}")
            self._emit(("error", f"Timeout response for request {request.seqnum} failed: {e}"))
            return
        self._emit(("timeout", request))

    # -----------------
    # Outbound
    # -----------------

    def accepts(self, request: RequestUserEvent, event: UserEvent) -> bool:
        """Whether `event` is a well-formed answer to `request`."""
        if isinstance(event, NoResponse):
            return True

        action = request.action
        if isinstance(action, TurnAction):
            if isinstance(event, EndTurn):
                return True
            if isinstance(event, PlayCard):
                return event.entity in action.playable_cards
            return False
        if isinstance(action, CostAction):
            if isinstance(event, PayCost):
                return is_satisfied(action.cost, action.providers, event.providers)
            return False
        raise TypeError(f"Unsupported request action: {type(action).__name__}")

    async def submit(self, event: UserEvent, seqnum: int | None = None) -> SubmitResult:
        """Answer the tracked request, tagged with its seqnum.

        Pass `seqnum` to pin the answer to the request it was decided for;
        omit it to answer whatever is tracked now. Stale answers (no tracked
        request, or a newer one arrived) are dropped without touching the
        transport. Answers that don't fit the request leave it tracked so the
        caller can try again.
        """
        session = self._session
        if session is None:
            raise NotJoinedError("submitting a user event")

        request = self._tracker.current()
        if request is None or (seqnum is not None and request.seqnum != seqnum):
            current = request.seqnum if request else None
            log.debug(f"Dropping stale response for {seqnum} (tracking {current})")
            return SubmitResult.STALE

        seqnum = request.seqnum
        if not self.accepts(request, event):
            log.info(f"Rejected {type(event).__name__} for request {seqnum}")
            return SubmitResult.INVALID

        # Clear before awaiting so a countdown tick can't answer it again.
        self._tracker.clear()
        self.halt_countdown()
        await self._transport.submit_user_event(session, seqnum, event)
        return SubmitResult.SENT
