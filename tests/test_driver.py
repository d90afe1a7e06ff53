"""
Tests for the session driver.

Tests:
- routing of snapshots and requests
- seqnum enforcement and supersession
- timeout responses (exactly once)
- subscription teardown on every exit path
"""

from __future__ import annotations

import asyncio

import pytest

from duelsync.core.api import Phase, SubmitResult
from duelsync.protocol.errors import (
    NotJoinedError,
    ProtocolError,
    SessionEndedError,
    SubscriptionError,
)
from duelsync.protocol.models import (
    EndTurn,
    GameState,
    NoResponse,
    PayCost,
    PlayCard,
)

from tests.fakes import cost_request, next_event, state_payload, turn_request


class TestPreconditions:
    @pytest.mark.asyncio
    async def test_submit_before_join_raises(self, driver):
        with pytest.raises(NotJoinedError):
            await driver.submit(EndTurn(), seqnum=1)

    @pytest.mark.asyncio
    async def test_enter_before_join_raises(self, driver):
        with pytest.raises(NotJoinedError):
            driver.enter()

    @pytest.mark.asyncio
    async def test_ping_before_join_raises(self, driver):
        with pytest.raises(NotJoinedError):
            await driver.ping()

    @pytest.mark.asyncio
    async def test_ping_after_join(self, driver, transport, session):
        driver.join(session)
        await driver.ping()
        assert transport.pings == 1

    @pytest.mark.asyncio
    async def test_second_subscription_rejected(self, driver, session):
        driver.join(session)
        async with driver.enter():
            with pytest.raises(SubscriptionError):
                driver.enter()
            with pytest.raises(SubscriptionError):
                driver.join(session)


class TestRouting:
    @pytest.mark.asyncio
    async def test_waiting_until_first_snapshot(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            assert driver.phase is Phase.UNINITIALIZED
            assert driver.state is None

            transport.feed(state_payload(roundNumber=1, isMyTurn=True))
            event_type, data = await next_event(game)

            assert event_type == "state"
            assert data == GameState(round_number=1, is_my_turn=True)
            assert driver.state is data
            assert driver.phase is Phase.ACTIVE

    @pytest.mark.asyncio
    async def test_snapshots_replace_state(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed(state_payload(roundNumber=1, selfDeckCount=29, otherHandCount=3))
            transport.feed(state_payload(roundNumber=2))
            await next_event(game)
            await next_event(game)

            assert driver.state == GameState(round_number=2)

    @pytest.mark.asyncio
    async def test_request_starts_countdown(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed(turn_request(3, [10], timeout=20000))
            event_type, data = await next_event(game)

            assert event_type == "request"
            assert driver.pending is data
            assert driver.timer_active
            assert 0 < driver.remaining_ms <= 20000

    @pytest.mark.asyncio
    async def test_unknown_messages_are_skipped(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed({"heartbeat": {}})
            transport.feed(state_payload(roundNumber=1))
            event_type, _ = await next_event(game)
            assert event_type == "state"


class TestSubmit:
    @pytest.mark.asyncio
    async def test_lobby_round_trip(self, driver, transport, session):
        """Join lobby-7, get a turn request, play a card, tracker empties."""
        driver.join(session)
        async with driver.enter() as game:
            transport.feed(state_payload(roundNumber=1, isMyTurn=True))
            transport.feed(turn_request(5, [10, 11], timeout=20000))
            await next_event(game)
            _, request = await next_event(game)

            result = await driver.submit(PlayCard(entity=10), seqnum=5)

            assert result is SubmitResult.SENT
            assert transport.submitted == [(5, PlayCard(entity=10))]
            assert driver.pending is None
            assert not driver.timer_active

            # A replayed seqnum is simply the newest request.
            transport.feed(turn_request(5, [11], timeout=20000))
            _, replay = await next_event(game)
            assert driver.pending is replay
            assert replay is not request
            assert await driver.submit(EndTurn(), seqnum=5) is SubmitResult.SENT
            assert transport.submitted[-1] == (5, EndTurn())

    @pytest.mark.asyncio
    async def test_tracked_seqnum_is_attached(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed(turn_request(5, [10, 11]))
            await next_event(game)

            assert await driver.submit(PlayCard(entity=10)) is SubmitResult.SENT
            assert transport.submitted == [(5, PlayCard(entity=10))]
            assert driver.pending is None

    @pytest.mark.asyncio
    async def test_untagged_answer_goes_to_newest_request(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed(turn_request(1, [10]))
            transport.feed(turn_request(2, [11]))
            await next_event(game)
            await next_event(game)

            assert await driver.submit(PlayCard(entity=10)) is SubmitResult.INVALID
            assert await driver.submit(PlayCard(entity=11)) is SubmitResult.SENT
            assert transport.submitted == [(2, PlayCard(entity=11))]

    @pytest.mark.asyncio
    async def test_untagged_answer_without_request_is_stale(self, driver, transport, session):
        driver.join(session)
        async with driver.enter():
            assert await driver.submit(EndTurn()) is SubmitResult.STALE
            assert transport.submitted == []

    @pytest.mark.asyncio
    async def test_superseded_seqnum_is_dropped(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed(turn_request(1, [10]))
            transport.feed(turn_request(2, [11]))
            await next_event(game)
            _, newest = await next_event(game)

            assert driver.pending is newest
            assert await driver.submit(PlayCard(entity=10), seqnum=1) is SubmitResult.STALE
            assert transport.submitted == []
            assert driver.pending is newest

    @pytest.mark.asyncio
    async def test_submit_without_request_is_stale(self, driver, transport, session):
        driver.join(session)
        async with driver.enter():
            assert await driver.submit(EndTurn(), seqnum=1) is SubmitResult.STALE
            assert transport.submitted == []

    @pytest.mark.asyncio
    async def test_answer_submitted_once(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed(turn_request(4, [10]))
            await next_event(game)

            assert await driver.submit(EndTurn(), seqnum=4) is SubmitResult.SENT
            assert await driver.submit(EndTurn(), seqnum=4) is SubmitResult.STALE
            assert transport.submitted == [(4, EndTurn())]

    @pytest.mark.asyncio
    async def test_cost_must_be_paid_exactly(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed(cost_request(8, 3, [(1, 2), (2, 1)]))
            await next_event(game)

            assert await driver.submit(PayCost(providers=(1,)), seqnum=8) is SubmitResult.INVALID
            assert await driver.submit(PayCost(providers=(1, 2, 99)), seqnum=8) is SubmitResult.INVALID
            assert driver.pending is not None
            assert transport.submitted == []

            assert await driver.submit(PayCost(providers=(1, 2)), seqnum=8) is SubmitResult.SENT
            assert transport.submitted == [(8, PayCost(providers=(1, 2)))]

    @pytest.mark.asyncio
    async def test_payload_must_match_request(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed(turn_request(2, [10, 11]))
            await next_event(game)

            assert await driver.submit(PlayCard(entity=99), seqnum=2) is SubmitResult.INVALID
            assert await driver.submit(PayCost(providers=(1,)), seqnum=2) is SubmitResult.INVALID
            assert transport.submitted == []


class TestTimeout:
    @pytest.mark.asyncio
    async def test_expired_request_gets_one_empty_response(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed(turn_request(7, [10], timeout=50))
            _, request = await next_event(game)

            event_type, data = await next_event(game)
            await asyncio.sleep(0.05)

            assert event_type == "timeout"
            assert data is request
            assert transport.submitted == [(7, NoResponse())]
            assert driver.pending is None
            assert not driver.timer_active

    @pytest.mark.asyncio
    async def test_manual_submit_beats_timeout(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed(turn_request(7, [10], timeout=30))
            await next_event(game)

            assert await driver.submit(EndTurn(), seqnum=7) is SubmitResult.SENT
            await asyncio.sleep(0.1)

            assert transport.submitted == [(7, EndTurn())]

    @pytest.mark.asyncio
    async def test_superseded_request_never_times_out(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed(turn_request(1, [10], timeout=40))
            await next_event(game)
            transport.feed(turn_request(2, [10], timeout=20000))
            await next_event(game)
            await asyncio.sleep(0.1)

            assert transport.submitted == []
            assert driver.pending.seqnum == 2

    @pytest.mark.asyncio
    async def test_default_timeout_when_missing(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed({"requestUserEvent": {"seqnum": 1, "turnAction": {}}})
            _, request = await next_event(game)
            assert request.timeout_ms == driver.default_timeout_ms

    @pytest.mark.asyncio
    async def test_failed_timeout_submission_is_reported(self, driver, transport, session):
        transport.submit_error = ConnectionError("server went away")
        driver.join(session)
        async with driver.enter() as game:
            transport.feed(turn_request(3, [10], timeout=20))
            await next_event(game)

            event_type, data = await next_event(game)

            assert event_type == "error"
            assert "server went away" in data
            assert driver.pending is None


class TestTeardown:
    @pytest.mark.asyncio
    async def test_stream_end_before_finish_ends_session(self, driver, transport, session):
        driver.join(session)
        game = driver.enter()
        transport.feed(state_payload(roundNumber=1))
        transport.end()

        assert (await next_event(game))[0] == "state"
        with pytest.raises(SessionEndedError):
            await next_event(game)
        assert driver.session is None
        assert game.closed

    @pytest.mark.asyncio
    async def test_stream_end_after_finish_is_clean(self, driver, transport, session):
        driver.join(session)
        seen: list[str] = []
        transport.feed(state_payload(roundNumber=1))
        transport.feed(turn_request(1, [10]))
        transport.feed(state_payload(roundNumber=5, gameFinished=True))
        transport.end()

        async with driver.enter() as game:
            async for event_type, _ in game:
                seen.append(event_type)

        assert seen == ["state", "request", "finished"]
        assert driver.phase is Phase.FINISHED
        assert driver.pending is None

    @pytest.mark.asyncio
    async def test_stream_failure_is_chained(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.fail(ConnectionResetError("reset by peer"))
            with pytest.raises(SessionEndedError) as exc_info:
                await next_event(game)

        assert isinstance(exc_info.value.__cause__, ConnectionResetError)

    @pytest.mark.asyncio
    async def test_malformed_message_ends_session(self, driver, transport, session):
        driver.join(session)
        async with driver.enter() as game:
            transport.feed({"requestUserEvent": {"turnAction": {}}})
            with pytest.raises(SessionEndedError) as exc_info:
                await next_event(game)

        assert isinstance(exc_info.value.__cause__, ProtocolError)

    @pytest.mark.asyncio
    async def test_close_cancels_stream_and_countdown(self, driver, transport, session):
        driver.join(session)
        game = driver.enter()
        transport.feed(turn_request(1, [10], timeout=20000))
        await next_event(game)

        await game.close()
        await game.close()

        assert transport.stream_closed
        assert not driver.timer_active
        assert driver.pending is None
        assert driver.session is None
        with pytest.raises(StopAsyncIteration):
            await next_event(game)
        with pytest.raises(NotJoinedError):
            await driver.submit(EndTurn(), seqnum=1)

    @pytest.mark.asyncio
    async def test_scope_error_still_closes(self, driver, transport, session):
        driver.join(session)
        with pytest.raises(RuntimeError, match="boom"):
            async with driver.enter() as game:
                transport.feed(turn_request(1, [10], timeout=20000))
                await next_event(game)
                raise RuntimeError("boom")

        assert driver.session is None
        assert not driver.timer_active
        assert transport.stream_closed

    @pytest.mark.asyncio
    async def test_cancel_during_close_propagates_and_teardown_finishes(
        self, driver, transport, session
    ):
        transport.close_delay = 0.1
        driver.join(session)
        game = driver.enter()
        transport.feed(turn_request(1, [10], timeout=20000))
        await next_event(game)
        resumed: list[str] = []

        async def leave_room() -> None:
            await game.close()
            resumed.append("after close")

        task = asyncio.create_task(leave_room())
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert resumed == []
        assert not transport.stream_closed

        # A later close waits for the same teardown instead of starting another.
        await game.close()
        assert transport.stream_closed
        assert transport.streams_opened == 1
        assert driver.session is None
        assert not driver.timer_active

    @pytest.mark.asyncio
    async def test_cancelled_consumer_closes(self, driver, transport, session):
        driver.join(session)

        async def consume() -> None:
            async with driver.enter() as game:
                async for _ in game:
                    pass

        task = asyncio.create_task(consume())
        transport.feed(turn_request(1, [10], timeout=20000))
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert driver.session is None
        assert not driver.timer_active

    @pytest.mark.asyncio
    async def test_leave_closes_subscription(self, driver, transport, session):
        driver.join(session)
        game = driver.enter()
        await driver.leave()

        assert game.closed
        assert driver.session is None
        assert driver.pending is None
        with pytest.raises(NotJoinedError):
            driver.enter()
