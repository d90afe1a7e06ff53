"""Console front end: log in, join a room and play."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import threading
from typing import IO, Iterable

import aiohttp

from duelsync.agent import autoplay
from duelsync.cards import CardCatalog
from duelsync.config import ClientConfig
from duelsync.core.api import SubmitResult
from duelsync.core.driver import GameSubscription, SessionDriver
from duelsync.protocol.client import GameClient
from duelsync.protocol.errors import DuelSyncError
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
from duelsync.protocol.transport import GameTransport, build_http_timeout
from duelsync.utils import load_env

log = logging.getLogger("cli")

DEBUG_LOG_TAIL = 5
PROMPT_POLL_S = 0.2


def render_state(state: GameState, cards: CardCatalog) -> str:
    def _cards(refs) -> str:
        return ", ".join(cards.describe(c) for c in refs) or "-"

    lines = [
        f"Round:              {state.round_number}",
        f"Current player:     {'you' if state.is_my_turn else 'opponent'}",
        f"Opponent deck:      {state.other_deck_count}",
        f"Opponent hand:      {state.other_hand_count}",
        f"Opponent faith:     {_cards(state.other_faith)}",
        f"Your deck:          {state.self_deck_count}",
        f"Your hand:          {_cards(state.self_hand)}",
        f"Your faith:         {_cards(state.self_faith)}",
    ]
    if state.debug_log:
        lines.append("Log:")
        lines.extend(f"  {entry}" for entry in state.debug_log[-DEBUG_LOG_TAIL:])
    return "\n".join(lines)


def render_request(request: RequestUserEvent) -> str:
    seconds = request.timeout_ms // 1000
    action = request.action
    if isinstance(action, TurnAction):
        playable = ", ".join(str(e) for e in action.playable_cards) or "none"
        return (
            f"[{request.seqnum}] Your move ({seconds}s). Playable: {playable}\n"
            "  enter a card entity to play it, or 'e' to end the turn"
        )
    if isinstance(action, CostAction):
        providers = ", ".join(
            f"{p.entity} (+{p.provided.any})" for p in action.providers
        ) or "none"
        return (
            f"[{request.seqnum}] Pay {action.cost.any} ({seconds}s). Providers: {providers}\n"
            "  enter provider entities separated by spaces, or nothing to decline"
        )
    raise TypeError(f"Unsupported request action: {type(action).__name__}")


def parse_answer(request: RequestUserEvent, text: str) -> UserEvent | None:
    """Turn console input into a user event; None if unreadable."""
    text = text.strip()
    if isinstance(request.action, TurnAction):
        if text.lower() in {"e", "end"}:
            return EndTurn()
        if text.isdigit():
            return PlayCard(entity=int(text))
        return None
    if isinstance(request.action, CostAction):
        if not text:
            return NoResponse()
        parts = text.replace(",", " ").split()
        if not all(p.isdigit() for p in parts):
            return None
        return PayCost(providers=tuple(int(p) for p in parts))
    return None


class ConsoleInput:
    """Reads lines on a daemon thread.

    A prompt left open when its request expires can't hold up shutdown,
    and the loop stays free to notice the expiry while the user types.
    """

    def __init__(self, stream: IO[str] | None = None):
        self._stream = stream if stream is not None else sys.stdin
        self._loop = asyncio.get_running_loop()
        self._lines: asyncio.Queue[str | None] = asyncio.Queue()
        self._thread = threading.Thread(target=self._run, name="console-input", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        for line in self._stream:
            if not self._deliver(line):
                return
        self._deliver(None)

    def _deliver(self, line: str | None) -> bool:
        try:
            self._loop.call_soon_threadsafe(self._lines.put_nowait, line)
        except RuntimeError:
            # Event loop already closed.
            return False
        return True

    def drain(self) -> None:
        """Drop lines typed for a prompt that has gone away."""
        while not self._lines.empty():
            if self._lines.get_nowait() is None:
                self._lines.put_nowait(None)
                return

    async def readline(self) -> str | None:
        """Next line without its newline; None at end of input."""
        line = await self._lines.get()
        if line is None:
            self._lines.put_nowait(None)
            return None
        return line.rstrip("\n")


async def _read_while_pending(
    driver: SessionDriver, request: RequestUserEvent, console: ConsoleInput
) -> str | None:
    read = asyncio.ensure_future(console.readline())
    try:
        while True:
            done, _ = await asyncio.wait({read}, timeout=PROMPT_POLL_S)
            if done:
                return read.result()
            if driver.pending is not request:
                print(f"\n[{request.seqnum}] Request expired before an answer was given.")
                return None
    finally:
        read.cancel()


async def _answer_interactively(
    driver: SessionDriver, request: RequestUserEvent, console: ConsoleInput
) -> bool:
    """Prompt until the request is answered or gone. False at end of input."""
    console.drain()
    print(render_request(request))
    while True:
        print("> ", end="", flush=True)
        text = await _read_while_pending(driver, request, console)
        if text is None:
            return driver.pending is not request
        event = parse_answer(request, text)
        if event is None:
            print("Couldn't read that, try again.")
            continue
        result = await driver.submit(event, seqnum=request.seqnum)
        if result is SubmitResult.INVALID:
            print("That doesn't answer the request, try again.")
            continue
        if result is SubmitResult.STALE:
            print("Too late, that request has expired.")
        return True


async def play_interactively(
    driver: SessionDriver,
    subscription: GameSubscription,
    cards: CardCatalog,
    console: ConsoleInput | None = None,
) -> None:
    console = console or ConsoleInput()
    async for event_type, data in subscription:
        if event_type == "state" and isinstance(data, GameState):
            print(render_state(data, cards))
            print()
        elif event_type == "request" and isinstance(data, RequestUserEvent):
            # Older prompts may already be queued behind newer ones.
            if driver.pending is not data:
                continue
            if not await _answer_interactively(driver, data, console):
                print("End of input, leaving the game.")
                return
        elif event_type == "timeout" and isinstance(data, RequestUserEvent):
            print(f"[{data.seqnum}] Timed out.")
        elif event_type == "finished":
            print("Game over!")
        elif event_type == "error":
            print(f"Error: {data}", file=sys.stderr)


async def run(args: argparse.Namespace) -> int:
    config = ClientConfig(
        server_url=args.server,
        username=args.username,
        room_name=args.room,
    )
    username = config.resolve_username()
    room_name = config.resolve_room_name()
    if not username or not room_name:
        print("A username and a room are required (--username/--room).", file=sys.stderr)
        return 2

    client = GameClient(config)
    async with aiohttp.ClientSession(timeout=build_http_timeout(config)) as http:
        transport = GameTransport(client, http)
        cards = CardCatalog()
        await cards.refresh(transport.get_card_prototypes)

        session = await transport.login_and_join(username, room_name)
        driver = SessionDriver(transport, config=config)
        driver.join(session)
        print(f"You are in room: {session.room_name}")
        print("Waiting for game to start...")

        async with driver.enter() as subscription:
            if args.auto:
                final = await autoplay(driver, subscription)
                if final is not None:
                    print(render_state(final, cards))
            else:
                await play_interactively(driver, subscription, cards)
    return 0


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def _parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Play the card game from a terminal")
    parser.add_argument("--server", default=None, help="Server base URL")
    parser.add_argument("--username", default=None)
    parser.add_argument("--room", default=None, help="Room name to join")
    parser.add_argument("--auto", action="store_true", help="Let the built-in agent play")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    _configure_logging(args.verbose)
    load_env()
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        log.info("Shutting down...")
        return 130
    except DuelSyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
