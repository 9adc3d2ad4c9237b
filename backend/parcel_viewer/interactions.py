"""Interaction events and the dispatch loop that feeds the orchestrator.

Every user interaction is an event on a single stream. Click and search
events each start an independent round; nothing cancels or debounces a round
already in flight, so the round that finishes last owns the marker, sidebar
and camera. Scale changes apply the visibility rule as soon as they arrive.
"""
import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Set, Tuple, Union

from .models import Point
from .orchestrator import IntersectionOrchestrator
from .utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Click:
    point: Point


@dataclass(frozen=True)
class SearchSelect:
    point: Point


@dataclass(frozen=True)
class ScaleChanged:
    scale: float


Interaction = Union[Click, SearchSelect, ScaleChanged]

_CLOSED = object()


class InteractionSource:
    def __init__(self):
        self._queue: "asyncio.Queue" = asyncio.Queue()
        self.closed = False

    def emit(self, event: Interaction, reply: Optional[asyncio.Future] = None) -> None:
        if self.closed:
            raise RuntimeError("interaction source is closed")
        self._queue.put_nowait((event, reply))

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(_CLOSED)

    async def events(self) -> AsyncIterator[Tuple[Interaction, Optional[asyncio.Future]]]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


def _settle(reply: Optional[asyncio.Future], task: asyncio.Task) -> None:
    if reply is None or reply.done():
        return
    if task.cancelled():
        reply.cancel()
    elif task.exception() is not None:
        reply.set_exception(task.exception())
    else:
        reply.set_result(task.result())


class Dispatcher:
    def __init__(self, orchestrator: IntersectionOrchestrator, source: InteractionSource):
        self.orchestrator = orchestrator
        self.source = source
        self._rounds: Set[asyncio.Task] = set()

    async def run(self) -> None:
        async for event, reply in self.source.events():
            self.dispatch(event, reply)
        if self._rounds:
            await asyncio.gather(*self._rounds, return_exceptions=True)

    def dispatch(self, event: Interaction, reply: Optional[asyncio.Future] = None) -> None:
        if isinstance(event, ScaleChanged):
            visibility = self.orchestrator.update_layer_visibility(event.scale)
            if reply is not None and not reply.done():
                reply.set_result(visibility)
            return

        if isinstance(event, Click):
            round_coro = self.orchestrator.process_point(event.point, from_search=False)
        elif isinstance(event, SearchSelect):
            round_coro = self.orchestrator.process_point(event.point, from_search=True)
        else:
            raise TypeError(f"Unsupported interaction: {event!r}")

        task = asyncio.create_task(round_coro)
        self._rounds.add(task)
        task.add_done_callback(self._round_finished)
        task.add_done_callback(lambda finished: _settle(reply, finished))

    def _round_finished(self, task: asyncio.Task) -> None:
        self._rounds.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Intersection round failed", exc_info=task.exception())

    async def submit(self, event: Interaction):
        """Emit ``event`` and wait for the outcome of handling it."""
        reply = asyncio.get_running_loop().create_future()
        self.source.emit(event, reply)
        return await reply

    @property
    def in_flight(self) -> int:
        return len(self._rounds)
