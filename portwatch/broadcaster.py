# portwatch/broadcaster.py
"""
Observer registry and scan scheduler.

Every new observer gets a fresh snapshot straight away. While at least one
observer is connected a scan runs on every interval tick and the snapshot is
pushed to all of them; with no observers the tick does nothing.
"""
import asyncio
import json
import logging
from typing import Optional, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from .models import ScanSnapshot
from .scan_core import Scanner

logger = logging.getLogger(__name__)


def encode_snapshot(snapshot: ScanSnapshot) -> str:
    return json.dumps([record.model_dump() for record in snapshot])


class ObserverConnection:
    """A connected push channel."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, payload: str) -> None:
        await self.websocket.send_text(payload)


class Broadcaster:
    def __init__(self, scanner: Scanner, interval: float = 3.0, send_timeout: float = 5.0) -> None:
        self.scanner = scanner
        self.interval = interval
        self.send_timeout = send_timeout
        self._observers: Set[ObserverConnection] = set()
        self._task: Optional[asyncio.Task] = None

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def subscribe(self, observer: ObserverConnection) -> None:
        self._observers.add(observer)
        logger.info("Observer connected (%d active)", self.observer_count)
        snapshot = await self.scanner.run_scan()
        await self._push(observer, encode_snapshot(snapshot))

    def unsubscribe(self, observer: ObserverConnection) -> None:
        if observer in self._observers:
            self._observers.discard(observer)
            logger.info("Observer disconnected (%d active)", self.observer_count)

    async def tick(self) -> bool:
        """Run one scan and push it to every observer. Returns False when skipped."""
        if not self._observers:
            return False
        snapshot = await self.scanner.run_scan()
        payload = encode_snapshot(snapshot)
        # observers may come and go while we send
        await asyncio.gather(*(self._push(o, payload) for o in list(self._observers)))
        return True

    async def _push(self, observer: ObserverConnection, payload: str) -> None:
        if observer not in self._observers:
            return
        if not observer.is_open:
            self.unsubscribe(observer)
            return
        try:
            await asyncio.wait_for(observer.send(payload), timeout=self.send_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Dropping observer after failed push: %r", e)
            self.unsubscribe(observer)

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Periodic scan failed")
            next_tick += self.interval
            now = loop.time()
            if next_tick < now:
                # a long scan swallowed some ticks, resume on the schedule
                missed = int((now - next_tick) // self.interval) + 1
                next_tick += missed * self.interval

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._observers.clear()
