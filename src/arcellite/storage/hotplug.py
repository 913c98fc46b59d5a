"""Hot-plug notifications for removable devices.

One poller is shared by every subscriber. It starts with the first
subscription and is cancelled when the last subscriber goes away. Each
subscriber owns an asyncio.Queue that the poller pushes events into.
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence, Set, Tuple

from arcellite.config.settings import config
from arcellite.storage.devices import get_removable_devices
from arcellite.storage.models import Device

logger = logging.getLogger(__name__)

KEEPALIVE_FRAME = ":\n\n"

Snapshot = Tuple[str, ...]


def snapshot_of(devices: Sequence[Device]) -> Snapshot:
    return tuple(sorted(d.name for d in devices))


def diff_devices(previous: Snapshot, current: Sequence[Device]) -> Optional[dict]:
    """
    Builds a `change` event, or returns None when the set of device names did
    not change between two polls.
    """
    previous_names = set(previous)
    current_names = {d.name for d in current}
    if previous_names == current_names:
        return None

    return {
        "type": "change",
        "added": [d.summary() for d in current if d.name not in previous_names],
        "removed": sorted(previous_names - current_names),
        "devices": [d.model_dump(by_alias=True, mode="json") for d in current],
    }


def format_event(event: dict) -> str:
    return f"data: {json.dumps(event)}\n\n"


class HotplugNotifier:
    def __init__(
        self,
        enumerate_devices: Callable[[], List[Device]] = get_removable_devices,
        poll_interval: Optional[float] = None,
        keepalive_interval: Optional[float] = None,
    ):
        self._enumerate = enumerate_devices
        self.poll_interval = poll_interval or config.poll_interval
        self.keepalive_interval = keepalive_interval or config.keepalive_interval

        self._subscribers: Set[asyncio.Queue] = set()
        # Created on first use, inside the loop that serves the subscribers
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self._poller: Optional[asyncio.Task] = None
        self._devices: List[Device] = []
        self._snapshot: Snapshot = ()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def running(self) -> bool:
        return self._poller is not None and not self._poller.done()

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def _get_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def _read_devices(self) -> List[Device]:
        return await asyncio.to_thread(self._enumerate)

    async def subscribe(self) -> Tuple[asyncio.Queue, dict]:
        """Registers a subscriber. Returns its queue and the `init` event."""
        queue: asyncio.Queue = asyncio.Queue()
        async with self._get_lock():
            if not self.running:
                try:
                    devices = await self._read_devices()
                except Exception as e:
                    logger.error(f"Initial device enumeration failed: {e}")
                    devices = []
                self._devices = devices
                self._snapshot = snapshot_of(devices)
                self._poller = asyncio.create_task(self._poll_loop())
                logger.info("Started hot-plug poller")
            self._subscribers.add(queue)
            devices = self._devices

        init = {
            "type": "init",
            "devices": [d.model_dump(by_alias=True, mode="json") for d in devices],
        }
        return queue, init

    async def unsubscribe(self, queue: asyncio.Queue):
        poller = None
        async with self._get_lock():
            self._subscribers.discard(queue)
            if not self._subscribers and self._poller is not None:
                poller, self._poller = self._poller, None

        if poller is not None:
            poller.cancel()
            try:
                await poller
            except asyncio.CancelledError:
                pass
            logger.info("Stopped hot-plug poller")

    async def poll_once(self) -> Optional[dict]:
        """Runs one poll, broadcasting and returning the change event if any."""
        devices = await self._read_devices()
        event = diff_devices(self._snapshot, devices)
        self._devices = devices
        if event is None:
            return None

        self._snapshot = snapshot_of(devices)
        logger.info(f"Devices changed: +{[d['name'] for d in event['added']]} -{event['removed']}")
        for queue in list(self._subscribers):
            queue.put_nowait(event)
        return event

    async def _poll_loop(self):
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Device poll failed: {e}")

    async def stream(self) -> AsyncIterator[str]:
        """
        Server-Sent Events for one client. The subscription is released in
        `finally`, so a disconnect (generator close) or an error always
        unsubscribes.
        """
        queue, init = await self.subscribe()
        try:
            yield KEEPALIVE_FRAME
            yield format_event(init)
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=self.keepalive_interval)
                except asyncio.TimeoutError:
                    yield KEEPALIVE_FRAME
                    continue
                yield format_event(event)
        finally:
            await self.unsubscribe(queue)
