# surety_oracle/listener.py
"""
Event Listener

Polls the FlightSuretyApp event streams from a starting block (genesis by
default) and hands every event to the handler registered for its stream.

Each stream keeps its own block cursor. When the ledger cannot be reached
the listener backs off exponentially and resumes from the same cursor, so
a window may be delivered more than once. Handlers must tolerate that.
"""

import asyncio
import logging

from surety_oracle.ledger import LedgerError

log = logging.getLogger("surety.listener")

POLL_INTERVAL = 2.0
BACKOFF_INITIAL = 1.0
BACKOFF_MAX = 30.0
MAX_BLOCK_RANGE = 5000


class EventListener:
    def __init__(
        self,
        ledger,
        handlers: dict,
        from_block: int = 0,
        poll_interval: float = POLL_INTERVAL,
        backoff_initial: float = BACKOFF_INITIAL,
        backoff_max: float = BACKOFF_MAX,
        max_block_range: int = MAX_BLOCK_RANGE,
    ):
        self.ledger = ledger
        self.handlers = dict(handlers)
        self.cursors = {name: from_block for name in self.handlers}
        self.poll_interval = poll_interval
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self.max_block_range = max_block_range
        self.reconnects = 0
        self.delivered = 0
        self.last_error = None
        self.running = False
        self._stop = asyncio.Event()

    def stop(self):
        self._stop.set()

    def status(self) -> dict:
        return {
            "running": self.running,
            "cursors": dict(self.cursors),
            "delivered": self.delivered,
            "reconnects": self.reconnects,
            "last_error": self.last_error,
        }

    async def _deliver(self, handler, event):
        try:
            await handler(event)
        except Exception as e:
            log.error(f"Handler for {event.name} failed, dropping event at block {event.block_number}: {e}")
        self.delivered += 1

    async def poll_once(self) -> int:
        """Fetch and deliver every stream up to the current head.

        Returns the number of events delivered. Raises LedgerError if the
        ledger fails; cursors only move past windows fully delivered.
        """
        head = await self.ledger.block_number()
        count = 0
        for name, handler in self.handlers.items():
            while self.cursors[name] <= head:
                start = self.cursors[name]
                end = min(head, start + self.max_block_range - 1)
                events = await self.ledger.get_events(name, start, end)
                events.sort(key=lambda ev: (ev.block_number, ev.log_index))
                for event in events:
                    await self._deliver(handler, event)
                    count += 1
                self.cursors[name] = end + 1
        return count

    async def _sleep(self, seconds: float) -> bool:
        """Sleep unless stopped first. Returns True if stop was requested."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def run(self):
        log.info(f"Listening for {', '.join(self.handlers)} from block {min(self.cursors.values(), default=0)}")
        self.running = True
        backoff = self.backoff_initial
        try:
            while not self._stop.is_set():
                try:
                    await self.poll_once()
                except Exception as e:
                    self.last_error = str(e) or repr(e)
                    self.reconnects += 1
                    if isinstance(e, LedgerError):
                        log.error(f"Event poll failed ({e}); resubscribing in {backoff:.1f}s")
                    else:
                        log.exception(f"Unexpected error while polling events; resubscribing in {backoff:.1f}s")
                    if await self._sleep(backoff):
                        break
                    backoff = min(backoff * 2, self.backoff_max)
                    continue
                backoff = self.backoff_initial
                if await self._sleep(self.poll_interval):
                    break
        finally:
            self.running = False
            log.info("Event listener stopped")
