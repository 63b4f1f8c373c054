# surety_oracle/service.py
"""
Oracle Service

Owns the AccountRegistry for the life of the process and runs the two
phases in order: bootstrap the oracle pool, then listen and dispatch.
The registry is frozen before the listener is armed, so dispatch only
ever reads it.
"""

import asyncio
import logging

from surety_oracle.bootstrap import bootstrap, select_oracle_accounts
from surety_oracle.dispatcher import ResponseDispatcher
from surety_oracle.ledger import LedgerError
from surety_oracle.listener import EventListener
from surety_oracle.registry import AccountRegistry

log = logging.getLogger("surety.service")


class OracleService:
    def __init__(self, settings, ledger, rng=None):
        self.settings = settings
        self.ledger = ledger
        self.registry = AccountRegistry(max_index=settings.max_index)
        self.dispatcher = ResponseDispatcher(ledger, self.registry, rng=rng)
        self.listener = EventListener(
            ledger,
            {
                "OracleRequest": self.dispatcher.handle_request_event,
                "OracleReport": self.dispatcher.handle_report_event,
                "FlightStatusInfo": self.dispatcher.handle_status_info_event,
            },
            from_block=settings.from_block,
            poll_interval=settings.poll_interval,
            backoff_max=settings.backoff_max,
        )
        self.phase = "idle"
        self._listener_task = None
        self._stopping = False

    async def bootstrap(self):
        self.phase = "bootstrapping"
        try:
            accounts = await self.ledger.accounts()
        except LedgerError as e:
            log.error(f"Could not list node accounts, starting with an empty pool: {e}")
            accounts = []
        identities = select_oracle_accounts(
            accounts, self.settings.oracle_offset, self.settings.oracle_count
        )
        await bootstrap(
            self.ledger,
            identities,
            self.settings.registration_fee_wei,
            registry=self.registry,
        )
        self.registry.freeze()

    async def start(self):
        await self.bootstrap()
        self.phase = "listening"
        self._listener_task = asyncio.create_task(self.listener.run())
        self._listener_task.add_done_callback(self._listener_done)
        return self._listener_task

    def _listener_done(self, task):
        if self._stopping:
            return
        self.phase = "failed"
        if task.cancelled():
            log.error("Event listener was cancelled; no longer answering requests")
        elif task.exception() is not None:
            log.error(f"Event listener died; no longer answering requests: {task.exception()!r}")
        else:
            log.error("Event listener exited; no longer answering requests")

    async def stop(self, drain_timeout: float = 10.0):
        self._stopping = True
        self.listener.stop()
        if self._listener_task is not None:
            try:
                await asyncio.wait_for(self._listener_task, timeout=drain_timeout)
            except asyncio.TimeoutError:
                self._listener_task.cancel()
                log.warning("Listener did not stop in time, cancelled")
            except Exception as e:
                log.error(f"Listener ended with an error: {e!r}")
        await self.dispatcher.drain(drain_timeout)
        self.phase = "stopped"

    def health(self) -> dict:
        return {
            "phase": self.phase,
            "oracles": len(self.registry),
            "in_flight": self.dispatcher.in_flight,
            "listener": self.listener.status(),
        }
