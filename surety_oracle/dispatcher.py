# surety_oracle/dispatcher.py
"""
Response Dispatcher

On every OracleRequest, find the oracles holding the requested index and
submit one status response per oracle. Submissions run concurrently and
independently: a rejection for one oracle never touches the others, and
nothing is retried. Agreement between responses is the contract's job.

A log entry the listener delivers twice is answered once; a second
emission with the same payload is a new request and is answered again.
"""

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from surety_oracle import status
from surety_oracle.ledger import LedgerRejection

log = logging.getLogger("surety.dispatcher")

DEDUPE_WINDOW = 1024


class MalformedEvent(ValueError):
    """An event payload is missing fields or carries the wrong types."""


def _text(value) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).rstrip(b"\x00").decode("utf-8", errors="replace")
    return str(value)


def _info_args(event):
    args = getattr(event, "args", event)
    if not isinstance(args, Mapping):
        log.error(f"Dropping malformed informational event: {event!r}")
        return None
    return args


@dataclass(frozen=True)
class StatusRequest:
    index: int
    airline: str
    flight_number: str
    timestamp: int

    @classmethod
    def from_event(cls, event) -> "StatusRequest":
        args = getattr(event, "args", event)
        try:
            flight = args["flightNumber"] if "flightNumber" in args else args["flight"]
            index = int(args["index"])
            airline = args["airline"]
            timestamp = int(args["timestamp"])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedEvent(f"Bad OracleRequest payload {args!r}: {e}") from e
        if not isinstance(airline, str) or not airline:
            raise MalformedEvent(f"Bad airline in OracleRequest: {airline!r}")
        if index < 0:
            raise MalformedEvent(f"Negative index in OracleRequest: {index}")
        return cls(index=index, airline=airline, flight_number=_text(flight), timestamp=timestamp)


@dataclass
class SubmissionOutcome:
    identity: str
    status: int
    ok: bool
    error: Optional[str] = None


class ResponseDispatcher:
    def __init__(self, ledger, registry, rng=None, dedupe_window: int = DEDUPE_WINDOW):
        self.ledger = ledger
        self.registry = registry
        self.rng = rng
        self.dedupe_window = dedupe_window
        self._handled = OrderedDict()
        self._tasks = set()

    def _seen(self, delivery_key) -> bool:
        """True if this log entry (tx hash, log index) was already handled."""
        if delivery_key in self._handled:
            return True
        self._handled[delivery_key] = True
        while len(self._handled) > self.dedupe_window:
            self._handled.popitem(last=False)
        return False

    async def _submit(self, identity: str, request: StatusRequest) -> SubmissionOutcome:
        code = status.generate(self.rng)
        log.info(f"Oracle {identity} submitting {code.name} ({int(code)}) for {request.flight_number}")
        try:
            await self.ledger.submit_oracle_response(
                identity,
                request.index,
                request.airline,
                request.flight_number,
                request.timestamp,
                int(code),
            )
        except LedgerRejection as e:
            log.warning(f"Response from {identity} rejected: {e}")
            return SubmissionOutcome(identity, int(code), False, str(e))
        except Exception as e:
            log.error(f"Response from {identity} not delivered: {e}")
            return SubmissionOutcome(identity, int(code), False, str(e))
        return SubmissionOutcome(identity, int(code), True)

    async def on_status_request(self, request: StatusRequest) -> list[SubmissionOutcome]:
        oracles = sorted(self.registry.lookup_by_index(request.index))
        if not oracles:
            log.info(f"No oracle holds index {request.index}; nothing to submit")
            return []

        log.info(
            f"OracleRequest index={request.index} flight={request.flight_number} "
            f"-> {len(oracles)} oracles"
        )
        outcomes = await asyncio.gather(
            *(self._submit(identity, request) for identity in oracles)
        )
        accepted = sum(1 for o in outcomes if o.ok)
        log.info(f"Fan-out for {request.flight_number}: {accepted}/{len(outcomes)} accepted")
        return list(outcomes)

    # -------------------------
    # Event stream handlers
    # -------------------------

    async def handle_request_event(self, event):
        try:
            request = StatusRequest.from_event(event)
        except MalformedEvent as e:
            log.error(f"Dropping event: {e}")
            return None
        delivery_key = event.key if getattr(event, "tx_hash", "") else None
        if delivery_key is not None and self._seen(delivery_key):
            log.debug(f"Ignoring redelivered OracleRequest {delivery_key}")
            return None
        return self.schedule(request)

    async def handle_report_event(self, event):
        args = _info_args(event)
        if args is None:
            return
        log.info(
            f"OracleReport received: airline {args.get('airline')} "
            f"flight {_text(args.get('flightNumber', args.get('flight', '')))} "
            f"status {status.describe(args.get('status'))}"
        )

    async def handle_status_info_event(self, event):
        args = _info_args(event)
        if args is None:
            return
        log.info(
            f"FlightStatusInfo received: airline {args.get('airline')} "
            f"flight {_text(args.get('flightNumber', args.get('flight', '')))} "
            f"timestamp {args.get('timestamp')} "
            f"status {status.describe(args.get('status'))}"
        )

    # -------------------------
    # Background fan-outs
    # -------------------------

    def schedule(self, request: StatusRequest) -> asyncio.Task:
        task = asyncio.create_task(self.on_status_request(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 10.0):
        """Wait for in-flight fan-outs, best-effort."""
        if not self._tasks:
            return
        log.info(f"Draining {len(self._tasks)} in-flight fan-outs")
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            log.warning(f"{len(pending)} fan-outs still running after {timeout}s, abandoning")
            for task in pending:
                task.cancel()
