"""Shared fixtures: an in-memory stand-in for the FlightSuretyApp ledger."""

import asyncio
import random

import pytest

from surety_oracle.ledger import LedgerConnectionError, LedgerEvent, LedgerRejection

FEE = 10**18
AIRLINE = "0x" + "ab" * 20


def address(i: int) -> str:
    return "0x" + f"{i:040x}"


class FakeLedger:
    """Implements the LedgerClient surface against in-memory state.

    Identities in reject_register / fail_register are refused or hit a
    transport error on registration; reject_submit / fail_submit do the
    same for submitOracleResponse. fail_polls makes the next N
    block_number() calls fail.
    """

    def __init__(self, assignments=None, accounts=None, seed=7):
        self.assignments = dict(assignments or {})
        self._accounts = list(accounts if accounts is not None else self.assignments)
        self._rng = random.Random(seed)
        self.registered = []
        self.submissions = []
        self.reject_register = set()
        self.fail_register = set()
        self.reject_submit = set()
        self.fail_submit = set()
        self.fail_polls = 0
        self.events = []
        self.head = 0
        self.log_queries = []

    async def accounts(self):
        return list(self._accounts)

    async def register_oracle(self, identity, fee_wei):
        await asyncio.sleep(0)
        if identity in self.fail_register:
            raise LedgerConnectionError(f"registerOracle({identity}): connection refused")
        if identity in self.reject_register or fee_wei < FEE:
            raise LedgerRejection("Registration fee is required")
        if identity in self.registered:
            raise LedgerRejection("Oracle already registered")
        self.registered.append(identity)
        if identity not in self.assignments:
            self.assignments[identity] = tuple(self._rng.sample(range(10), 3))

    async def get_my_indexes(self, identity):
        if identity not in self.registered:
            raise LedgerRejection("Not registered as an oracle")
        return tuple(self.assignments[identity])

    async def submit_oracle_response(self, identity, index, airline, flight_number, timestamp, status_code):
        await asyncio.sleep(0)
        self.submissions.append((identity, index, airline, flight_number, timestamp, status_code))
        if identity in self.fail_submit:
            raise LedgerConnectionError("socket closed")
        if identity in self.reject_submit:
            raise LedgerRejection("Flight or timestamp do not match oracle request")
        if index not in self.assignments.get(identity, ()):
            raise LedgerRejection("Index does not match oracle request")

    async def block_number(self):
        if self.fail_polls > 0:
            self.fail_polls -= 1
            raise LedgerConnectionError("eth_blockNumber: connection reset")
        return self.head

    async def get_events(self, name, from_block, to_block):
        self.log_queries.append((name, from_block, to_block))
        return [
            ev for ev in self.events
            if ev.name == name and from_block <= ev.block_number <= to_block
        ]

    def emit(self, name, block=None, **args):
        block = self.head + 1 if block is None else block
        self.head = max(self.head, block)
        event = LedgerEvent(
            name=name,
            args=args,
            block_number=block,
            tx_hash=f"0x{len(self.events):064x}",
            log_index=0,
        )
        self.events.append(event)
        return event


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def ledger():
    return FakeLedger()
