# surety_oracle/bootstrap.py
"""
Oracle Bootstrapper

Registers each oracle account with FlightSuretyApp, one at a time:
  1. registerOracle() with the registration fee
  2. getMyIndexes() once the registration has been mined
  3. record the assignment in the AccountRegistry

A rejected or failed account is logged and skipped. Bootstrap never
aborts early; the registry ends up holding exactly the accounts the
ledger accepted.
"""

import logging

from surety_oracle.ledger import LedgerError, LedgerRejection
from surety_oracle.registry import (
    AccountRegistry,
    DuplicateRegistration,
    InvalidIndexAssignment,
)

log = logging.getLogger("surety.bootstrap")


def select_oracle_accounts(accounts, offset: int = 10, count: int = 20) -> list:
    """Slice the oracle pool out of the node's account list.

    The first accounts are left to the contract owner, airlines and
    passengers.
    """
    pool = list(accounts[offset:offset + count])
    if len(pool) < count:
        log.warning(
            f"Requested {count} oracle accounts from offset {offset}, "
            f"node only provides {len(pool)}"
        )
    return pool


async def bootstrap(ledger, identities, fee_wei: int, registry=None, max_index: int = 9):
    if registry is None:
        registry = AccountRegistry(max_index=max_index)

    skipped = 0
    for identity in identities:
        if identity in registry:
            log.warning(f"Skipping {identity}: already in registry")
            skipped += 1
            continue

        try:
            await ledger.register_oracle(identity, fee_wei)
        except LedgerRejection as e:
            log.warning(f"Registration rejected for {identity}: {e}")
            skipped += 1
            continue
        except LedgerError as e:
            log.error(f"Registration failed for {identity}: {e}")
            skipped += 1
            continue

        try:
            indexes = await ledger.get_my_indexes(identity)
            registry.register(identity, indexes)
        except LedgerError as e:
            log.error(f"Could not fetch indexes for {identity}: {e}")
            skipped += 1
        except (InvalidIndexAssignment, DuplicateRegistration) as e:
            log.error(f"Discarding {identity}: {e}")
            skipped += 1

    log.info(f"Bootstrap complete: {len(registry)} oracles registered, {skipped} skipped")
    return registry
