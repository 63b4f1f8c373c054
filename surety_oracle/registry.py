# surety_oracle/registry.py
"""
Account Registry

In-memory map of oracle account -> the three indices the ledger assigned
to it. Filled once during bootstrap, then frozen and only read.
"""

import logging

log = logging.getLogger("surety.registry")

INDEXES_PER_ORACLE = 3


class DuplicateRegistration(Exception):
    """The account already has an entry in the registry."""


class RegistryFrozen(Exception):
    """The bootstrap phase is over; the registry no longer accepts entries."""


class InvalidIndexAssignment(ValueError):
    """The ledger returned something other than three in-range indices."""


def normalize_indexes(raw, max_index: int = 9) -> tuple:
    """Coerce a ledger index result into a tuple of exactly three ints."""
    try:
        indexes = tuple(int(i) for i in raw)
    except (TypeError, ValueError) as e:
        raise InvalidIndexAssignment(f"Unreadable index set {raw!r}: {e}") from e
    if len(indexes) != INDEXES_PER_ORACLE:
        raise InvalidIndexAssignment(
            f"Expected {INDEXES_PER_ORACLE} indexes, got {len(indexes)}: {indexes}"
        )
    for i in indexes:
        if not 0 <= i <= max_index:
            raise InvalidIndexAssignment(f"Index {i} outside 0..{max_index}")
    return indexes


class AccountRegistry:
    def __init__(self, max_index: int = 9):
        self.max_index = max_index
        self._entries: dict[str, tuple] = {}
        self._frozen = False

    def register(self, identity: str, indexes) -> tuple:
        if self._frozen:
            raise RegistryFrozen(f"Cannot register {identity}: registry is frozen")
        if identity in self._entries:
            raise DuplicateRegistration(f"Oracle already registered: {identity}")
        assignment = normalize_indexes(indexes, self.max_index)
        self._entries[identity] = assignment
        log.info(f"Registered oracle {identity} with indexes {list(assignment)}")
        return assignment

    def lookup_by_index(self, target_index: int) -> set:
        """Every account whose assignment contains target_index. Empty if none."""
        target = int(target_index)
        return {
            identity
            for identity, indexes in self._entries.items()
            if target in indexes
        }

    def indexes_for(self, identity: str):
        return self._entries.get(identity)

    def freeze(self):
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def snapshot(self) -> dict:
        return {identity: list(indexes) for identity, indexes in self._entries.items()}

    def __len__(self):
        return len(self._entries)

    def __contains__(self, identity):
        return identity in self._entries

    def __iter__(self):
        return iter(self._entries)
