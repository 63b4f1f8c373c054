# surety_oracle/status.py
"""
Flight status codes understood by FlightSuretyApp.

Oracles answer a status request with one of six codes. Each code is
drawn uniformly by picking a member of the table directly.
"""

import random
from enum import IntEnum


class StatusCode(IntEnum):
    UNKNOWN = 0
    ON_TIME = 10
    LATE_AIRLINE = 20
    LATE_WEATHER = 30
    LATE_TECHNICAL = 40
    LATE_OTHER = 50


STATUS_CODES = tuple(StatusCode)

_rng = random.SystemRandom()


def generate(rng=None) -> StatusCode:
    """Return one status code, each with probability 1/6."""
    return (rng or _rng).choice(STATUS_CODES)


def describe(code) -> str:
    """Readable name for a raw status value, e.g. 20 -> 'LATE_AIRLINE'."""
    try:
        return StatusCode(int(code)).name
    except (TypeError, ValueError):
        return f"UNRECOGNIZED({code})"
