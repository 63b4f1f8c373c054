# surety_oracle/ledger.py
"""
Ledger Client: FlightSuretyApp over JSON-RPC

Thin async wrapper around a web3.py contract binding. Every call either
returns plain Python values or raises one of:

  LedgerRejection        the contract reverted (fee too low, already
                         registered, index mismatch, already responded)
  LedgerConnectionError  anything else the transport raised

The ledger is the source of truth; nothing here caches chain state.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, Web3RPCError

log = logging.getLogger("surety.ledger")

DEFAULT_ABI_PATH = Path(__file__).parent / "abi" / "FlightSuretyApp.json"

REGISTER_GAS = 3_000_000
RESPONSE_GAS = 1_000_000
RECEIPT_TIMEOUT = 120

EVENT_STREAMS = ("OracleRequest", "OracleReport", "FlightStatusInfo")


class LedgerError(Exception):
    """Base class for every failure talking to the ledger."""


class LedgerRejection(LedgerError):
    """The contract refused the call."""


class LedgerConnectionError(LedgerError):
    """The RPC endpoint could not be reached or answered with garbage."""


@dataclass
class LedgerEvent:
    name: str
    args: dict
    block_number: int
    tx_hash: str = ""
    log_index: int = 0
    raw: dict = field(default=None, repr=False)

    @property
    def key(self):
        return (self.tx_hash, self.log_index)


def load_abi(path=None) -> list:
    """Load a contract ABI from a bare ABI list or a truffle build artifact."""
    path = Path(path) if path else DEFAULT_ABI_PATH
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data["abi"]
    return data


class LedgerClient:
    def __init__(
        self,
        rpc_url: str,
        app_address: str,
        abi=None,
        register_gas: int = REGISTER_GAS,
        response_gas: int = RESPONSE_GAS,
        receipt_timeout: float = RECEIPT_TIMEOUT,
    ):
        self.rpc_url = rpc_url
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.contract = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(app_address),
            abi=abi if abi is not None else load_abi(),
        )
        self.register_gas = register_gas
        self.response_gas = response_gas
        self.receipt_timeout = receipt_timeout

    async def _guard(self, what: str, coro):
        try:
            return await coro
        except ContractLogicError as e:
            raise LedgerRejection(f"{what}: {e}") from e
        except Web3RPCError as e:
            # ganache reports reverts of eth_sendTransaction as RPC errors
            if "revert" in str(e).lower():
                raise LedgerRejection(f"{what}: {e}") from e
            raise LedgerConnectionError(f"{what}: {e}") from e
        except LedgerError:
            raise
        except Exception as e:
            raise LedgerConnectionError(f"{what}: {e}") from e

    async def _transact(self, what: str, fn, tx: dict):
        async def send():
            tx_hash = await fn.transact(tx)
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
            if receipt["status"] != 1:
                raise LedgerRejection(f"{what}: transaction {Web3.to_hex(tx_hash)} reverted")
            log.debug(f"{what} mined in block {receipt['blockNumber']}")
            return receipt

        return await self._guard(what, send())

    async def accounts(self) -> list:
        return list(await self._guard("eth_accounts", self.w3.eth.accounts))

    async def block_number(self) -> int:
        return int(await self._guard("eth_blockNumber", self.w3.eth.block_number))

    async def register_oracle(self, identity: str, fee_wei: int):
        return await self._transact(
            f"registerOracle({identity})",
            self.contract.functions.registerOracle(),
            {"from": identity, "value": fee_wei, "gas": self.register_gas},
        )

    async def get_my_indexes(self, identity: str) -> tuple:
        result = await self._guard(
            f"getMyIndexes({identity})",
            self.contract.functions.getMyIndexes().call({"from": identity}),
        )
        return tuple(int(i) for i in result)

    async def submit_oracle_response(
        self, identity, index, airline, flight_number, timestamp, status_code
    ):
        fn = self.contract.functions.submitOracleResponse(
            int(index), airline, flight_number, int(timestamp), int(status_code)
        )
        return await self._transact(
            f"submitOracleResponse({identity}, index={index})",
            fn,
            {"from": identity, "gas": self.response_gas},
        )

    async def get_events(self, name: str, from_block: int, to_block: int) -> list:
        event = getattr(self.contract.events, name)
        entries = await self._guard(
            f"getLogs({name}, {from_block}..{to_block})",
            event().get_logs(from_block=from_block, to_block=to_block),
        )
        events = []
        for entry in entries:
            tx_hash = entry.get("transactionHash")
            events.append(LedgerEvent(
                name=entry.get("event", name),
                args=dict(entry["args"]),
                block_number=int(entry["blockNumber"]),
                tx_hash=Web3.to_hex(tx_hash) if isinstance(tx_hash, bytes) else str(tx_hash or ""),
                log_index=int(entry.get("logIndex", 0)),
                raw=dict(entry),
            ))
        return events
