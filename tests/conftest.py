"""Shared fakes and fixtures.

The fake ledger serves synthetic blocks: ``creations`` maps a height to the
contracts deployed in it as ``(address, code, balance_wei)`` tuples. It also
records how many block fetches are in flight at once.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from contract_scanner.errors import LedgerError, LedgerUnavailableError, StoreError
from contract_scanner.ports import (
    DiscoveryRecord,
    LedgerBlock,
    LedgerReceipt,
    LedgerTx,
    StoreStats,
)
from contract_scanner.repositories.discovery_sql import SqlDiscoveryRepository

DEPLOYER = "0x" + "d" * 40
ONE_ETHER = 10 ** 18


def addr(n: int) -> str:
    return f"0x{n:040x}"


def tx_hash(height: int, index: int) -> str:
    return f"0x{height:032x}{index:032x}"


class FakeLedger:
    def __init__(
            self,
            height: int,
            creations: Optional[dict[int, list[tuple[str, bytes, int]]]] = None,
            fail_blocks: Optional[set[int]] = None,
            fail_receipts: Optional[set[str]] = None,
            delay: float = 0.0,
            unavailable: bool = False,
    ) -> None:
        self.height = height
        self.creations = creations or {}
        self.fail_blocks = fail_blocks or set()
        self.fail_receipts = fail_receipts or set()
        self.delay = delay
        self.unavailable = unavailable
        self.fetched: list[int] = []
        self.active = 0
        self.max_active = 0
        self._receipts: dict[str, str] = {}
        self._code: dict[str, bytes] = {}
        self._balances: dict[str, int] = {}

    async def current_height(self) -> int:
        if self.unavailable:
            raise LedgerUnavailableError("Cannot get the current block")
        return self.height

    async def get_block(self, number: int) -> LedgerBlock:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            self.fetched.append(number)
            if number in self.fail_blocks:
                raise LedgerError(f"get_block({number})", ConnectionError("boom"))
            txs = [LedgerTx(hash=tx_hash(number, 0), to=addr(0xFEED), sender=DEPLOYER)]
            for i, (address, code, balance) in enumerate(self.creations.get(number, []), start=1):
                h = tx_hash(number, i)
                self._receipts[h] = address
                self._code[address] = code
                self._balances[address] = balance
                txs.append(LedgerTx(hash=h, to=None, sender=DEPLOYER))
            return LedgerBlock(
                number=number,
                timestamp=datetime.fromtimestamp(1_600_000_000 + number, tz=timezone.utc),
                transactions=txs,
            )
        finally:
            self.active -= 1

    async def get_receipt(self, tx: str) -> LedgerReceipt:
        if tx in self.fail_receipts:
            raise LedgerError(f"receipt({tx})", TimeoutError())
        return LedgerReceipt(tx_hash=tx, contract_address=self._receipts.get(tx), sender=DEPLOYER)

    async def get_code(self, address: str) -> bytes:
        return self._code[address]

    async def get_balance(self, address: str) -> int:
        return self._balances[address]


class FakeStore:
    """In-memory store keyed like the real tables."""

    def __init__(self, fail_on_insert: bool = False, unreachable: bool = False) -> None:
        self.deploys: dict[str, DiscoveryRecord] = {}
        self.bodies: dict[str, str] = {}
        self.inserts = 0
        self.fail_on_insert = fail_on_insert
        self.unreachable = unreachable
        self.closed = False

    async def ping(self) -> None:
        if self.unreachable:
            raise StoreError("Can not connect to the database")

    async def insert_discovery(self, record: DiscoveryRecord) -> None:
        if self.fail_on_insert:
            raise StoreError("disk full")
        self.inserts += 1
        self.deploys.setdefault(record.contract_address, record)
        self.bodies.setdefault(record.code_hash, record.bytecode)

    async def resume_height(self, default: Optional[int] = None) -> Optional[int]:
        if not self.deploys:
            return default
        return max(r.block_number for r in self.deploys.values())

    async def stats(self) -> StoreStats:
        return StoreStats(records=len(self.deploys), code_hashes=len(self.bodies))

    async def aclose(self) -> None:
        self.closed = True


class FakeSink:
    def __init__(self) -> None:
        self.files: dict[str, str] = {}

    async def write(self, address: str, bytecode_hex: str) -> None:
        self.files[address] = bytecode_hex


def make_record(address: str, code: bytes = b"\x60\x00", block_number: int = 1) -> DiscoveryRecord:
    from contract_scanner.services.extractor import code_hash

    return DiscoveryRecord(
        contract_address=address,
        deployer=DEPLOYER,
        bytecode=code.hex(),
        code_hash=code_hash(code),
        creation_time=datetime(2020, 9, 13, tzinfo=timezone.utc),
        tx_hash=tx_hash(block_number, 1),
        block_number=block_number,
    )


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_sink() -> FakeSink:
    return FakeSink()


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def sql_repo(sqlite_engine: AsyncEngine) -> SqlDiscoveryRepository:
    repo = SqlDiscoveryRepository(sqlite_engine, schema=None)
    await repo.init_schema()
    return repo
