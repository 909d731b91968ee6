from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, Optional


@dataclass(frozen=True)
class LedgerTx:
    hash: str
    to: Optional[str]
    sender: Optional[str] = None


@dataclass(frozen=True)
class LedgerBlock:
    number: int
    timestamp: datetime
    transactions: list[LedgerTx] = field(default_factory=list)


@dataclass(frozen=True)
class LedgerReceipt:
    tx_hash: str
    contract_address: Optional[str]
    sender: Optional[str] = None


@dataclass
class DiscoveryRecord:
    contract_address: str
    deployer: Optional[str]
    bytecode: str
    code_hash: str
    creation_time: datetime
    tx_hash: str
    block_number: int


@dataclass(frozen=True)
class StoreStats:
    records: int
    code_hashes: int


class LedgerClient(Protocol):
    async def current_height(self) -> int: ...

    async def get_block(self, number: int) -> LedgerBlock: ...

    async def get_receipt(self, tx_hash: str) -> LedgerReceipt: ...

    async def get_code(self, address: str) -> bytes: ...

    async def get_balance(self, address: str) -> int: ...


class DiscoveryStore(Protocol):
    async def ping(self) -> None: ...

    async def insert_discovery(self, record: DiscoveryRecord) -> None: ...

    async def resume_height(self, default: Optional[int] = None) -> Optional[int]: ...

    async def stats(self) -> StoreStats: ...

    async def aclose(self) -> None: ...


class BytecodeSink(Protocol):
    async def write(self, address: str, bytecode_hex: str) -> None: ...
