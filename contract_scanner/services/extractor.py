from __future__ import annotations
import logging
from decimal import Decimal
from dataclasses import dataclass, field

from web3 import Web3

from contract_scanner.errors import LedgerError
from contract_scanner.ports import DiscoveryRecord, LedgerBlock, LedgerClient, LedgerTx
from contract_scanner.utils.units import to_display_unit

log = logging.getLogger("extractor")


@dataclass
class Hit:
    record: DiscoveryRecord
    balance_wei: int
    balance: Decimal


@dataclass
class ExtractionResult:
    block_number: int
    records: list[DiscoveryRecord] = field(default_factory=list)
    hits: list[Hit] = field(default_factory=list)
    skipped: int = 0


def code_hash(code: bytes) -> str:
    return bytes(Web3.keccak(code)).hex()


def is_hit(balance: Decimal, threshold: Decimal) -> bool:
    # threshold <= 0 means "record everything"
    if threshold <= 0:
        return True
    return balance > threshold


class ContractExtractor:
    """
    Turns one fetched block into discovery records. A transaction with no
    recipient is a contract creation; its receipt gives the new address.
    """

    def __init__(self, ledger: LedgerClient, balance_threshold: Decimal) -> None:
        self._ledger = ledger
        self._threshold = Decimal(balance_threshold)

    @staticmethod
    def candidates(block: LedgerBlock) -> list[LedgerTx]:
        return [tx for tx in block.transactions if tx.to is None]

    async def extract(self, block: LedgerBlock) -> ExtractionResult:
        result = ExtractionResult(block_number=block.number)
        for tx in self.candidates(block):
            try:
                found = await self._extract_one(block, tx)
            except LedgerError as e:
                log.warning("block %d tx %s skipped: %s", block.number, tx.hash, e)
                result.skipped += 1
                continue
            if found is None:
                result.skipped += 1
                continue
            record, balance_wei = found
            result.records.append(record)

            balance = to_display_unit(balance_wei)
            if is_hit(balance, self._threshold):
                result.hits.append(Hit(record=record, balance_wei=balance_wei, balance=balance))
        return result

    async def _extract_one(self, block: LedgerBlock, tx: LedgerTx) -> tuple[DiscoveryRecord, int] | None:
        receipt = await self._ledger.get_receipt(tx.hash)
        address = receipt.contract_address
        if not address:
            log.warning("block %d tx %s: receipt has no contract address", block.number, tx.hash)
            return None

        # code and balance are read at latest, not at the creation height
        code = await self._ledger.get_code(address)
        digest = code_hash(code)
        log.debug("Code hash : %s", digest)
        balance_wei = await self._ledger.get_balance(address)

        record = DiscoveryRecord(
            contract_address=address,
            deployer=tx.sender or receipt.sender,
            bytecode=code.hex(),
            code_hash=digest,
            creation_time=block.timestamp,
            tx_hash=tx.hash,
            block_number=block.number,
        )
        return record, balance_wei
