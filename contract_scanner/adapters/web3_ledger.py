import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

from contract_scanner.adapters.node_pool import Web3NodePool
from contract_scanner.errors import LedgerError, LedgerUnavailableError
from contract_scanner.ports import LedgerBlock, LedgerClient, LedgerReceipt, LedgerTx
from contract_scanner.utils.rate_limiter import RateLimiter

log = logging.getLogger("web3_ledger")

RETRYABLE = (Web3Exception, ValueError, asyncio.TimeoutError, OSError)


def _hex(value: Any) -> str:
    return AsyncWeb3.to_hex(value)


def _addr(value: Any) -> Optional[str]:
    return AsyncWeb3.to_checksum_address(value) if value else None


class Web3LedgerClient(LedgerClient):
    """Read-only ledger access over JSON-RPC. Code and balances are always read at ``latest``."""

    def __init__(
            self,
            node_pool: Web3NodePool,
            limiter: RateLimiter,
            retries: int,
            base_delay: float,
            call_timeout: float = 15.0,
    ) -> None:
        self._nodes = node_pool
        self._limiter = limiter
        self._retries = max(0, int(retries))
        self._base_delay = float(base_delay)
        self._call_timeout = float(call_timeout)

    async def _retry(self, fn: Callable[[AsyncWeb3], Awaitable[Any]], label: str) -> Any:
        last_exc: BaseException | None = None
        for attempt in range(self._retries + 1):
            await self._limiter.acquire()
            w3 = await self._nodes.next_client()
            try:
                return await asyncio.wait_for(fn(w3), timeout=self._call_timeout)
            except RETRYABLE as e:
                last_exc = e
                if attempt < self._retries:
                    delay = self._base_delay * (2 ** attempt)
                    log.info("retry %s attempt=%d/%d delay=%.2fs err=%r",
                             label, attempt + 1, self._retries, delay, e)
                    await asyncio.sleep(delay)
            except Exception as e:
                last_exc = e
                break
        raise LedgerError(label, last_exc)

    async def current_height(self) -> int:
        try:
            return int(await self._retry(lambda w3: w3.eth.block_number, "block_number"))
        except LedgerError as e:
            raise LedgerUnavailableError(f"Cannot get the current block: {e.cause!r}") from e

    async def get_block(self, number: int) -> LedgerBlock:
        raw = await self._retry(
            lambda w3: w3.eth.get_block(number, full_transactions=True), f"get_block({number})")
        txs = [
            LedgerTx(hash=_hex(tx["hash"]), to=_addr(tx.get("to")), sender=_addr(tx.get("from")))
            for tx in raw.get("transactions", [])
        ]
        return LedgerBlock(
            number=int(raw["number"]),
            timestamp=datetime.fromtimestamp(int(raw["timestamp"]), tz=timezone.utc),
            transactions=txs,
        )

    async def get_receipt(self, tx_hash: str) -> LedgerReceipt:
        raw = await self._retry(lambda w3: w3.eth.get_transaction_receipt(tx_hash), f"receipt({tx_hash})")
        return LedgerReceipt(
            tx_hash=_hex(raw["transactionHash"]),
            contract_address=_addr(raw.get("contractAddress")),
            sender=_addr(raw.get("from")),
        )

    async def get_code(self, address: str) -> bytes:
        code = await self._retry(lambda w3: w3.eth.get_code(address, "latest"), f"get_code({address})")
        return bytes(code)

    async def get_balance(self, address: str) -> int:
        return int(await self._retry(lambda w3: w3.eth.get_balance(address, "latest"), f"get_balance({address})"))
