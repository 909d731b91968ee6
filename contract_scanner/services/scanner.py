# services/scanner.py
from __future__ import annotations
import asyncio
import logging
from time import monotonic
from dataclasses import dataclass
from typing import Optional

from contract_scanner.errors import LedgerError, StoreError
from contract_scanner.ports import BytecodeSink, DiscoveryStore, LedgerClient
from contract_scanner.services.extractor import ContractExtractor, Hit

log = logging.getLogger("scanner")


@dataclass(frozen=True)
class ScanRange:
    start: int
    end: int  # exclusive

    def __len__(self) -> int:
        return max(0, self.end - self.start)


@dataclass
class ScanSummary:
    range: ScanRange
    dispatched: int = 0
    failed_blocks: int = 0
    records: int = 0
    hits: int = 0
    cancelled: bool = False


class BlockScannerService:
    """
    Walks [start, end) in increasing height order with at most `concurrency`
    blocks in flight. A slot is held from the block fetch until the last
    store write of that block, so the bound covers RPC and DB work together.
    Blocks complete out of order; the store's unique keys make replays safe.
    """
    PROGRESS_EVERY = 100_000

    def __init__(
            self,
            ledger: LedgerClient,
            store: DiscoveryStore,
            sink: BytecodeSink,
            extractor: ContractExtractor,
            concurrency: int,
            print_only: bool = False,
            progress_every: int = PROGRESS_EVERY,
            resume_overlap: int = 0,
            max_runtime: Optional[float] = None,
            stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        self._ledger = ledger
        self._store = store
        self._sink = sink
        self._extractor = extractor
        self._concurrency = max(1, int(concurrency))
        self._print_only = print_only
        self._progress_every = max(1, int(progress_every))
        self._resume_overlap = max(0, int(resume_overlap))
        self._max_runtime = max_runtime
        self._stop = stop_event or asyncio.Event()

    def request_stop(self) -> None:
        if not self._stop.is_set():
            log.warning("Stop requested: no new blocks will be dispatched")
        self._stop.set()

    async def resolve_range(self, start: int, end: Optional[int]) -> ScanRange:
        current = await self._ledger.current_height()
        log.info("Current block : %d", current)
        if end is None or end > current:
            end = current

        last = await self._store.resume_height()
        if last is not None:
            start = max(0, last + 1 - self._resume_overlap)
            log.info("Resuming after stored block %d (start=%d)", last, start)
        return ScanRange(start=start, end=end)

    async def run(self, start: int, end: Optional[int] = None) -> ScanSummary:
        # both checks are fatal and happen before anything is dispatched
        await self._store.ping()
        scan_range = await self.resolve_range(start, end)
        summary = ScanSummary(range=scan_range)
        total = len(scan_range)
        log.info("Scanning blocks [%d, %d): %d blocks, concurrency=%d, print_only=%s",
                 scan_range.start, scan_range.end, total, self._concurrency, self._print_only)
        if total == 0:
            return summary

        sem = asyncio.Semaphore(self._concurrency)
        tasks: set[asyncio.Task] = set()
        failures: list[BaseException] = []
        start_all = monotonic()
        deadline = start_all + self._max_runtime if self._max_runtime else None

        async def process(height: int) -> None:
            try:
                await self._process_block(height, summary)
            except StoreError as e:
                if not failures:
                    log.error("Fatal error at block %d, draining in-flight blocks: %s", height, e)
                failures.append(e)
                self._stop.set()
            except Exception:
                log.exception("Block %d skipped after an unexpected error", height)
                summary.failed_blocks += 1
            finally:
                sem.release()

        try:
            for height in range(scan_range.start, scan_range.end):
                if height % self._progress_every == 0:
                    await self._report_progress(height, summary, start_all)

                await sem.acquire()
                if deadline is not None and monotonic() >= deadline and not self._stop.is_set():
                    log.warning("Max runtime of %.1fs reached", self._max_runtime)
                    self._stop.set()
                if self._stop.is_set():
                    sem.release()
                    break

                task = asyncio.create_task(process(height), name=f"block-{height}")
                tasks.add(task)
                task.add_done_callback(tasks.discard)
                summary.dispatched += 1
        except BaseException:
            self._stop.set()
            raise
        finally:
            # barrier: every dispatched block finishes before we return or raise
            if tasks:
                await asyncio.gather(*list(tasks), return_exceptions=True)

        if failures:
            raise failures[0]

        summary.cancelled = self._stop.is_set()
        elapsed = monotonic() - start_all
        log.info("Scan %s: %d/%d blocks dispatched, %d failed, %d records, %d hits in %.1fs",
                 "stopped" if summary.cancelled else "finished", summary.dispatched, total,
                 summary.failed_blocks, summary.records, summary.hits, elapsed)
        return summary

    async def _process_block(self, height: int, summary: ScanSummary) -> None:
        try:
            block = await self._ledger.get_block(height)
        except LedgerError as e:
            log.error("Can not get block data for %d: %s", height, e)
            summary.failed_blocks += 1
            return

        result = await self._extractor.extract(block)
        for record in result.records:
            await self._store.insert_discovery(record)
            summary.records += 1
        for hit in result.hits:
            await self._report_hit(hit)
            summary.hits += 1

    async def _report_hit(self, hit: Hit) -> None:
        rec = hit.record
        log.info("Hit: block=%d contract=%s balance=%s", rec.block_number, rec.contract_address, hit.balance)
        log.debug("Bytecode %s: %s", rec.contract_address, rec.bytecode)
        if self._print_only:
            return
        try:
            await self._sink.write(rec.contract_address, rec.bytecode)
        except OSError as e:
            log.error("Failed to write bytecode of %s: %s", rec.contract_address, e)

    async def _report_progress(self, height: int, summary: ScanSummary, start_all: float) -> None:
        stats = await self._store.stats()
        done = height - summary.range.start
        total = len(summary.range)
        elapsed = monotonic() - start_all
        rate = done / max(elapsed, 1e-6)
        eta = (total - done) / max(rate, 1e-6)
        log.info("Current block : %d [%d/%d] elapsed=%.1fs, ETA=%.1fs, rate=%.2f blk/s",
                 height, done, total, elapsed, eta, rate)
        log.info("Current contract count: %d | codehash count: %d", stats.records, stats.code_hashes)
