import asyncio
import argparse
import logging
import signal
import sys
from decimal import Decimal
from pathlib import Path
from typing import Optional

from contract_scanner.config import AppConfig, load_env
from contract_scanner.core.log import setup_logging
from contract_scanner.errors import ScannerError
from contract_scanner.adapters.node_pool import Web3NodePool
from contract_scanner.adapters.web3_ledger import Web3LedgerClient
from contract_scanner.repositories.bytecode_fs import FileBytecodeSink
from contract_scanner.repositories.discovery_sql import SqlDiscoveryRepository, create_store_engine
from contract_scanner.services.disassembler import BatchDisassembler, DisasmSummary
from contract_scanner.services.extractor import ContractExtractor
from contract_scanner.services.scanner import BlockScannerService, ScanSummary
from contract_scanner.utils.rate_limiter import RateLimiter

log = logging.getLogger("main")


async def run_scan(cfg: AppConfig) -> ScanSummary:
    urls = [cfg.rpc_url] + list(cfg.rpc_pool or [])
    node_pool = Web3NodePool(urls, request_timeout=cfg.request_timeout)
    ledger = Web3LedgerClient(
        node_pool=node_pool,
        limiter=RateLimiter(cfg.rps),
        retries=cfg.max_retries,
        base_delay=cfg.retry_base_delay,
        call_timeout=cfg.call_timeout,
    )
    engine = create_store_engine(cfg.sqlalchemy_url(), pool_size=cfg.db_pool_size,
                                 connect_timeout=cfg.db_connect_timeout)
    store = SqlDiscoveryRepository(engine, schema=cfg.db_schema)

    service = BlockScannerService(
        ledger=ledger,
        store=store,
        sink=FileBytecodeSink(Path(cfg.out_dir)),
        extractor=ContractExtractor(ledger, cfg.balance_threshold),
        concurrency=cfg.concurrency,
        print_only=cfg.print_only,
        progress_every=cfg.progress_every,
        resume_overlap=cfg.resume_overlap,
        max_runtime=cfg.max_runtime,
    )

    # graceful stop: finish in-flight blocks, the next run resumes from the store
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, service.request_stop)
        except NotImplementedError:
            pass

    try:
        if cfg.init_db:
            await store.init_schema()
        return await service.run(cfg.start_block, cfg.end_block)
    finally:
        await store.aclose()
        await node_pool.aclose()


def run_disasm(cfg: AppConfig) -> DisasmSummary:
    return BatchDisassembler(
        evm_path=cfg.evm_path,
        in_dir=Path(cfg.out_dir),
        out_dir=Path(cfg.opcode_dir),
        timeout=cfg.disasm_timeout,
    ).run()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="contract-scanner",
                                description="Find contract deployments in a block range and record them")
    p.add_argument("--debug", action="store_true", default=None)
    p.add_argument("--log-file")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("scan", help="scan blocks for contract creations")
    s.add_argument("--rpc", dest="rpc_url")
    s.add_argument("--rpc-pool", help="comma separated extra RPC URLs")
    s.add_argument("--database-url")
    s.add_argument("--schema", dest="db_schema")
    s.add_argument("--start", dest="start_block", type=int, help="used only when the store is empty")
    s.add_argument("--end", dest="end_block", type=int, help="exclusive, clamped to the current block")
    s.add_argument("--balance", dest="balance_threshold", type=Decimal,
                   help="report contracts holding more than this many ether; <= 0 reports all")
    s.add_argument("--concurrency", type=int)
    s.add_argument("--print-only", action="store_true", default=None)
    s.add_argument("--out-dir")
    s.add_argument("--progress-every", type=int)
    s.add_argument("--resume-overlap", type=int)
    s.add_argument("--max-runtime", type=float, help="stop dispatching after this many seconds")
    s.add_argument("--rps", type=int)
    s.add_argument("--init-db", action="store_true", default=None)

    d = sub.add_parser("disasm", help="disassemble written bytecode files with `evm disasm`")
    d.add_argument("--evm", dest="evm_path")
    d.add_argument("--in-dir", dest="out_dir")
    d.add_argument("--out-dir", dest="opcode_dir")
    d.add_argument("--timeout", dest="disasm_timeout", type=float)
    return p


def parse_args(argv: Optional[list[str]] = None, base: Optional[AppConfig] = None) -> tuple[str, AppConfig]:
    a = build_parser().parse_args(argv)
    cfg = base or load_env()
    update = {k: v for k, v in vars(a).items() if k != "command" and v is not None}
    if "rpc_pool" in update:
        update["rpc_pool"] = [x for x in update["rpc_pool"].split(",") if x.strip()]
    return a.command, cfg.model_copy(update=update)


def cli(argv: Optional[list[str]] = None) -> int:
    command, cfg = parse_args(argv)
    setup_logging(cfg.debug, cfg.log_file)
    try:
        if command == "disasm":
            run_disasm(cfg)
        else:
            asyncio.run(run_scan(cfg))
    except ScannerError as e:
        log.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(cli())
