from __future__ import annotations

import pytest

from contract_scanner import main
from contract_scanner.config import AppConfig
from contract_scanner.errors import DisassemblerError, StoreError
from contract_scanner.services.disassembler import DisasmSummary
from contract_scanner.services.scanner import ScanRange, ScanSummary


@pytest.fixture
def quiet_cli(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(main, "load_env", lambda: AppConfig(rpc_url="http://node:8545"))
    monkeypatch.setattr(main, "setup_logging", lambda debug, to_file=None: None)


def test_scan_store_error_exits_with_one(quiet_cli, monkeypatch: pytest.MonkeyPatch) -> None:
    async def failing_scan(cfg: AppConfig) -> ScanSummary:
        raise StoreError("Can not connect to the database")

    monkeypatch.setattr(main, "run_scan", failing_scan)

    assert main.cli(["scan", "--start", "0"]) == 1


def test_cancelled_scan_exits_with_zero(quiet_cli, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[AppConfig] = []

    async def stopped_scan(cfg: AppConfig) -> ScanSummary:
        seen.append(cfg)
        return ScanSummary(range=ScanRange(0, 10), dispatched=4, cancelled=True)

    monkeypatch.setattr(main, "run_scan", stopped_scan)

    assert main.cli(["scan", "--concurrency", "8"]) == 0
    assert seen[0].concurrency == 8


def test_disasm_error_exits_with_one(quiet_cli, monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_disasm(cfg: AppConfig) -> DisasmSummary:
        raise DisassemblerError("Input directory not found: contracts")

    monkeypatch.setattr(main, "run_disasm", failing_disasm)

    assert main.cli(["disasm"]) == 1


def test_disasm_success_exits_with_zero(quiet_cli, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(main, "run_disasm", lambda cfg: DisasmSummary(processed=2, written=2, failed=0))

    assert main.cli(["disasm", "--in-dir", "contracts"]) == 0
