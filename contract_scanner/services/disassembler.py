from __future__ import annotations
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from tqdm import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

from contract_scanner.errors import DisassemblerError

log = logging.getLogger("disassembler")


@dataclass
class DisasmSummary:
    processed: int = 0
    written: int = 0
    failed: int = 0


class BatchDisassembler:
    """Feeds every bytecode side file to `evm disasm` and stores the listing as `<address>_opcode`."""

    def __init__(self, evm_path: str, in_dir: Path, out_dir: Path, timeout: float = 600.0) -> None:
        self.evm_path = evm_path
        self.in_dir = Path(in_dir)
        self.out_dir = Path(out_dir)
        self.timeout = float(timeout)

    def _files(self) -> list[Path]:
        if not self.in_dir.is_dir():
            raise DisassemblerError(f"Can not open dir {self.in_dir}")
        # only address-named files are bytecode side files
        return sorted(p for p in self.in_dir.iterdir() if p.is_file() and p.name.startswith("0x"))

    def disasm(self, path: Path) -> str:
        proc = subprocess.run(
            [self.evm_path, "disasm", str(path.resolve())],
            capture_output=True,
            text=True,
            timeout=self.timeout,
            check=True,
        )
        return proc.stdout

    def run(self) -> DisasmSummary:
        files = self._files()
        self.out_dir.mkdir(parents=True, exist_ok=True)
        summary = DisasmSummary()
        log.info("Disassembling %d files from %s into %s", len(files), self.in_dir, self.out_dir)

        with logging_redirect_tqdm():
            for path in tqdm(files, desc="Disassembling", unit="file"):
                summary.processed += 1
                try:
                    listing = self.disasm(path)
                except subprocess.TimeoutExpired:
                    log.error("Failed to disasm %s: timed out after %.0fs", path.name, self.timeout)
                    summary.failed += 1
                    continue
                except subprocess.CalledProcessError as e:
                    log.error("Failed to disasm %s: exit=%d %s", path.name, e.returncode, (e.stderr or "").strip())
                    summary.failed += 1
                    continue
                except OSError as e:
                    log.error("Failed to disasm %s: %s", path.name, e)
                    summary.failed += 1
                    continue

                try:
                    (self.out_dir / f"{path.name}_opcode").write_text(listing, encoding="utf-8")
                    summary.written += 1
                except OSError as e:
                    log.error("Failed to write disasm of %s: %s", path.name, e)
                    summary.failed += 1

        log.info("Disassembly done: processed=%d written=%d failed=%d",
                 summary.processed, summary.written, summary.failed)
        return summary
