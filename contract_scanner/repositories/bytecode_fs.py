from pathlib import Path

from contract_scanner.ports import BytecodeSink


class FileBytecodeSink(BytecodeSink):
    """Writes one file per contract, named by address, holding the hex bytecode (disassembler input)."""

    def __init__(self, out_dir: Path) -> None:
        self.out_dir = Path(out_dir)
        self.out_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, address: str) -> Path:
        return self.out_dir / address

    async def write(self, address: str, bytecode_hex: str) -> None:
        self.path_for(address).write_text(bytecode_hex, encoding="utf-8")
