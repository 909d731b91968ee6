class ScannerError(Exception):
    """Base class for every error the scanner raises on purpose."""


class LedgerUnavailableError(ScannerError):
    """The RPC endpoint cannot be reached or cannot report its current height."""


class LedgerError(ScannerError):
    """A single RPC call failed after all retries. Recoverable: the unit is skipped."""

    def __init__(self, label: str, cause: BaseException | None = None) -> None:
        self.label = label
        self.cause = cause
        super().__init__(f"{label} failed: {cause!r}" if cause is not None else f"{label} failed")


class StoreError(ScannerError):
    """Any failure talking to the durable store. Fatal: the scan must stop."""


class DisassemblerError(ScannerError):
    pass
