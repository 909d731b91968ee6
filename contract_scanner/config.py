import os
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy.engine import URL


def _opt_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


class AppConfig(BaseModel):
    rpc_url: str = Field(default_factory=lambda: os.getenv("RPC_URL", "http://127.0.0.1:8545"))
    rpc_pool: list[str] = Field(default_factory=lambda: [x for x in os.getenv("RPC_POOL", "").split(",") if x.strip()])

    # DATABASE_URL wins over the individual DB_* settings when set
    database_url: str = Field(default_factory=lambda: os.getenv("DATABASE_URL", "").strip())
    db_host: str = Field(default_factory=lambda: os.getenv("DB_HOST", "localhost"))
    db_port: int = Field(default_factory=lambda: int(os.getenv("DB_PORT", "5432")))
    db_user: str = Field(default_factory=lambda: os.getenv("DB_USER", "postgres"))
    db_password: str = Field(default_factory=lambda: os.getenv("DB_PASSWORD", ""))
    db_name: str = Field(default_factory=lambda: os.getenv("DB_NAME", "contracts"))
    db_schema: str = Field(default_factory=lambda: os.getenv("DB_SCHEMA", "contract"))
    db_pool_size: int = Field(default_factory=lambda: int(os.getenv("DB_POOL_SIZE", "32")))
    db_connect_timeout: float = Field(default_factory=lambda: float(os.getenv("DB_CONNECT_TIMEOUT", "5")))

    start_block: int = Field(default_factory=lambda: int(os.getenv("START_BLOCK", "0")))
    end_block: Optional[int] = Field(default_factory=lambda: _opt_int("END_BLOCK"))
    balance_threshold: Decimal = Field(default_factory=lambda: Decimal(os.getenv("BALANCE_THRESHOLD", "0")))
    concurrency: int = Field(default_factory=lambda: int(os.getenv("CONCURRENCY", "16")))
    print_only: bool = Field(default_factory=lambda: os.getenv("PRINT_ONLY", "false").lower() != "false")
    out_dir: str = Field(default_factory=lambda: os.getenv("OUT_DIR", "contracts"))
    opcode_dir: str = Field(default_factory=lambda: os.getenv("OPCODE_DIR", "output"))
    evm_path: str = Field(default_factory=lambda: os.getenv("EVM_PATH", "evm"))
    disasm_timeout: float = Field(default_factory=lambda: float(os.getenv("DISASM_TIMEOUT", "600")))

    progress_every: int = Field(default_factory=lambda: int(os.getenv("PROGRESS_EVERY", "100000")))
    resume_overlap: int = Field(default_factory=lambda: int(os.getenv("RESUME_OVERLAP", "0")))
    max_runtime: Optional[float] = Field(
        default_factory=lambda: float(os.environ["MAX_RUNTIME"]) if os.getenv("MAX_RUNTIME") else None)
    init_db: bool = Field(default_factory=lambda: os.getenv("INIT_DB", "false").lower() != "false")

    rps: int = Field(default_factory=lambda: int(os.getenv("RPS", "0")))
    max_retries: int = Field(default_factory=lambda: int(os.getenv("MAX_RETRIES", "2")))
    retry_base_delay: float = Field(default_factory=lambda: float(os.getenv("RETRY_BASE_DELAY", "0.25")))
    call_timeout: float = Field(default_factory=lambda: float(os.getenv("CALL_TIMEOUT", "15.0")))
    request_timeout: float = Field(default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "30.0")))

    debug: bool = Field(default_factory=lambda: os.getenv("DEBUG", "false").lower() != "false")
    log_file: Optional[str] = Field(default_factory=lambda: os.getenv("LOG_FILE") or None)

    def sqlalchemy_url(self) -> URL | str:
        if self.database_url:
            return self.database_url
        return URL.create(
            "postgresql+asyncpg",
            username=self.db_user,
            password=self.db_password or None,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        )


def load_env() -> AppConfig:
    from dotenv import load_dotenv
    load_dotenv()
    return AppConfig()
