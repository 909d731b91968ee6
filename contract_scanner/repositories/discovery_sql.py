import logging
from typing import Optional

from sqlalchemy import func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.schema import CreateSchema

from contract_scanner.errors import StoreError
from contract_scanner.ports import DiscoveryRecord, DiscoveryStore, StoreStats
from contract_scanner.repositories.models import Base, ContractDeployRecordModel, HashToBytecodeModel

log = logging.getLogger("discovery_sql")

STORE_ERRORS = (SQLAlchemyError, OSError)


def create_store_engine(url: URL | str, pool_size: int = 32, connect_timeout: float = 5.0) -> AsyncEngine:
    if make_url(url).get_backend_name() != "postgresql":
        return create_async_engine(url)
    return create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=0,
        pool_recycle=3600,
        pool_pre_ping=True,
        connect_args={"timeout": connect_timeout},
    )


class SqlDiscoveryRepository(DiscoveryStore):
    """
    Deployment facts and content-addressed code bodies. Every write is
    INSERT ... ON CONFLICT DO NOTHING, so replaying a block range is harmless.
    """

    def __init__(self, engine: AsyncEngine, schema: Optional[str] = "contract") -> None:
        self._root = engine
        self._schema = schema or None
        self._engine = engine.execution_options(schema_translate_map={None: self._schema}) if self._schema else engine
        # sqlite_insert serves the aiosqlite store the unit tests run against
        self._insert = pg_insert if engine.dialect.name == "postgresql" else sqlite_insert

    async def ping(self) -> None:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except STORE_ERRORS as e:
            raise StoreError(f"Can not connect to the database: {e}") from e

    async def init_schema(self) -> None:
        try:
            async with self._engine.begin() as conn:
                if self._schema and self._root.dialect.name == "postgresql":
                    await conn.execute(CreateSchema(self._schema, if_not_exists=True))
                await conn.run_sync(Base.metadata.create_all)
        except STORE_ERRORS as e:
            raise StoreError(f"Failed to create the schema: {e}") from e
        log.info("Schema ready (schema=%s)", self._schema or "<default>")

    async def insert_discovery(self, record: DiscoveryRecord) -> None:
        deploy = self._insert(ContractDeployRecordModel).values(
            contract_address=record.contract_address,
            deployer=record.deployer,
            codehash=record.code_hash,
            creation_time=record.creation_time,
            txhash=record.tx_hash,
            block_num=record.block_number,
        ).on_conflict_do_nothing(index_elements=["contract_address"])
        body = self._insert(HashToBytecodeModel).values(
            codehash=record.code_hash,
            bytecode=record.bytecode,
        ).on_conflict_do_nothing(index_elements=["codehash"])

        # two independent transactions: each half is idempotent on its own
        try:
            async with self._engine.connect() as conn:
                await conn.execute(deploy)
                await conn.commit()
                await conn.execute(body)
                await conn.commit()
        except STORE_ERRORS as e:
            raise StoreError(f"Failed to insert contract {record.contract_address}: {e}") from e
        log.info("Inserted a record into the database, contract_address: %s", record.contract_address)

    async def resume_height(self, default: Optional[int] = None) -> Optional[int]:
        try:
            async with self._engine.connect() as conn:
                last = await conn.scalar(select(func.max(ContractDeployRecordModel.block_num)))
        except STORE_ERRORS as e:
            raise StoreError(f"Failed to query the last block number: {e}") from e
        return default if last is None else int(last)

    async def stats(self) -> StoreStats:
        try:
            async with self._engine.connect() as conn:
                records = await conn.scalar(select(func.count()).select_from(ContractDeployRecordModel))
                hashes = await conn.scalar(select(func.count()).select_from(HashToBytecodeModel))
        except STORE_ERRORS as e:
            raise StoreError(f"Failed to query the current statistics: {e}") from e
        return StoreStats(records=int(records or 0), code_hashes=int(hashes or 0))

    async def aclose(self) -> None:
        await self._root.dispose()
        log.info("Closed the connection pool to the database")
