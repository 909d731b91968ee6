"""SQLAlchemy tables backing the discovery store.

Tables are declared without a schema; the repository maps them onto the
configured schema (``contract`` by default) with ``schema_translate_map``.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ContractDeployRecordModel(Base):
    """One contract deployment. The bytecode lives in ``hash_to_bytecode``."""

    __tablename__ = "contract_deploy_record"

    contract_address: Mapped[str] = mapped_column(String(42), primary_key=True)
    deployer: Mapped[str | None] = mapped_column(String(42), nullable=True)
    codehash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    creation_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    txhash: Mapped[str] = mapped_column(String(66), nullable=False)
    block_num: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)


class HashToBytecodeModel(Base):
    __tablename__ = "hash_to_bytecode"

    codehash: Mapped[str] = mapped_column(String(64), primary_key=True)
    bytecode: Mapped[str] = mapped_column(Text, nullable=False)
