"""
Scan Store: durable record of finished aggregate scans.

SQLAlchemy async engine; SQLite (aiosqlite) by default, PostgreSQL
(asyncpg) in production via DATABASE_URL.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Column, DateTime, String, Text, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


class ScanRecord(Base):
    __tablename__ = "scan_results"

    id = Column(String, primary_key=True, default=generate_uuid)
    target = Column(String, nullable=False)
    raw_output = Column(Text, nullable=False, default="")
    metadata_json = Column("metadata", Text, nullable=False, default="{}")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), index=True)

    def to_dict(self, include_output: bool = True) -> dict:
        try:
            metadata = json.loads(self.metadata_json or "{}")
        except json.JSONDecodeError:
            logger.warning(f"Corrupt metadata on scan record {self.id}")
            metadata = {}
        record = {
            "id": self.id,
            "target": self.target,
            "metadata": metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_output:
            record["raw_output"] = self.raw_output
        return record


class ScanStore:
    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.engine = create_async_engine(database_url, echo=echo)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def init(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("✅ Scan store ready")

    async def close(self):
        await self.engine.dispose()

    async def save(self, target: str, raw_output: str, metadata_json: str) -> dict:
        record = ScanRecord(target=target, raw_output=raw_output, metadata_json=metadata_json)
        async with self.session_factory() as session:
            session.add(record)
            await session.commit()
        logger.info(f"Saved scan result {record.id} for {target}")
        return {"id": record.id}

    async def list_history(self, limit: int = 50) -> List[dict]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ScanRecord).order_by(ScanRecord.created_at.desc()).limit(limit)
            )
            return [record.to_dict(include_output=False) for record in result.scalars()]

    async def get_by_id(self, scan_id: str) -> Optional[dict]:
        async with self.session_factory() as session:
            record = await session.get(ScanRecord, scan_id)
            return record.to_dict() if record else None
