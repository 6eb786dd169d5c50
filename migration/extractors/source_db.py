"""
Paginated reads from the source system database
"""

import json
import logging
from typing import Any, Dict, List

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from core.exceptions import SourceDatabaseError
from migration.stages import MigrationStage

logger = logging.getLogger(__name__)


class SourceDatabaseReader:
    """
    Count and page through one data item in the source database.

    The page query is expected to return one JSON document per row in its
    first column (text or native JSON). Rows with several columns are
    returned as plain mappings.
    """

    def __init__(self, engine: AsyncEngine, stage: MigrationStage, count_query: str, page_query: str):
        self.engine = engine
        self.stage = stage
        self.count_query = count_query
        self.page_query = page_query

    async def count(self) -> int:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text(self.count_query))
                count = int(result.scalar() or 0)
        except SQLAlchemyError as e:
            raise SourceDatabaseError(
                f"Count query failed for {self.stage.label}",
                context={"stage": self.stage.value},
                original_exception=e
            )

        logger.info(f"Found {count} source {self.stage.label} records")
        return count

    async def fetch_page(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    text(self.page_query), {"offset": offset, "limit": limit}
                )
                rows = result.all()
        except SQLAlchemyError as e:
            raise SourceDatabaseError(
                f"Page query failed for {self.stage.label}",
                context={"stage": self.stage.value, "offset": offset, "limit": limit},
                original_exception=e
            )

        records = [self._to_record(row) for row in rows]
        if records:
            logger.info(f"Read {len(records)} {self.stage.label} records at offset {offset}")
        else:
            logger.info(f"No source {self.stage.label} records at offset {offset}")
        return records

    @staticmethod
    def _to_record(row) -> Dict[str, Any]:
        if len(row) == 1:
            value = row[0]
            if isinstance(value, (bytes, str)):
                return json.loads(value)
            if isinstance(value, dict):
                return value
        return dict(row._mapping)
