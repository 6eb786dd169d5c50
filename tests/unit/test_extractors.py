"""
Unit tests for data extractors
"""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import CSVExtractionError, ResourceNotFoundError, SourceDatabaseError
from migration.extractors.csv_extractor import CSVExtractor
from migration.extractors.source_db import SourceDatabaseReader
from migration.stages import MigrationStage


class TestCSVExtractor:
    """Test CSV extractor functionality"""

    def test_read_rows_strips_cells(self, tmp_path):
        path = tmp_path / "locations.csv"
        path.write_text("Country Id, Country ,Province Id,Province\n, Kenya ,,Nairobi\n")

        headers, rows = CSVExtractor(str(path)).read_rows()

        assert headers == ["Country Id", "Country", "Province Id", "Province"]
        assert rows == [["", "Kenya", "", "Nairobi"]]

    def test_short_rows_filled_with_blanks(self, tmp_path):
        path = tmp_path / "locations.csv"
        path.write_text("Country Id,Country,Province Id,Province\nke,Kenya\n")

        _, rows = CSVExtractor(str(path)).read_rows()

        assert rows == [["ke", "Kenya", "", ""]]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ResourceNotFoundError):
            CSVExtractor(str(tmp_path / "absent.csv")).read_rows()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("")

        with pytest.raises(CSVExtractionError):
            CSVExtractor(str(path)).read_rows()

    def test_read_users(self, users_csv):
        users = CSVExtractor(str(users_csv)).read_users()

        assert [u.username for u in users] == ["alice", "bob", "carol"]
        assert users[1].email is None
        assert users[2].password is None
        assert users[0].location_key == "Kenya/Nairobi"

    def test_column_names_normalized(self, tmp_path):
        path = tmp_path / "users.csv"
        path.write_text("Parent Location,Location,Username,First Name\nKenya,Nairobi,alice,Alice\n")

        records = CSVExtractor(str(path)).read_records()

        assert records == [{
            "parent_location": "Kenya",
            "location": "Nairobi",
            "username": "alice",
            "first_name": "Alice",
        }]


def fake_engine(result=None, error=None):
    """Engine whose connections return ``result`` (or raise ``error``)"""
    conn = AsyncMock()
    if error is not None:
        conn.execute.side_effect = error
    else:
        conn.execute.return_value = result

    engine = MagicMock()
    engine.connect.return_value.__aenter__.return_value = conn
    return engine, conn


class TestSourceDatabaseReader:
    """Test paginated source database reads"""

    @pytest.mark.asyncio
    async def test_count(self):
        result = MagicMock()
        result.scalar.return_value = 7
        engine, _ = fake_engine(result)

        reader = SourceDatabaseReader(engine, MigrationStage.LOCATIONS, "SELECT COUNT(*)", "SELECT 1")

        assert await reader.count() == 7

    @pytest.mark.asyncio
    async def test_fetch_page_parses_json_documents(self):
        result = MagicMock()
        result.all.return_value = [
            (json.dumps({"id": "a", "properties": {"name": "Kenya"}}),),
            ({"id": "b"},),
        ]
        engine, conn = fake_engine(result)

        reader = SourceDatabaseReader(
            engine, MigrationStage.LOCATIONS, "SELECT 1", "SELECT doc LIMIT :limit OFFSET :offset"
        )
        records = await reader.fetch_page(offset=50, limit=50)

        assert records == [{"id": "a", "properties": {"name": "Kenya"}}, {"id": "b"}]
        _, params = conn.execute.call_args.args
        assert params == {"offset": 50, "limit": 50}

    @pytest.mark.asyncio
    async def test_query_failure(self):
        engine, _ = fake_engine(error=SQLAlchemyError("connection refused"))

        reader = SourceDatabaseReader(engine, MigrationStage.ORGANIZATIONS, "SELECT 1", "SELECT 1")

        with pytest.raises(SourceDatabaseError) as exc_info:
            await reader.count()

        assert exc_info.value.context["stage"] == "ORGANIZATIONS"
