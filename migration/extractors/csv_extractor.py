"""
CSV readers for the locations and users files
"""

import pandas as pd
from typing import List, Dict, Any, Tuple
from pathlib import Path
import logging

from core.exceptions import CSVExtractionError, ResourceNotFoundError
from schemas.user import UserRecord

logger = logging.getLogger(__name__)


class CSVExtractor:
    """
    Read a CSV file as strings.

    Reads are blocking; callers run them on the worker pool.
    """

    def __init__(self, file_path: str):
        self.file_path = Path(file_path).expanduser()

    def _read(self, **kwargs) -> pd.DataFrame:
        if not self.file_path.exists():
            raise ResourceNotFoundError(
                f"CSV file not found: {self.file_path}",
                context={"file_path": str(self.file_path)}
            )

        logger.info(f"Reading CSV from {self.file_path}")
        try:
            df = pd.read_csv(
                self.file_path,
                dtype=str,
                keep_default_na=False,
                skipinitialspace=True,
                **kwargs
            )
        except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as e:
            raise CSVExtractionError(
                f"Unable to parse CSV file {self.file_path.name}",
                context={"file_path": str(self.file_path)},
                original_exception=e
            )
        return df.fillna("")

    def read_rows(self) -> Tuple[List[str], List[List[str]]]:
        """
        Read the raw header and data rows.

        Returns:
            (header cells, data rows) with every cell stripped
        """
        df = self._read(header=None)
        if df.empty:
            raise CSVExtractionError(
                f"CSV file {self.file_path.name} has no header",
                context={"file_path": str(self.file_path)}
            )

        headers = [str(cell).strip() for cell in df.iloc[0].tolist()]
        rows = [[str(cell).strip() for cell in row] for row in df.iloc[1:].values.tolist()]

        logger.info(f"Read {len(rows)} rows from CSV")
        return headers, rows

    def read_records(self) -> List[Dict[str, Any]]:
        """Read rows as dicts keyed by normalized column names"""
        df = self._read()

        # Normalize column names (strip whitespace, lowercase)
        df.columns = df.columns.str.strip().str.lower().str.replace(' ', '_')

        records = df.to_dict(orient="records")
        logger.info(f"Read {len(records)} records from CSV")
        return records

    def read_users(self) -> List[UserRecord]:
        return [UserRecord(**record) for record in self.read_records()]
