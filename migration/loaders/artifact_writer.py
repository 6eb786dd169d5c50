"""
Intermediate CSV artifacts for generated entities
"""

import shutil
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List

import pandas as pd

from core.exceptions import ArtifactWriteError

logger = logging.getLogger(__name__)

BlockingRunner = Callable[..., Awaitable[Any]]


class ArtifactWriter:
    """
    Append generated records to ``<directory>/<item>.csv``.

    Each run starts from an empty directory. File work is blocking and is
    handed to ``run_blocking`` (the worker pool).
    """

    def __init__(self, directory: str, run_blocking: BlockingRunner):
        self.directory = Path(directory).expanduser()
        self.run_blocking = run_blocking

    def path_for(self, item: str) -> Path:
        return self.directory / f"{item}.csv"

    async def reset(self):
        await self.run_blocking(self._reset)

    def _reset(self):
        try:
            if self.directory.exists():
                shutil.rmtree(self.directory)
            self.directory.mkdir(parents=True)
        except OSError as e:
            raise ArtifactWriteError(
                f"Unable to prepare data directory {self.directory}",
                context={"file_path": str(self.directory)},
                original_exception=e
            )
        logger.info(f"Artifacts will be written to {self.directory}")

    async def write(self, item: str, rows: List[Dict[str, Any]]) -> Path:
        """Append ``rows`` to the item's CSV, writing the header on first use"""
        return await self.run_blocking(self._write, item, rows)

    def _write(self, item: str, rows: List[Dict[str, Any]]) -> Path:
        path = self.path_for(item)
        if not rows:
            return path
        try:
            pd.DataFrame(rows).to_csv(
                path,
                mode="a",
                header=not path.exists(),
                index=False
            )
        except OSError as e:
            raise ArtifactWriteError(
                f"Unable to write {item} artifact",
                context={"file_path": str(path), "rows": len(rows)},
                original_exception=e
            )
        logger.info(f"Wrote {len(rows)} {item} row(s) to {path.name}")
        return path
