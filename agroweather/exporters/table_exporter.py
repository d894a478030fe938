"""Exporter helper for query result tables."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import pandas as pd

logger = logging.getLogger(__name__)


class TableExporter:
    """Save result tables as CSV files under a target directory."""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def save(self, filename: str, table: pd.DataFrame) -> Optional[Path]:
        """
        Write ``table`` to ``base_dir/filename``.

        Returns:
            The written path, or None if the table was empty and nothing was written.
        """
        if not filename:
            raise ValueError("Filename must be provided for table export.")
        if table.empty:
            logger.warning("Skipping %s: no rows to write", filename)
            return None
        target = self.base_dir / filename
        if not target.suffix:
            target = target.with_suffix(".csv")
        target.parent.mkdir(parents=True, exist_ok=True)
        table.to_csv(target, index=False)
        logger.info("Wrote %d rows to %s", len(table), target)
        return target
