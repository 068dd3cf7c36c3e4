"""Append-only JSON-lines dataset of crawled records, one file per site."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Iterable, Optional

from catalog_crawler.config import settings
from catalog_crawler.extract.records import StoredRecord, record_from_json

logger = logging.getLogger(__name__)


class DatasetStore:
    """Records for one site in ``<dataset_dir>/<site>.jsonl``."""

    def __init__(self, site: str, base_path: Optional[str] = None):
        self.site = site
        self.path = Path(base_path or settings.dataset_dir) / f"{site}.jsonl"
        self._lock = asyncio.Lock()

    async def append(self, records: Iterable[StoredRecord]) -> int:
        """Append records; returns how many were written."""
        lines = [json.dumps(r.to_json_dict(), ensure_ascii=False) for r in records]
        if not lines:
            return 0
        async with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
        return len(lines)

    def read_all(self) -> list[StoredRecord]:
        """All records in write order; malformed lines are skipped."""
        if not self.path.exists():
            return []
        records = []
        with open(self.path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(record_from_json(json.loads(line)))
                except ValueError as e:
                    logger.warning(f"Skipping malformed record {self.path}:{line_no}: {e}")
        return records

    def clear(self):
        if self.path.exists():
            self.path.unlink()
            logger.info(f"Cleared dataset {self.path}")
