"""
Drop folder watcher for JSON exports written by desktop automation flows.

Two file formats are accepted:
1. Wrapped: {"source": "calendar", "tasks": [...]}
2. Raw array: [{...}, ...], source inferred from the file name ("calendar.json")

Processed files are deleted so the flow can write them again. Files are
only re-read when their modification time changes.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime
from core.exceptions import ConfigurationError, NormalizationError
from ingestion.aggregator import SyncResult, TaskAggregator
from models.base import TaskSource
import logging

logger = logging.getLogger(__name__)

DROP_SOURCES = {TaskSource.PLANNER, TaskSource.TODO, TaskSource.CALENDAR, TaskSource.EMAIL}

# Common misspellings seen in flow-generated file names
SOURCE_ALIASES = {"calender": "calendar"}


def parse_drop_file(path: Path) -> Tuple[TaskSource, List[Any]]:
    """
    Read one drop file.

    Raises:
        NormalizationError: if the file is not valid JSON or names an unsupported source
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise NormalizationError(
            "Drop file is not valid JSON",
            context={"file": path.name},
            original_exception=e
        )

    if isinstance(data, list):
        source_name = path.stem.lower()
        items = data
    elif isinstance(data, dict):
        source_name = str(data.get("source") or "").lower()
        items = data.get("tasks")
    else:
        raise NormalizationError("Unsupported drop file layout", context={"file": path.name})

    source_name = SOURCE_ALIASES.get(source_name, source_name)
    try:
        source = TaskSource(source_name)
    except ValueError:
        source = None
    if source not in DROP_SOURCES:
        raise NormalizationError(
            f"Invalid source \"{source_name}\"",
            context={"file": path.name}
        )

    if not isinstance(items, list):
        raise NormalizationError('"tasks" is not an array', context={"file": path.name})

    return source, items


class DropFolderWatcher:
    """
    Poll a folder and push every new drop file through TaskAggregator.ingest.

    Attributes:
        last_scan_at: When the folder was last scanned
        last_ingest_at / last_ingest_file / last_ingest_source: Most recent ingest
        last_error: Most recent failure message, cleared by a successful ingest
    """

    def __init__(self, folder: str, aggregator: TaskAggregator):
        self.folder = Path(folder)
        self.aggregator = aggregator
        self._mtimes: Dict[str, float] = {}

        self.last_scan_at: Optional[datetime] = None
        self.last_ingest_at: Optional[datetime] = None
        self.last_ingest_file: Optional[str] = None
        self.last_ingest_source: Optional[str] = None
        self.last_error: Optional[str] = None

    def ensure_folder(self) -> bool:
        try:
            self.folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.last_error = f"Cannot create watch folder: {self.folder}"
            logger.warning(f"{self.last_error}: {e}")
            return False
        return True

    async def scan(self) -> List[SyncResult]:
        """Process every changed *.json file in the folder"""
        self.last_scan_at = datetime.utcnow()
        if not self.folder.is_dir():
            return []

        results = []
        for path in sorted(self.folder.glob("*.json")):
            try:
                mtime = path.stat().st_mtime
            except OSError as e:
                logger.warning(f"Drop folder: cannot stat {path.name}: {e}")
                continue

            if self._mtimes.get(path.name) == mtime:
                continue
            self._mtimes[path.name] = mtime

            result = await self.process_file(path)
            if result is not None:
                results.append(result)

        return results

    async def process_file(self, path: Path) -> Optional[SyncResult]:
        try:
            source, items = parse_drop_file(path)
            result = await self.aggregator.ingest(source, items)
        except (NormalizationError, ConfigurationError) as e:
            self.last_error = e.message
            logger.warning(f"Drop folder: {path.name}: {e.message}")
            return None

        if result.skipped:
            logger.info(f"Drop folder: {path.name} skipped ({result.reason})")
            return result
        if result.error:
            self.last_error = result.error
            return result

        self.last_ingest_at = datetime.utcnow()
        self.last_ingest_file = path.name
        self.last_ingest_source = source.value
        self.last_error = None

        try:
            path.unlink()
            self._mtimes.pop(path.name, None)
            logger.info(f"Drop folder: {path.name} deleted after processing")
        except OSError:
            logger.warning(f"Drop folder: could not delete {path.name} (may be locked)")

        return result

    def status(self) -> Dict[str, Any]:
        return {
            "folder": str(self.folder),
            "last_scan_at": self.last_scan_at,
            "last_ingest_at": self.last_ingest_at,
            "last_ingest_file": self.last_ingest_file,
            "last_ingest_source": self.last_ingest_source,
            "last_error": self.last_error,
        }
