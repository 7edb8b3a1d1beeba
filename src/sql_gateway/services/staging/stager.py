"""Out-of-band persistence of query results.

Result rows never travel through the tool response. They are written to a
staging directory as one JSON array per call, under a name that sorts by
creation time::

    .safe-sql-results/20261019T101500123456Z-000001_prod_execute_sql.json

Files are created exclusively and never overwritten, so concurrent calls
always produce independent files without locking.
"""

from __future__ import annotations

import datetime
import itertools
import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from sql_gateway.services.execution.models import StagedResult
from sql_gateway.services.staging.serialization import rows_to_json, to_json_value

logger = logging.getLogger(__name__)

DEFAULT_STAGING_DIR = Path(".safe-sql-results")
RESULT_SUFFIX = "_execute_sql.json"
METADATA_SUFFIX = "_execute_sql.meta.json"

_MAX_NAME_ATTEMPTS = 100
_UNSAFE_LABEL_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_label(label: str) -> str:
    """Make a tool label safe for use in a file name."""
    cleaned = _UNSAFE_LABEL_CHARS.sub("_", label or "")
    return cleaned or "default"


class ResultStager:
    """Writes result sets under a staging directory."""

    def __init__(
        self,
        directory: Union[str, Path] = DEFAULT_STAGING_DIR,
        *,
        write_metadata: bool = True,
    ) -> None:
        """Configure the target directory; it is created on first write."""
        self.directory = Path(directory)
        self.write_metadata = write_metadata
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    def next_ordering_key(self) -> str:
        """Return a UTC timestamp plus a per-process sequence number."""
        with self._lock:
            sequence = next(self._sequence)
        timestamp = datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        return f"{timestamp}-{sequence:06d}"

    def stage(
        self,
        rows: Sequence[Any],
        *,
        tool_label: str,
        columns: Optional[List[Dict[str, Any]]] = None,
        truncated: bool = False,
        source_id: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ) -> StagedResult:
        """Write rows as a JSON array; raises OSError when the write fails."""
        label = sanitize_label(tool_label)
        payload = json.dumps(rows_to_json(rows), ensure_ascii=False, allow_nan=False)
        self.directory.mkdir(parents=True, exist_ok=True)

        for _ in range(_MAX_NAME_ATTEMPTS):
            ordering_key = self.next_ordering_key()
            path = self.directory / f"{ordering_key}_{label}{RESULT_SUFFIX}"
            try:
                with path.open("x", encoding="utf-8") as handle:
                    handle.write(payload)
                break
            except FileExistsError:
                continue
        else:
            raise FileExistsError(f"Could not allocate a unique staging file in {self.directory}")

        metadata_path = None
        if self.write_metadata:
            metadata_path = self._write_metadata(
                path.with_name(f"{ordering_key}_{label}{METADATA_SUFFIX}"),
                {
                    "ordering_key": ordering_key,
                    "tool_label": label,
                    "source_id": source_id,
                    "row_count": len(rows),
                    "truncated": truncated,
                    "duration_ms": duration_ms,
                    "columns": to_json_value(columns or []),
                    "result_file": path.name,
                },
            )

        logger.info(
            "event=result_staged file=%s rows=%d truncated=%s", path.name, len(rows), truncated
        )
        return StagedResult(
            path=path,
            ordering_key=ordering_key,
            tool_label=label,
            row_count=len(rows),
            metadata_path=metadata_path,
        )

    def _write_metadata(self, path: Path, metadata: Dict[str, Any]) -> Optional[Path]:
        # The result file is already durable; a sidecar failure only loses operator detail.
        try:
            with path.open("x", encoding="utf-8") as handle:
                json.dump(metadata, handle, ensure_ascii=False, indent=2)
        except OSError as exc:
            logger.warning("event=result_metadata_failed file=%s error=%s", path.name, exc)
            return None
        return path


def latest_staged_result(directory: Union[str, Path] = DEFAULT_STAGING_DIR) -> Optional[Path]:
    """Return the most recently staged result file, or None."""
    directory = Path(directory)
    if not directory.is_dir():
        return None
    candidates = [path for path in directory.iterdir() if path.name.endswith(RESULT_SUFFIX)]
    if not candidates:
        return None
    return max(candidates, key=lambda path: path.name)
