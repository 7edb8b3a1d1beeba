from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ColumnMeta = Dict[str, Any]


@dataclass
class QueryResult:
    """Container for query rows with optional column metadata.

    ``status`` carries the driver's command status for statements that return
    no rows (for example ``UPDATE 3``).
    """

    rows: List[Dict[str, Any]] = field(default_factory=list)
    columns: Optional[List[ColumnMeta]] = None
    status: Optional[str] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)
