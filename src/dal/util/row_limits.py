from typing import Iterable, Optional


def cap_rows_with_metadata(rows: Iterable, max_rows: Optional[int]) -> tuple[list, bool]:
    """Return rows capped to max_rows along with a truncation flag.

    ``None`` or a non-positive limit disables the cap.
    """
    rows = list(rows)
    if max_rows and max_rows > 0 and len(rows) > max_rows:
        return rows[:max_rows], True
    return rows, False
