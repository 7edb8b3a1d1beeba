from contextvars import ContextVar
from typing import Optional

# Correlates log lines and spans of one tool call across layers.
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
source_id_var: ContextVar[Optional[str]] = ContextVar("source_id", default=None)
