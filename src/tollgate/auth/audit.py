"""Security audit trail.

One JSON line per security event on the ``tollgate.audit`` logger, so the
trail can be routed separately from application logs.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

audit_logger = logging.getLogger("tollgate.audit")


def audit(event: str, **kwargs: Any) -> None:
    entry = {"ts": time.time(), "event": event, **kwargs}
    audit_logger.warning(json.dumps(entry, default=str))
