"""
Structured Logger

JSON-lines event logging for the healing engine, the n8n gateway, the
execution poller and the database layer.

Each line carries ts, service, event, level plus any keyword data.
Verbosity comes from WFH_LOG_LEVEL (debug|info|warning|error; default info).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

SERVICE = "workflow-healer"

_LEVEL_MAP = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_logger = logging.getLogger("workflowhealer")
if not _logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    _logger.addHandler(handler)
    _logger.setLevel(_LEVEL_MAP.get(os.environ.get("WFH_LOG_LEVEL", "info").lower(), logging.INFO))


def log(event: str, level: str = "info", **kwargs):
    """
    Emit one structured event.

    Args:
        event:  Dot-separated event name (e.g. "heal.complete", "deploy.result")
        level:  debug, info, warning, error or critical; unknown values log as info
        **kwargs: Event data; values that are not JSON-native are str()-ed
    """
    entry = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "service": SERVICE,
        "event": event,
        "level": level,
    }
    entry.update(kwargs)
    _logger.log(_LEVEL_MAP.get(level, logging.INFO), json.dumps(entry, default=str))
