"""
Structured logging for workflow events.

The engine logs with ``extra={...}`` carrying the project, phase and error
code of each event.  Both formatters lift those fields out of the record:

- JSON (production, or LOG_FORMAT=json): one object per line, workflow
  fields nested under ``"workflow"``
- Readable (development / testing): coloured line with a
  ``[project=... phase=DESIGN->TASKS code=...]`` scope suffix

LOG_LEVEL and LOG_FORMAT come from the app config (env fallbacks in config.py).
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Fields the workflow services attach via ``extra={...}``, in display order.
WORKFLOW_FIELDS = (
    "project_id",
    "phase",
    "target_phase",
    "user_id",
    "event_type",
    "version",
    "code",
    "ai_code",
)

HANDLER_NAME = "specflow"

_QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "httpx", "openai", "anthropic")


def workflow_fields(record: logging.LogRecord) -> dict:
    """Workflow extras present on *record*, None values dropped."""
    fields = {}
    for key in WORKFLOW_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            fields[key] = value
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per record; timestamp taken from the record itself."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        fields = workflow_fields(record)
        if fields:
            entry["workflow"] = fields
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured single line with the workflow scope appended."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, *, color: bool = True):
        super().__init__()
        self.color = color

    @staticmethod
    def scope(record: logging.LogRecord) -> str:
        fields = workflow_fields(record)
        phase = fields.pop("phase", None)
        target = fields.pop("target_phase", None)
        if phase and target:
            fields["phase"] = f"{phase}->{target}"
        elif phase or target:
            fields["phase"] = phase or f"->{target}"
        if not fields:
            return ""
        ordered = sorted(fields.items(), key=lambda kv: _display_rank(kv[0]))
        return " [" + " ".join(f"{k.removesuffix('_id')}={v}" for k, v in ordered) + "]"

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<8}"
        if self.color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        line = f"{ts} {level} {record.name}: {record.getMessage()}{self.scope(record)}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _display_rank(key: str) -> int:
    order = ("project_id", "phase", "user_id", "event_type", "version", "code", "ai_code")
    return order.index(key) if key in order else len(order)


def configure_logging(app):
    """
    Install the specflow handler on the root logger.

    LOG_FORMAT "json" or "readable" forces a formatter; otherwise production
    (not DEBUG, not TESTING) gets JSON.  LOG_LEVEL defaults to INFO in
    production and DEBUG elsewhere.  Calling this again replaces the handler.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    fmt = (app.config.get("LOG_FORMAT") or ("json" if is_prod else "readable")).lower()
    level_name = (app.config.get("LOG_LEVEL") or ("INFO" if is_prod else "DEBUG")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter(color=sys.stderr.isatty()))
    handler.setLevel(level)

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
    return handler
