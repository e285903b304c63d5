"""Logging setup shared by the CLI and embedding applications.

Library modules only ever call ``logging.getLogger(__name__)``; handlers
are installed once by the entry point through :func:`setup_logging`.

Features:
    - Console handler (optionally coloured) and file handler with size or
      time rotation
    - JSON-lines file output for log shippers
    - Contextual fields (``app``, ``job``, ``op``) attached to every line
    - Python warnings routed into logging
    - Uncaught exceptions logged before the interpreter exits

Public API:
    setup_logging(log_level="INFO", context={"app": "generate_gcode"})
    get_logger(name)
    push_context(job="shaft_01")  /  pop_context(keys=["job"])
    with log_context(op="Roughing"): ...
    install_excepthook()

Line formats:
    Human: 2026-03-02T09:14:05.221Z | INFO     | job=shaft_01 op=Roughing | Roughing: 412 moves
    JSON:  {"t": "2026-03-02T09:14:05.221000+00:00", "lvl": "INFO", "op": "Roughing", "msg": "..."}

Fields live in a ContextVar, so a pipeline run on a background worker
keeps its own ``op`` without leaking into the caller's log lines.
Calling setup_logging() again replaces the handlers it installed before.
"""

import contextvars
import json
import logging
import logging.handlers
import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional


_context_var: contextvars.ContextVar = contextvars.ContextVar('lathe_log_context', default={})

# Handlers installed by the last setup_logging() call
_installed: List[logging.Handler] = []

_LEVEL_COLORS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
_RESET = '\033[0m'


class ContextFormatter(logging.Formatter):
    """Formatter adding the current context fields to each record.

    Parameters
    ----------
    fmt_mode : str
        ``"human"`` for pipe-separated lines, ``"json"`` for JSON lines
    use_color : bool
        Colour the level name (only honoured on a TTY)
    tz : str
        ``"UTC"`` or ``"local"`` timestamps
    """

    def __init__(self, fmt_mode: str = "human", use_color: bool = True, tz: str = "UTC"):
        super().__init__()
        if fmt_mode not in ("human", "json"):
            raise ValueError(f"Unknown format mode: {fmt_mode}. Use 'human' or 'json'.")
        self.fmt_mode = fmt_mode
        self.use_color = use_color and sys.stderr.isatty()
        self.tz = tz

    def _timestamp(self, record: logging.LogRecord) -> datetime:
        if self.tz == "UTC":
            return datetime.fromtimestamp(record.created, tz=timezone.utc)
        return datetime.fromtimestamp(record.created)

    def format(self, record: logging.LogRecord) -> str:
        ts = self._timestamp(record)
        fields = _context_var.get()
        if self.fmt_mode == "json":
            payload: Dict[str, Any] = {
                't': ts.isoformat(),
                'lvl': record.levelname,
                'name': record.name,
                'pid': os.getpid(),
                **fields,
                'msg': record.getMessage(),
            }
            if record.exc_info:
                payload['exc'] = self.formatException(record.exc_info)
            return json.dumps(payload, default=str)

        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{_LEVEL_COLORS.get(record.levelname, '')}{level}{_RESET}"
        parts = [ts.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z', level]
        if fields:
            parts.append(' '.join(f"{k}={v}" for k, v in fields.items()))
        parts.append(record.getMessage())
        line = ' | '.join(parts)
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json: bool = False,
    color: bool = True,
    to_stderr: bool = True,
    rotate: Optional[Dict[str, Any]] = None,
    tz: str = "UTC",
    capture_warnings: bool = True,
    quiet_libs: Optional[List[str]] = None,
    context: Optional[Dict[str, Any]] = None,
) -> List[logging.Handler]:
    """Configure the root logger.

    Parameters
    ----------
    log_level : str
        "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL"
    log_file : str, optional
        Also write to this file (parent directories are created)
    json : bool
        JSON lines in the file handler, default False
    color : bool
        Coloured level names on the console, default True
    to_stderr : bool
        Install the console handler, default True
    rotate : dict, optional
        ``{"mode": "size", "max_bytes": ..., "backup_count": ...}`` or
        ``{"mode": "time", "when": "D", "interval": 1, "backup_count": ...}``
    tz : str
        "UTC" (default) or "local"
    capture_warnings : bool
        Route ``warnings.warn`` into logging, default True
    quiet_libs : list[str], optional
        Loggers raised to WARNING
    context : dict, optional
        Fields pushed before returning (e.g. ``{"app": "generate_gcode"}``)

    Returns
    -------
    list[logging.Handler]
        The handlers now installed on the root logger

    Raises
    ------
    ValueError
        If *rotate* names an unknown mode.
    """
    root = logging.getLogger()
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()

    root.setLevel(getattr(logging, log_level.upper()))

    if to_stderr:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(ContextFormatter("human", color, tz))
        _installed.append(console)
    if log_file:
        _installed.append(_file_handler(Path(log_file), rotate, json, tz))
    for handler in _installed:
        root.addHandler(handler)

    if context:
        push_context(**context)
    for lib in quiet_libs or ():
        logging.getLogger(lib).setLevel(logging.WARNING)
    if capture_warnings:
        route_warnings()

    return list(_installed)


def _file_handler(
    path: Path,
    rotate: Optional[Dict[str, Any]],
    json_format: bool,
    tz: str
) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = (rotate or {}).get('mode')
    if rotate is None:
        handler: logging.Handler = logging.FileHandler(path)
    elif mode == 'size':
        handler = logging.handlers.RotatingFileHandler(
            path,
            maxBytes=rotate.get('max_bytes', 10_000_000),
            backupCount=rotate.get('backup_count', 5)
        )
    elif mode == 'time':
        handler = logging.handlers.TimedRotatingFileHandler(
            path,
            when=rotate.get('when', 'D'),
            interval=rotate.get('interval', 1),
            backupCount=rotate.get('backup_count', 7)
        )
    else:
        raise ValueError(f"Unknown rotation mode: {mode}. Use 'size' or 'time'.")
    handler.setFormatter(ContextFormatter("json" if json_format else "human", False, tz))
    return handler


def get_logger(name: str) -> logging.Logger:
    """Same as ``logging.getLogger``; kept for symmetry with setup_logging."""
    return logging.getLogger(name)


# ---------------------------------------------------------------------------
# Context fields
# ---------------------------------------------------------------------------


def push_context(**kwargs) -> None:
    """Add fields to every subsequent record in this context.

    Examples
    --------
    >>> push_context(job="shaft_01")
    >>> logger.info("Started")  # → "... | job=shaft_01 | Started"
    """
    _context_var.set({**_context_var.get(), **kwargs})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Remove *keys* from the context, or every field when *keys* is None."""
    if keys is None:
        _context_var.set({})
        return
    _context_var.set({k: v for k, v in _context_var.get().items() if k not in keys})


def get_context() -> Dict[str, Any]:
    """Copy of the current context fields."""
    return dict(_context_var.get())


@contextmanager
def log_context(**kwargs) -> Iterator[None]:
    """Scope fields to a block; the previous context is restored on exit.

    Examples
    --------
    >>> with log_context(op="Parting"):
    ...     logger.info("Selected z=-50")  # → "... | op=Parting | Selected z=-50"
    """
    token = _context_var.set({**_context_var.get(), **kwargs})
    try:
        yield
    finally:
        _context_var.reset(token)


# ---------------------------------------------------------------------------
# Process hooks
# ---------------------------------------------------------------------------


def install_excepthook() -> None:
    """Log uncaught exceptions at CRITICAL; Ctrl+C keeps the default hook."""
    def log_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logging.getLogger(__name__).critical(
            "Uncaught exception",
            exc_info=(exc_type, exc_value, exc_traceback)
        )

    sys.excepthook = log_exception


def route_warnings() -> None:
    """Send ``warnings.warn`` output through the ``py.warnings`` logger."""
    logging.captureWarnings(True)
    logging.getLogger('py.warnings').setLevel(logging.WARNING)
