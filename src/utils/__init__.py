"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Config validation (validators)
    - Atomic I/O (fs)
    - Profiling (profiler)
    - Unified logging and per-run context (logging_config)

No module in utils/ may import from upper layers (lathe_cam).

Convenience imports:
    from src.utils import fs, validators
    from src.utils.logging_config import setup_logging, get_logger
"""

# Re-export commonly used modules for convenience
from . import fs
from . import logging_config
from . import profiler
from . import validators

# Common functions for direct import
from .logging_config import get_logger, log_context, push_context, setup_logging

__all__ = [
    # Modules
    'fs',
    'logging_config',
    'profiler',
    'validators',
    # Direct exports
    'setup_logging',
    'get_logger',
    'push_context',
    'log_context',
]
