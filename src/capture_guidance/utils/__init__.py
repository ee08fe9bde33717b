"""Utility modules for the capture guidance engine."""
from __future__ import annotations

from .logging import setup_logging, get_logger
from .io import (
    save_json,
    load_json,
    load_yaml,
    load_structured,
    load_jsonl,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    # I/O
    "save_json",
    "load_json",
    "load_yaml",
    "load_structured",
    "load_jsonl",
]
