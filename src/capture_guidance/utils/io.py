"""File I/O helpers for configs, pose tracks and reports."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Union

import numpy as np

from .logging import get_logger

logger = get_logger(__name__)


def save_json(data: Union[Dict, List], path: Path, indent: int = 2) -> Path:
    """Save data as JSON file.

    Args:
        data: Data to serialize.
        path: Output path.
        indent: JSON indentation (0 for compact).

    Returns:
        Path to saved file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent if indent > 0 else None, default=_json_serializer)
    return path


def load_json(path: Path) -> Union[Dict, List]:
    """Load data from JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_yaml(path: Path) -> Any:
    """Load data from a YAML file."""
    import yaml

    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def load_structured(path: Path) -> Any:
    """Load a JSON or YAML document, chosen by file suffix."""
    if path.suffix in (".yaml", ".yml"):
        return load_yaml(path)
    return load_json(path)


def load_jsonl(path: Path) -> List[Dict[str, Any]]:
    """Load a JSONL file (one JSON object per line).

    Lines that fail to parse are skipped and counted in a warning.
    """
    entries = []
    skipped = 0
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                skipped += 1
    if skipped:
        logger.warning(f"Skipped {skipped} malformed line(s) in {path}")
    return entries


def _json_serializer(obj: Any) -> Any:
    """Custom JSON serializer for numpy values, paths and models."""
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, Path):
        return str(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
