"""Filesystem helpers: atomic writes and YAML I/O.

A G-code program is often picked up by a DNC share or a controller
watching a folder, so programs and machine profiles are written to a
unique temporary file in the target directory, fsynced, then renamed over
the destination.  Readers see the old file or the new one, never a
truncated program.

Provides:
    - ensure_dir(): mkdir -p
    - atomic_write_bytes() / atomic_write_text(): tmp → fsync → rename
    - atomic_yaml_dump() / load_yaml(): PyYAML safe dump/load

Usage:
    from src.utils import fs
    fs.atomic_write_text(out_dir / "O1001.nc", gcode, line_ending="\\r\\n")
    fs.atomic_yaml_dump(profile, "machines/haas_st10.yaml")

Note: Module named `fs.py` to avoid shadowing stdlib `io`.
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

LINE_ENDINGS = ("\n", "\r\n")


def ensure_dir(p: Union[str, Path]) -> Path:
    """Create *p* (and parents) if missing; return it as a Path."""
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def atomic_write_bytes(path: Union[str, Path], data: bytes) -> None:
    """Replace *path* with *data* atomically.

    Parameters
    ----------
    path : Union[str, Path]
        Target file; parent directories are created
    data : bytes
        Full file content

    Raises
    ------
    RuntimeError
        If writing or renaming fails; the temporary file is removed.

    Notes
    -----
    The temporary file is created next to the target so the final
    ``os.replace`` stays on one filesystem.  Its name is unique, so two
    writers never share a temporary file.
    """
    path = Path(path)
    ensure_dir(path.parent)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise RuntimeError(f"Failed to write {path} atomically: {e}") from e


def atomic_write_text(
    path: Union[str, Path],
    text: str,
    encoding: str = "utf-8",
    line_ending: Optional[str] = None,
) -> None:
    """Write text atomically, optionally converting line endings.

    Parameters
    ----------
    path : Union[str, Path]
        Target file path
    text : str
        Content with ``\\n`` line breaks
    encoding : str
        Text encoding, default "utf-8"
    line_ending : str, optional
        ``"\\n"`` or ``"\\r\\n"``; None writes *text* unchanged.  Some
        controllers and DNC links only accept CR/LF programs.

    Raises
    ------
    ValueError
        If *line_ending* is not one of LINE_ENDINGS.
    """
    if line_ending is not None:
        if line_ending not in LINE_ENDINGS:
            raise ValueError(f"line_ending must be one of {LINE_ENDINGS!r}, got {line_ending!r}")
        text = line_ending.join(text.replace("\r\n", "\n").split("\n"))
    atomic_write_bytes(path, text.encode(encoding))


def atomic_yaml_dump(obj: Any, path: Union[str, Path]) -> None:
    """Save *obj* as block-style YAML atomically, keeping key order."""
    yaml_str = yaml.safe_dump(
        obj,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True
    )
    atomic_write_bytes(path, yaml_str.encode('utf-8'))


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a YAML file with ``safe_load``.

    Returns
    -------
    Dict[str, Any]
        Parsed content; None for an empty file

    Raises
    ------
    FileNotFoundError
        If the file doesn't exist
    yaml.YAMLError
        If parsing fails (message names the file)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e
