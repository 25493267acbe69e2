"""Locked, atomic read-merge-write of the host's JSON documents.

settings.json and installed_plugins.json are shared by every installer run
and by the host application itself. Each update holds an exclusive advisory
lock on a ``<name>.lock`` sidecar for the whole read-merge-write cycle, and
the new content replaces the old file through a same-directory temp file and
``os.replace`` so a crash never leaves a truncated document behind.
"""

import copy
import json
import os
import sys
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator

from .errors import SettingsError

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl


def load_json(path: Path, default: Any = None) -> Any:
    """Load a JSON object from path.

    A missing file yields ``default`` (an empty dict when not given). Invalid
    JSON, or a top level that is not an object, raises SettingsError.
    """
    if not path.exists():
        return {} if default is None else default
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise SettingsError(f"{path} is not valid JSON (line {e.lineno}, column {e.colno}): {e.msg}") from e
    except OSError as e:
        raise SettingsError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise SettingsError(f"{path} must contain a JSON object, found {type(data).__name__}")
    return data


def fsync_dir(path: Path) -> None:
    # Directories cannot be opened for fsync on Windows
    if sys.platform == "win32":
        return
    fd = os.open(str(path), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_write_json(path: Path, data: Dict[str, Any]) -> None:
    """Write data as indented JSON via temp file, fsync and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=str(path.parent),
            prefix=path.name + ".",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(str(tmp_path), str(path))
        tmp_path = None
        fsync_dir(path.parent)
    finally:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()


def lock_file(path: Path) -> Path:
    """Sidecar file that carries the advisory lock for path."""
    return path.with_name(path.name + ".lock")


@contextmanager
def file_lock(path: Path) -> Iterator[None]:
    """Hold an exclusive advisory lock guarding path."""
    lock_path = lock_file(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lock_path, "a+") as handle:
        if sys.platform == "win32":
            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)
        else:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            if sys.platform == "win32":
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
            else:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


@contextmanager
def locked_document(path: Path, create: bool = True) -> Iterator[Dict[str, Any]]:
    """Yield the JSON object stored at path for in-place modification.

    The document is written back on normal exit when it changed, or when it
    did not exist yet and ``create`` is set. If the body raises nothing is
    written.
    """
    with file_lock(path):
        existed = path.exists()
        data = load_json(path, {})
        original = copy.deepcopy(data)
        yield data
        if existed and data != original:
            atomic_write_json(path, data)
        elif not existed and create:
            atomic_write_json(path, data)
