"""
File persistence helpers

Writes go to a temporary file in the target directory and are moved
into place with os.replace, so readers never see a partial file.
Any OSError or decode failure is raised as PersistenceError.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from .errors import PersistenceError

logger = logging.getLogger('vpnhub.storage')


def write_text_atomic(path: Path, content: str, mode: Optional[int] = None) -> None:
    """
    Replace a file's content in one step

    Args:
        path: Target file
        content: Full new content
        mode: Permission bits for the new file (e.g. 0o600 for key material)
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            if mode is not None:
                os.chmod(tmp_name, mode)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        raise PersistenceError(path, e) from e


def write_json_atomic(path: Path, data: Any, mode: Optional[int] = None) -> None:
    write_text_atomic(path, json.dumps(data, indent=2) + "\n", mode=mode)


def read_json(path: Path) -> Any:
    """
    Load a JSON file

    Raises:
        FileNotFoundError: file does not exist
        PersistenceError: unreadable or not valid JSON
    """
    path = Path(path)
    try:
        with open(path, "r") as f:
            return json.load(f)
    except FileNotFoundError:
        raise
    except (OSError, ValueError) as e:
        logger.error(f"Failed to read {path}: {e}")
        raise PersistenceError(path, e) from e


def remove_file(path: Path) -> bool:
    """
    Delete a file; returns False if it did not exist

    Raises:
        PersistenceError: file exists but could not be removed
    """
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.error(f"Failed to remove {path}: {e}")
        raise PersistenceError(path, e) from e
