"""JSON file helpers shared by the flat-file stores."""

import os
import json
import logging
import tempfile
from pathlib import Path
from typing import Any

from secureblog.exceptions import StorageError

# Configure logging
logger = logging.getLogger(__name__)

_MISSING = object()


def read_json(path: Path, default: Any = _MISSING) -> Any:
    """
    Read and decode a JSON file.

    Args:
        path: File to read
        default: Value returned when the file does not exist

    Returns:
        Any: Decoded JSON document

    Raises:
        StorageError: If the file cannot be read or decoded, or is missing
            and no default was given
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError:
        if default is _MISSING:
            logger.error(f"File not found: {path}")
            raise StorageError()
        return default
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"Error reading {path}: {e}")
        raise StorageError()


def write_json(path: Path, data: Any, mode: int = 0o600) -> None:
    """
    Write ``data`` as JSON, replacing the target in a single rename.

    Args:
        path: Destination file
        data: JSON-serialisable document
        mode: Permissions applied to the written file

    Raises:
        StorageError: If the file cannot be written
    """
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=".", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=4, ensure_ascii=False)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Error writing {path}: {e}")
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise StorageError()


def remove_file(path: Path) -> bool:
    """Delete ``path``; returns False if it was already gone."""
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.error(f"Error deleting {path}: {e}")
        raise StorageError()


HTACCESS_DENY_ALL = "Deny from all\n"
INDEX_STUB = "<!DOCTYPE html><title>403 Forbidden</title><h1>Access denied</h1>\n"


def provision_directory(directory: Path, htaccess: str = HTACCESS_DENY_ALL) -> None:
    """
    Create ``directory`` with owner-only permissions, a deny-all web
    server rule file and a stub index page that blocks directory listing.

    Raises:
        OSError: If the directory or its guard files cannot be created
    """
    directory.mkdir(mode=0o700, parents=True, exist_ok=True)
    directory.chmod(0o700)

    htaccess_file = directory / ".htaccess"
    if not htaccess_file.exists():
        htaccess_file.write_text(htaccess, encoding="utf-8")

    index_file = directory / "index.html"
    if not index_file.exists():
        index_file.write_text(INDEX_STUB, encoding="utf-8")
