"""Shared helpers for building game directories in tests.
"""

from zipfile import ZipFile
from pathlib import Path
import hashlib
import json

from typing import List, Tuple


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def write_version(context, version_id: str, data: dict) -> Path:
    """Write a version descriptor in the versions directory of the context.
    """
    file = context.version_file(version_id)
    file.parent.mkdir(parents=True, exist_ok=True)
    file.write_text(json.dumps(data))
    return file


def write_file(file: Path, data: bytes = b"") -> Path:
    file.parent.mkdir(parents=True, exist_ok=True)
    file.write_bytes(data)
    return file


def make_zip(file: Path, entries: List[Tuple[str, bytes]]) -> Path:
    file.parent.mkdir(parents=True, exist_ok=True)
    with ZipFile(file, "w") as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return file
