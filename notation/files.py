"""File name helpers."""

from __future__ import annotations

import re

_VALID_FILE_NAME = re.compile(r"[a-zA-Z0-9_.-]+")


def is_valid_file_name(file_name: str) -> bool:
    """Tell whether a file name is safe on every platform."""
    return _VALID_FILE_NAME.fullmatch(file_name) is not None