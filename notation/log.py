"""Context-scoped logger used across the package."""

from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from typing import Iterator

DISCARD = logging.getLogger("notation.discard")
DISCARD.addHandler(logging.NullHandler())
DISCARD.propagate = False
DISCARD.disabled = True

_current: contextvars.ContextVar[logging.Logger] = contextvars.ContextVar(
    "notation_logger", default=DISCARD
)


def get_logger() -> logging.Logger:
    """Return the logger set for the current context, or the discarding one."""
    return _current.get()


@contextmanager
def with_logger(logger: logging.Logger) -> Iterator[logging.Logger]:
    """Use ``logger`` for the package's logging while the block runs."""
    token = _current.set(logger)
    try:
        yield logger
    finally:
        _current.reset(token)