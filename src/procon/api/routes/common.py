"""Common route helpers."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException, status

from procon.config.loader import ConfigurationError
from procon.db.store import StateStoreError


@contextmanager
def translate_errors() -> Iterator[None]:
    """Map configuration and state errors onto HTTP errors."""
    try:
        yield
    except ConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    except StateStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        ) from exc
