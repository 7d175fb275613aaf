from __future__ import annotations

import contextlib
from typing import Iterator

from sqlalchemy.orm import Session

from app.db import SessionLocal


@contextlib.contextmanager
def db_session() -> Iterator[Session]:
    """Session for code running outside a request (websocket handlers, scripts)."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
