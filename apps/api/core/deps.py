from collections.abc import Iterator

from sqlalchemy.orm import Session

from core.db import SessionLocal
from core.notifications import NOTIFIER, ConsentNotifier


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_notifier() -> ConsentNotifier:
    return NOTIFIER
