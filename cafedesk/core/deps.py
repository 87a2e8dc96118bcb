from collections.abc import Iterator

from sqlalchemy.orm import Session

from cafedesk.db.session import SessionLocal


def get_db() -> Iterator[Session]:
    # Anything not committed by the handler is rolled back on close.
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
