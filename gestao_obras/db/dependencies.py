"""Request-scoped database session."""

from collections.abc import Generator

from sqlalchemy.orm import Session

from gestao_obras.db.session import SessionLocal


def get_db_session() -> Generator[Session, None, None]:
    """Yield a session; uncommitted work is rolled back if the request fails."""

    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
