from __future__ import annotations

from contextlib import contextmanager

from app.dealership.db import create_db_engine, make_sessionmaker

DEFAULT_DATABASE_URL = "sqlite:///dealership.db"


@contextmanager
def script_session(db_url: str):
    """Session for one-off scripts: commits on success, rolls back on error."""
    engine = create_db_engine(db_url)
    s = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
