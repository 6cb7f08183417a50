from pathlib import Path
from typing import Optional
from sqlmodel import SQLModel, Session, create_engine
from contextlib import contextmanager

from .config import load_settings

_ENGINE = None
_ENGINE_URL = None  # track current engine's URL so an explicit path can replace it

def _url_for(db_path: Path) -> str:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{db_path}"

def get_engine(db_path: Optional[Path] = None):
    """Engine for ``db_path``; without one, the current engine or FADENOTES_DB_PATH."""
    global _ENGINE, _ENGINE_URL
    if db_path is None and _ENGINE is not None:
        return _ENGINE
    url = _url_for(db_path if db_path is not None else load_settings().db_path)
    if _ENGINE is None or _ENGINE_URL != url:
        if _ENGINE is not None:
            _ENGINE.dispose()
        _ENGINE = create_engine(url, echo=False)
        _ENGINE_URL = url
    return _ENGINE

def reset_engine():
    """For tests: drop the cached engine so a new FADENOTES_DB_PATH is picked up."""
    global _ENGINE, _ENGINE_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _ENGINE_URL = None

def init_db(db_path: Optional[Path] = None):
    from . import models  # noqa: F401  registers the snapshot table
    SQLModel.metadata.create_all(get_engine(db_path))


@contextmanager
def session_scope():
    # keep objects alive after commit so returned models retain values
    session = Session(get_engine(), expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
