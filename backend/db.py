# backend/db.py
import os
import datetime
from typing import Optional, Dict, Any

from sqlalchemy import create_engine, func
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.exc import SQLAlchemyError

from backend import monitoring
from backend.errors import StoreError

# Default dev DB; the app rebinds this from Settings at startup
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./requirements.db")
DEFAULT_TIMEOUT_SECONDS = 30.0


def _connect_args(url: str, timeout: float) -> Dict[str, Any]:
    """Driver-level connect and statement timeouts for the URL's backend."""
    backend = make_url(url).get_backend_name()
    seconds = max(1, int(timeout))
    if backend == "sqlite":
        # sqlite3 waits this long on a locked database
        return {"check_same_thread": False, "timeout": timeout}
    if backend == "postgresql":
        return {
            "connect_timeout": seconds,
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    if backend == "mysql":
        return {"connect_timeout": seconds, "read_timeout": seconds, "write_timeout": seconds}
    return {}


def _make_engine(url: str, timeout: float = DEFAULT_TIMEOUT_SECONDS):
    connect_args = _connect_args(url, timeout)
    if url.startswith("sqlite"):
        return create_engine(url, connect_args=connect_args)
    return create_engine(
        url, connect_args=connect_args, pool_pre_ping=True, pool_timeout=timeout
    )


engine = _make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def reconfigure(url: str, timeout: float = DEFAULT_TIMEOUT_SECONDS):
    """Reconfigure the DB engine and session factory at runtime (startup and tests)."""
    global engine, SessionLocal
    engine = _make_engine(url, timeout)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    # Create tables if they don't exist
    try:
        import backend.models as models  # noqa: F841
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        # Surface in logs; the first save will fail the request with StoreError
        monitoring.logger.warning("DB init failed", extra={"error": str(e)})


def _to_dict(rr) -> Dict[str, Any]:
    return {
        "id": rr.id,
        "file_reference": rr.file_reference,
        "text": rr.text,
        "created_at": rr.created_at.isoformat() + "Z" if rr.created_at else None,
    }


class RequirementStore:
    """
    Durable record of each submission.

    Uses the module-level session factory at call time so `reconfigure()`
    takes effect without rebuilding the store.
    """

    def save(self, file_reference: Optional[str], text: str) -> Dict[str, Any]:
        """
        Persist one requirement and return it as a dict.
        Raises StoreError on any database failure; never retries.
        """
        if not text:
            raise StoreError(detail="text must be non-empty")
        from backend.models import Requirement

        db: Session = SessionLocal()
        try:
            rr = Requirement(
                file_reference=file_reference,
                text=text,
                created_at=datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None),
            )
            db.add(rr)
            db.commit()
            db.refresh(rr)
            return _to_dict(rr)
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(detail=str(e)) from e
        finally:
            db.close()

    def get(self, requirement_id: int) -> Optional[Dict[str, Any]]:
        """Return the stored requirement as a dict or None."""
        from backend.models import Requirement

        db: Session = SessionLocal()
        try:
            rr = db.query(Requirement).filter(Requirement.id == requirement_id).first()
            return _to_dict(rr) if rr else None
        except SQLAlchemyError as e:
            raise StoreError(detail=str(e)) from e
        finally:
            db.close()

    def count(self) -> int:
        from backend.models import Requirement

        db: Session = SessionLocal()
        try:
            return db.query(func.count(Requirement.id)).scalar() or 0
        except SQLAlchemyError as e:
            raise StoreError(detail=str(e)) from e
        finally:
            db.close()
