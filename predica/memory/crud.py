import threading
from typing import Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from utils.error_handler import PersistenceError
from utils.logging import get_logger

from .db import SessionLocal
from .models import SECTIONS, Mensaje, utcnow

logger = get_logger(__name__)

# Serializes lookup-then-write across threads of this process only (e.g. sync
# callers in a threadpool). Separate worker processes sharing the database
# file are not covered; run a single worker.
_UPSERT_LOCK = threading.Lock()


def _latest_row(db: Session, usuario: str) -> Optional[Mensaje]:
    return (
        db.query(Mensaje)
        .filter(Mensaje.usuario == usuario)
        .order_by(Mensaje.fecha_mensaje.desc(), Mensaje.id.desc())
        .first()
    )


# ---------------------------------------------------------------------------
# Public helper functions
# ---------------------------------------------------------------------------

def upsert_message(usuario: str, sections: Mapping[str, Optional[str]]) -> int:
    """Create or update the current outline for ``usuario`` and return its id.

    New rows store missing sections as empty strings. When a row already
    exists, each section keeps its stored value unless a non-empty value is
    supplied, and ``fecha_mensaje`` is refreshed.
    """
    if not usuario:
        raise ValueError("usuario is required")

    with _UPSERT_LOCK:
        db: Session = SessionLocal()
        try:
            row = _latest_row(db, usuario)
            if row is None:
                row = Mensaje(
                    usuario=usuario,
                    fecha_mensaje=utcnow(),
                    **{s: sections.get(s) or "" for s in SECTIONS},
                )
                db.add(row)
                logger.info(f"Creating outline for usuario={usuario}")
            else:
                for section in SECTIONS:
                    setattr(row, section, sections.get(section) or getattr(row, section) or "")
                row.fecha_mensaje = utcnow()
                logger.info(f"Updating outline id={row.id} for usuario={usuario}")
            db.commit()
            return row.id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error saving outline for usuario={usuario}: {e}")
            raise PersistenceError("Error al guardar el mensaje") from e
        finally:
            db.close()


def list_messages() -> List[Dict]:
    """Return every stored outline, newest first."""
    db: Session = SessionLocal()
    try:
        rows = (
            db.query(Mensaje)
            .order_by(Mensaje.fecha_mensaje.desc(), Mensaje.id.desc())
            .all()
        )
        return [r.to_dict() for r in rows]
    except SQLAlchemyError as e:
        logger.error(f"Error listing outlines: {e}")
        raise PersistenceError("Error al obtener mensajes") from e
    finally:
        db.close()


def get_latest_message(usuario: str) -> Optional[Dict]:
    """Return the current outline for ``usuario`` or ``None``."""
    db: Session = SessionLocal()
    try:
        row = _latest_row(db, usuario)
        return row.to_dict() if row else None
    except SQLAlchemyError as e:
        logger.error(f"Error fetching latest outline for usuario={usuario}: {e}")
        raise PersistenceError("Error al obtener mensaje") from e
    finally:
        db.close()
