import datetime
from sqlalchemy import Column, Integer, Text, DateTime

from .db import Base

# The eight parts of a sermon outline, in presentation order.
SECTIONS = (
    "titulo",
    "introduccion",
    "costura",
    "problematica",
    "conector",
    "desarrollo",
    "conclusion",
    "ministracion",
)


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, matching SQLite's CURRENT_TIMESTAMP."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class Mensaje(Base):
    """ORM model for one user's sermon outline.

    Attributes
    ----------
    id
        Auto-increment primary key; stable identity of the outline.
    usuario
        Free-form user name sent by the front-end. The row with the newest
        ``fecha_mensaje`` (highest ``id`` on ties) is the user's current one.
    fecha_mensaje
        Set on insert and refreshed on every update.
    titulo .. ministracion
        Section texts, empty string when not yet written.
    """

    __tablename__ = "mensajes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    usuario = Column(Text, index=True, nullable=False)
    fecha_mensaje = Column(DateTime, default=utcnow, nullable=False)
    titulo = Column(Text, default="")
    introduccion = Column(Text, default="")
    costura = Column(Text, default="")
    problematica = Column(Text, default="")
    conector = Column(Text, default="")
    desarrollo = Column(Text, default="")
    conclusion = Column(Text, default="")
    ministracion = Column(Text, default="")

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "usuario": self.usuario,
            "fecha_mensaje": self.fecha_mensaje.strftime("%Y-%m-%d %H:%M:%S") if self.fecha_mensaje else None,
        }
        for section in SECTIONS:
            data[section] = getattr(self, section) or ""
        return data
