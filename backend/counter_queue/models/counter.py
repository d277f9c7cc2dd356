from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, text
from sqlalchemy.orm import relationship

from .base import Base


class Counter(Base):
    """
    A physical service point. `current_queue` is the ticket number being
    served (0 when idle) and is only ever written by the queue state machine.
    """

    __tablename__ = "counters"

    __table_args__ = (
        # Names are unique among non-deleted counters only
        Index(
            "uq_counters_name_not_deleted",
            "name",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("ix_counters_active_current", "is_active", "current_queue"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    max_queue = Column(Integer, nullable=False, default=99)
    current_queue = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    tickets = relationship("QueueTicket", back_populates="counter", lazy="noload")
