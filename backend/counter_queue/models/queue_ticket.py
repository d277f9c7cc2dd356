from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SQLAlchemyEnum,
    ForeignKey,
    Index,
    Integer,
)
from sqlalchemy.orm import relationship

from .base import Base


class TicketStatus(str, Enum):
    CLAIMED = "claimed"
    CALLED = "called"
    SERVED = "served"
    SKIPPED = "skipped"
    RELEASED = "released"
    RESET = "reset"


IN_PROGRESS_STATUSES = (TicketStatus.CLAIMED, TicketStatus.CALLED)


class QueueTicket(Base):
    """
    One claimed position in a counter's queue. Rows are never deleted;
    resolved tickets stay behind as history for metrics and search.
    """

    __tablename__ = "queues"

    __table_args__ = (
        Index("ix_queues_counter_status", "counter_id", "status"),
        Index("ix_queues_created_at", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    number = Column(Integer, nullable=False)
    counter_id = Column(Integer, ForeignKey("counters.id"), nullable=False)
    status = Column(
        SQLAlchemyEnum(TicketStatus, name="queue_status_enum", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=TicketStatus.CLAIMED,
    )

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    counter = relationship("Counter", back_populates="tickets", lazy="noload")
