from .base import Base
from .admin import Admin
from .counter import Counter
from .queue_ticket import QueueTicket, TicketStatus

__all__ = [
    "Base",
    "Admin",
    "Counter",
    "QueueTicket",
    "TicketStatus",
]
