from app.models.calendar_event import CalendarEvent
from app.models.match_history import MatchHistory
from app.models.message import Message
from app.models.notification import Notification
from app.models.queue_entry import QueueEntry
from app.models.user import User

__all__ = [
    "User",
    "QueueEntry",
    "MatchHistory",
    "Notification",
    "Message",
    "CalendarEvent",
]
