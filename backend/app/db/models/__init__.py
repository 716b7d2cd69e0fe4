"""ORM models exposed for metadata discovery."""
from app.db.models.action import Action
from app.db.models.action_occurrence import ActionOccurrence
from app.db.models.area import Area
from app.db.models.dream import Dream
from app.db.models.scheduling_log import SchedulingLog
from app.db.models.user import User

__all__ = [
    "Action",
    "ActionOccurrence",
    "Area",
    "Dream",
    "SchedulingLog",
    "User",
]
