from app.models.message import Message
from app.models.user import User

__all__ = [
    "Message",
    "User",
]
