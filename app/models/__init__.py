"""
Tandem — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from app.models.profile import ProfileRow, UserBlockRow
from app.models.conversation import ConversationRow, MessageRow

__all__ = [
    "ProfileRow",
    "UserBlockRow",
    "ConversationRow",
    "MessageRow",
]
