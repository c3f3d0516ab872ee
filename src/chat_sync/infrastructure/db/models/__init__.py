"""Import all models so Base.metadata sees every table."""
from chat_sync.infrastructure.db.models.conversation import ConversationModel
from chat_sync.infrastructure.db.models.message import MessageModel
from chat_sync.infrastructure.db.models.participant import ParticipantModel
from chat_sync.infrastructure.db.models.profile import ProfileModel

__all__ = [
    "ConversationModel",
    "MessageModel",
    "ParticipantModel",
    "ProfileModel",
]
