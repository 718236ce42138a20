from chatstats.database.guard import SerializationGuard
from chatstats.database.models import (
    TABLES,
    Base,
    ChatLog,
    KeyValuePair,
    LinkedUrl,
    MiscData,
    Quote,
    UsedEmoticon,
    UsedWord,
    User,
    UserStatistic,
)
from chatstats.database.repository import Repository

__all__ = [
    "TABLES",
    "Base",
    "ChatLog",
    "KeyValuePair",
    "LinkedUrl",
    "MiscData",
    "Quote",
    "Repository",
    "SerializationGuard",
    "UsedEmoticon",
    "UsedWord",
    "User",
    "UserStatistic",
]
