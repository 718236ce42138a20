from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Not a database constraint: duplicates are reported as corruption by the repository.
    unique_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    nickname: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    original_nickname: Mapped[str] = mapped_column(String(255), nullable=False)
    addressable_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    def __repr__(self) -> str:
        return f"<User(id={self.id!r}, nickname={self.nickname!r})>"


class UserStatistic(Base):
    __tablename__ = "user_statistics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    lines: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    words: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    actions: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    profanities: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    def __repr__(self) -> str:
        return f"<UserStatistic(user_id={self.user_id!r}, lines={self.lines!r})>"


class UsedWord(Base):
    __tablename__ = "used_words"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    word: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    uses: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    def __repr__(self) -> str:
        return f"<UsedWord(word={self.word!r}, uses={self.uses!r})>"


class UsedEmoticon(Base):
    __tablename__ = "used_emoticons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    emoticon: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    uses: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    last_used_by_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<UsedEmoticon(emoticon={self.emoticon!r}, uses={self.uses!r})>"


class LinkedUrl(Base):
    __tablename__ = "linked_urls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)
    uses: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    last_used_by_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    last_usage: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<LinkedUrl(url={self.url!r}, uses={self.uses!r})>"


class KeyValuePair(Base):
    __tablename__ = "key_value_pairs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    value: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    def __repr__(self) -> str:
        return f"<KeyValuePair(key={self.key!r}, value={self.value!r})>"


class MiscData(Base):
    __tablename__ = "misc_data"
    __table_args__ = (UniqueConstraint("type", "key", name="uq_misc_data_type_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<MiscData(type={self.type!r}, key={self.key!r})>"


class Quote(Base):
    __tablename__ = "quotes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    taken_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    def __repr__(self) -> str:
        return f"<Quote(author_id={self.author_id!r}, taken_at={self.taken_at!r})>"


class ChatLog(Base):
    __tablename__ = "chat_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sent_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    sender_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True, index=True
    )
    channel: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    nick: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<ChatLog(channel={self.channel!r}, nick={self.nick!r})>"


TABLES: dict[str, type[Base]] = {
    model.__tablename__: model
    for model in (
        User,
        UserStatistic,
        UsedWord,
        UsedEmoticon,
        LinkedUrl,
        KeyValuePair,
        MiscData,
        Quote,
        ChatLog,
    )
}
