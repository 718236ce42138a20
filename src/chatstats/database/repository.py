from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from chatstats.data_models import ChatMessage, ChatUser
from chatstats.database.exceptions import (
    AmbiguousNicknameError,
    CorruptedDatabaseError,
    DatabaseConnectionError,
    MiscDataNotFoundError,
    UserNotFoundError,
    VarNotFoundError,
)
from chatstats.database.guard import SerializationGuard, serialized
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

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=Base)

STATISTIC_FIELDS = ("lines", "words", "actions", "profanities")


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _require_non_negative(name: str, amount: int) -> None:
    if amount < 0:
        raise ValueError(f"{name} must not be negative, got {amount}")


def _require_non_empty(name: str, value: str) -> None:
    if not value:
        raise ValueError(f"{name} must not be empty")


class Repository:
    """Serialized counter store backing the chat statistics.

    Every public coroutine runs under ``self.guard``; see
    :class:`~chatstats.database.guard.SerializationGuard`.
    """

    def __init__(self, database_url: str) -> None:
        if not database_url.startswith("sqlite"):
            db_type = database_url.split("://")[0] if "://" in database_url else database_url
            raise ValueError(f"Only SQLite databases are supported. Got: {db_type}")
        self._engine = create_async_engine(database_url, echo=False)
        self._session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )
        self.guard = SerializationGuard()
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def lock_message(self) -> str:
        return self.guard.lock_message

    async def initialize(self) -> None:
        logger.info("Initializing stats database")
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._connected = True
        logger.info("Stats database initialization complete")

    async def close(self) -> None:
        self._connected = False
        await self._engine.dispose()

    def session(self) -> AsyncSession:
        if not self._connected:
            raise DatabaseConnectionError()
        return self._session_factory()

    @staticmethod
    def get_table_names() -> list[str]:
        return list(TABLES)

    @serialized
    async def reset(self) -> None:
        if not self._connected:
            raise DatabaseConnectionError()
        logger.warning("Resetting stats database")
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    async def _upsert(
        self,
        session: AsyncSession,
        model: type[ModelT],
        key: dict[str, Any],
        *,
        create: Callable[[], ModelT],
        update: Callable[[ModelT], None],
    ) -> tuple[ModelT, bool]:
        """Update the single row matching ``key`` or insert a fresh one.

        Returns the row and whether it was created. More than one match means
        the logical key is no longer unique and raises CorruptedDatabaseError.
        """
        result = await session.execute(select(model).filter_by(**key))
        matches = list(result.scalars().all())
        if len(matches) > 1:
            raise CorruptedDatabaseError(model.__tablename__, repr(key), len(matches))

        if matches:
            row = matches[0]
            update(row)
            created = False
        else:
            row = create()
            session.add(row)
            created = True

        await session.commit()
        return row, created

    async def _increment_statistic(self, user_id: int, **deltas: int) -> UserStatistic:
        for name, amount in deltas.items():
            _require_non_negative(name, amount)

        def update(stat: UserStatistic) -> None:
            for name, amount in deltas.items():
                setattr(stat, name, (getattr(stat, name) or 0) + amount)

        def create() -> UserStatistic:
            values = {name: deltas.get(name, 0) for name in STATISTIC_FIELDS}
            return UserStatistic(user_id=user_id, **values)

        async with self.session() as session:
            stat, created = await self._upsert(
                session, UserStatistic, {"user_id": user_id}, create=create, update=update
            )
        if created:
            logger.info("Created new stats row", user_id=user_id)
        return stat

    @serialized
    async def increment_line_count(self, user_id: int) -> UserStatistic:
        return await self._increment_statistic(user_id, lines=1)

    @serialized
    async def increment_actions(self, user_id: int) -> UserStatistic:
        stat = await self._increment_statistic(user_id, actions=1)
        logger.debug("Incremented actions", user_id=user_id)
        return stat

    @serialized
    async def increment_profanities(self, user_id: int) -> UserStatistic:
        stat = await self._increment_statistic(user_id, profanities=1)
        logger.debug("Incremented profanities", user_id=user_id)
        return stat

    @serialized
    async def increment_word_count(self, user_id: int, words: int) -> UserStatistic:
        return await self._increment_statistic(user_id, words=words)

    @serialized
    async def increment_user_statistic(
        self,
        user_id: int,
        lines: int = 0,
        words: int = 0,
        actions: int = 0,
        profanities: int = 0,
    ) -> UserStatistic:
        stat = await self._increment_statistic(
            user_id, lines=lines, words=words, actions=actions, profanities=profanities
        )
        logger.info(
            "User statistics incremented",
            user_id=user_id,
            lines=lines,
            words=words,
            actions=actions,
            profanities=profanities,
        )
        return stat

    @serialized
    async def get_user_statistic(self, user_id: int) -> UserStatistic | None:
        async with self.session() as session:
            result = await session.execute(
                select(UserStatistic).where(UserStatistic.user_id == user_id)
            )
            matches = list(result.scalars().all())
        if len(matches) > 1:
            raise CorruptedDatabaseError(
                UserStatistic.__tablename__, f"user_id={user_id}", len(matches)
            )
        return matches[0] if matches else None

    @serialized
    async def increment_word(self, word: str) -> UsedWord:
        _require_non_empty("word", word)

        def update(row: UsedWord) -> None:
            row.uses = (row.uses or 0) + 1

        async with self.session() as session:
            row, _ = await self._upsert(
                session,
                UsedWord,
                {"word": word},
                create=lambda: UsedWord(word=word, uses=1),
                update=update,
            )
        return row

    @serialized
    async def get_global_word_counts(self, min_uses: int = 2) -> dict[str, int]:
        async with self.session() as session:
            result = await session.execute(
                select(UsedWord.word, UsedWord.uses).where(UsedWord.uses >= min_uses)
            )
            return {word: uses for word, uses in result.all()}

    @serialized
    async def increment_emoticon(self, emoticon: str, user_id: int) -> UsedEmoticon:
        _require_non_empty("emoticon", emoticon)

        def update(row: UsedEmoticon) -> None:
            row.uses = (row.uses or 0) + 1
            row.last_used_by_id = user_id

        async with self.session() as session:
            row, _ = await self._upsert(
                session,
                UsedEmoticon,
                {"emoticon": emoticon},
                create=lambda: UsedEmoticon(emoticon=emoticon, uses=1, last_used_by_id=user_id),
                update=update,
            )
        logger.debug("Incremented emoticon count", emoticon=emoticon, user_id=user_id)
        return row

    @serialized
    async def increment_url(self, url: str, user_id: int, usage: str) -> LinkedUrl:
        _require_non_empty("url", url)

        def update(row: LinkedUrl) -> None:
            row.uses = (row.uses or 0) + 1
            row.last_usage = usage
            row.last_used_by_id = user_id

        async with self.session() as session:
            row, _ = await self._upsert(
                session,
                LinkedUrl,
                {"url": url},
                create=lambda: LinkedUrl(
                    url=url, uses=1, last_usage=usage, last_used_by_id=user_id
                ),
                update=update,
            )
        logger.debug("Incremented URL count", url=url, user_id=user_id)
        return row

    @serialized
    async def set_var(self, key: str, value: int) -> KeyValuePair:
        _require_non_empty("key", key)

        def update(pair: KeyValuePair) -> None:
            pair.value = value

        async with self.session() as session:
            pair, created = await self._upsert(
                session,
                KeyValuePair,
                {"key": key},
                create=lambda: KeyValuePair(key=key, value=value),
                update=update,
            )
        logger.debug("Variable set", key=key, value=value, created=created)
        return pair

    @serialized
    async def increment_var(self, key: str, amount: int = 1) -> KeyValuePair:
        _require_non_empty("key", key)
        _require_non_negative("amount", amount)

        def update(pair: KeyValuePair) -> None:
            pair.value = (pair.value or 0) + amount

        async with self.session() as session:
            pair, created = await self._upsert(
                session,
                KeyValuePair,
                {"key": key},
                create=lambda: KeyValuePair(key=key, value=amount),
                update=update,
            )
        if created:
            logger.info("Inserted variable", key=key)
        return pair

    @serialized
    async def get_var(self, key: str) -> int:
        async with self.session() as session:
            result = await session.execute(
                select(KeyValuePair.value).where(KeyValuePair.key == key)
            )
            values = list(result.scalars().all())
        if len(values) > 1:
            raise CorruptedDatabaseError(KeyValuePair.__tablename__, f"key={key!r}", len(values))
        if not values:
            raise VarNotFoundError(key)
        return values[0]

    @serialized
    async def upsert_misc_data(self, data_type: str, key: str, value: str) -> MiscData:
        _require_non_empty("data_type", data_type)
        _require_non_empty("key", key)

        def update(row: MiscData) -> None:
            row.value = value

        async with self.session() as session:
            row, _ = await self._upsert(
                session,
                MiscData,
                {"type": data_type, "key": key},
                create=lambda: MiscData(type=data_type, key=key, value=value, enabled=True),
                update=update,
            )
        return row

    @serialized
    async def get_misc_data(self, data_type: str, key: str) -> str:
        async with self.session() as session:
            result = await session.execute(
                select(MiscData.value)
                .where(MiscData.type == data_type)
                .where(MiscData.key == key)
            )
            values = list(result.scalars().all())
        if len(values) > 1:
            raise CorruptedDatabaseError(
                MiscData.__tablename__, f"type={data_type!r}, key={key!r}", len(values)
            )
        if not values:
            raise MiscDataNotFoundError(data_type, key)
        return values[0]

    @serialized
    async def misc_data_contains_key(self, data_type: str, key: str) -> bool:
        async with self.session() as session:
            count = await session.scalar(
                select(func.count(MiscData.id))
                .where(MiscData.type == data_type)
                .where(MiscData.key == key)
            )
            return bool(count)

    async def _find_users_by_unique_id(self, session: AsyncSession, unique_id: str) -> list[User]:
        result = await session.execute(select(User).where(User.unique_id == unique_id))
        return list(result.scalars().all())

    @serialized
    async def upsert_user(self, chat_user: ChatUser) -> User:
        _require_non_empty("unique_id", chat_user.unique_id)

        async with self.session() as session:
            matches = await self._find_users_by_unique_id(session, chat_user.unique_id)

            if not matches:
                logger.info("Adding new user", user=str(chat_user))
                session.add(
                    User(
                        unique_id=chat_user.unique_id,
                        nickname=chat_user.nickname,
                        original_nickname=chat_user.nickname,
                        addressable_name=chat_user.addressable_name,
                    )
                )
                await session.commit()
                # Re-read so the caller sees the id assigned by the store.
                result = await session.execute(
                    select(User).where(User.unique_id == chat_user.unique_id)
                )
                return result.scalar_one()

            if len(matches) > 1:
                raise CorruptedDatabaseError(
                    User.__tablename__, f"unique_id={chat_user.unique_id!r}", len(matches)
                )

            user = matches[0]
            if user.nickname != chat_user.nickname:
                logger.info(
                    "Updated nickname",
                    user_id=user.id,
                    old=user.nickname,
                    new=chat_user.nickname,
                )
                user.nickname = chat_user.nickname
            if user.addressable_name != chat_user.addressable_name:
                logger.info(
                    "Updated addressable name",
                    user_id=user.id,
                    old=user.addressable_name,
                    new=chat_user.addressable_name,
                )
                user.addressable_name = chat_user.addressable_name
            await session.commit()
            return user

    @serialized
    async def map_user(self, chat_user: ChatUser) -> User:
        async with self.session() as session:
            matches = await self._find_users_by_unique_id(session, chat_user.unique_id)
        if not matches:
            raise UserNotFoundError(chat_user.unique_id)
        if len(matches) > 1:
            raise CorruptedDatabaseError(
                User.__tablename__, f"unique_id={chat_user.unique_id!r}", len(matches)
            )
        return matches[0]

    @serialized
    async def get_user_by_id(self, user_id: int) -> User:
        async with self.session() as session:
            result = await session.execute(select(User).where(User.id == user_id))
            user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    @serialized
    async def get_users_by_nickname(self, nickname: str) -> list[User]:
        async with self.session() as session:
            result = await session.execute(select(User).where(User.nickname == nickname))
            return list(result.scalars().all())

    @serialized
    async def get_user_by_nickname(self, nickname: str) -> User:
        matches = await self.get_users_by_nickname(nickname)
        if not matches:
            raise UserNotFoundError(nickname)
        if len(matches) > 1:
            raise AmbiguousNicknameError(nickname, [user.id for user in matches])
        return matches[0]

    @serialized
    async def add_message(self, message: ChatMessage, sender_id: int | None) -> ChatLog:
        async with self.session() as session:
            line = ChatLog(
                sent_at=_as_utc(message.sent_at),
                sender_id=sender_id,
                channel=message.channel,
                nick=message.sender.nickname,
                message=message.body,
            )
            session.add(line)
            await session.commit()
            return line

    @serialized
    async def get_messages(self, user_id: int, channel: str) -> list[str]:
        async with self.session() as session:
            result = await session.execute(
                select(ChatLog.message)
                .where(ChatLog.sender_id == user_id)
                .where(ChatLog.channel == channel)
                .order_by(ChatLog.id)
            )
            return list(result.scalars().all())

    @serialized
    async def find_line(self, search: str, user_id: int | None = None) -> list[ChatLog]:
        async with self.session() as session:
            query = select(ChatLog).where(func.lower(ChatLog.message).contains(search.lower()))
            if user_id is not None:
                query = query.where(ChatLog.sender_id == user_id)
            result = await session.execute(query.order_by(ChatLog.id))
            return list(result.scalars().all())

    @serialized
    async def add_quote(
        self, author_id: int, text: str, taken_at: datetime | None = None
    ) -> Quote:
        async with self.session() as session:
            quote = Quote(
                author_id=author_id,
                text=text,
                taken_at=_as_utc(taken_at) if taken_at else datetime.now(UTC),
            )
            session.add(quote)
            await session.commit()
            logger.info("Added quote", author_id=author_id)
            return quote

    @serialized
    async def get_last_quoted_at(self, user_id: int) -> datetime | None:
        async with self.session() as session:
            taken_at = await session.scalar(
                select(func.max(Quote.taken_at)).where(Quote.author_id == user_id)
            )
        return _as_utc(taken_at) if taken_at is not None else None

    @serialized
    async def find_quote(self, search: str) -> list[Quote]:
        async with self.session() as session:
            result = await session.execute(
                select(Quote)
                .where(func.lower(Quote.text).contains(search.lower()))
                .order_by(Quote.id)
            )
            return list(result.scalars().all())
