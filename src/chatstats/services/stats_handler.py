from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import SQLAlchemyError

from chatstats.config import Settings, get_settings
from chatstats.database.exceptions import CorruptedDatabaseError, DatabaseConnectionError
from chatstats.services import words as word_tools
from chatstats.services.quote_sampler import QuoteSampler, ReplyCallback, SnagOutcome

if TYPE_CHECKING:
    from chatstats.data_models import ChatMessage
    from chatstats.database.repository import Repository

logger = structlog.get_logger()

GLOBAL_LINE_COUNT = "global_line_count"
GLOBAL_WORD_COUNT = "global_word_count"


class StatsHandler:
    """Feeds every inbound chat message into the statistics store.

    Order per message: log the line, bump the user's counters and the global
    vars, give the quote sampler a chance, then count emoticons, URLs, words
    and profanities.
    """

    def __init__(
        self,
        repository: Repository,
        settings: Settings | None = None,
        quote_sampler: QuoteSampler | None = None,
    ) -> None:
        settings = settings if settings is not None else get_settings()
        self._repository = repository
        self._ignore_common_words = settings.ignore_common_words
        self.quote_sampler = (
            quote_sampler if quote_sampler is not None else QuoteSampler(repository, settings)
        )

    async def handle_message(
        self, message: ChatMessage, reply: ReplyCallback
    ) -> SnagOutcome | None:
        """Process one message. Returns the quote outcome, or None if skipped.

        Store failures are logged and the message is dropped so later messages
        still get counted. Corruption is logged and re-raised.
        """
        if not self._repository.is_connected:
            logger.debug("Stats database not connected, skipping message")
            return None

        try:
            return await self._process(message, reply)
        except CorruptedDatabaseError as e:
            logger.error(
                "Stats database is corrupted",
                table=e.table,
                key=e.key,
                count=e.count,
                channel=message.channel,
            )
            raise
        except DatabaseConnectionError:
            logger.warning("Stats database disconnected while processing message")
            return None
        except SQLAlchemyError as e:
            logger.exception(
                "Failed to record message statistics",
                channel=message.channel,
                nick=message.sender.nickname,
                error=str(e),
            )
            return None

    async def _process(self, message: ChatMessage, reply: ReplyCallback) -> SnagOutcome:
        repo = self._repository
        user = await repo.upsert_user(message.sender)
        await repo.add_message(message, user.id)

        if message.is_action:
            await repo.increment_actions(user.id)
        else:
            await repo.increment_line_count(user.id)

        words = word_tools.get_words(message.body)
        await repo.increment_word_count(user.id, len(words))
        await repo.increment_var(GLOBAL_LINE_COUNT)
        await repo.increment_var(GLOBAL_WORD_COUNT, len(words))

        outcome = await self.quote_sampler.consider(message, user.id, words, reply)

        for word in words:
            if word_tools.is_emoticon(word):
                await repo.increment_emoticon(word, user.id)

        for word in words:
            await self._process_word(message, word, user.id)

        return outcome

    async def _process_word(self, message: ChatMessage, word: str, user_id: int) -> None:
        if word_tools.is_url(word):
            await self._repository.increment_url(word, user_id, message.body)
        else:
            cleaned = word_tools.clean_word(word)
            if cleaned and not (self._ignore_common_words and word_tools.is_common_word(cleaned)):
                await self._repository.increment_word(cleaned)

        if word_tools.is_profanity(word):
            await self._repository.increment_profanities(user_id)
