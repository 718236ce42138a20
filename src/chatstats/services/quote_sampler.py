from __future__ import annotations

import enum
import random
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from chatstats.config import Settings, get_settings

if TYPE_CHECKING:
    from chatstats.data_models import ChatMessage
    from chatstats.database.repository import Repository

logger = structlog.get_logger()

ReplyCallback = Callable[[str], Awaitable[None]]

SNAG_MESSAGES: tuple[str, ...] = (
    "Snagged the shit outta that one!",
    "What a lame quote. Snagged!",
    "Imma stash those words for you.",
    "Everything looks great out of context. Snagged!",
    "Yoink!",
    "That'll look nice on the stats page.",
)
GENERIC_SNAG_MESSAGE = "Snagged!"
REQUESTED_SNAG_MESSAGE = "Snagged line on request."

# Lines need strictly more words than this to be snagged at random.
MIN_WORDS_EXCLUSIVE = 6


class SnagOutcome(enum.Enum):
    NOT_SNAGGED = "not_snagged"
    COOLDOWN = "cooldown"
    TOO_SHORT = "too_short"
    REQUESTED = "requested"
    SILENT = "silent"
    ANNOUNCED = "announced"

    @property
    def snagged(self) -> bool:
        return self in (SnagOutcome.REQUESTED, SnagOutcome.SILENT, SnagOutcome.ANNOUNCED)


class QuoteSampler:
    """Decides per message whether it gets archived as a quote.

    Manual overrides come first: ``snag_next_line`` snags whatever is said
    next, ``snag_next_line_by`` the next line of one nickname. Both are
    one-shot and bypass every other check. Otherwise a line of more than six
    words from a user who has not been quoted within the cooldown is snagged
    with ``quote_chance``, and announced unless notifications are off or the
    ``quote_silent_chance`` draw hides it.
    """

    def __init__(
        self,
        repository: Repository,
        settings: Settings | None = None,
        rng: random.Random | None = None,
        snag_messages: Sequence[str] = SNAG_MESSAGES,
    ) -> None:
        settings = settings if settings is not None else get_settings()
        self._repository = repository
        self._chance = settings.quote_chance
        self._silent_chance = settings.quote_silent_chance
        self._min_delay = timedelta(hours=settings.quote_min_delay_hours)
        self._allow_notifications = settings.allow_quote_notifications
        self._rng = rng if rng is not None else random.Random()
        self._snag_messages = tuple(snag_messages)
        self._snag_next_line = False
        self._snag_next_line_by: str | None = None

    @property
    def snag_next_line(self) -> bool:
        return self._snag_next_line

    @snag_next_line.setter
    def snag_next_line(self, value: bool) -> None:
        self._snag_next_line = value

    @property
    def snag_next_line_by(self) -> str | None:
        return self._snag_next_line_by

    @snag_next_line_by.setter
    def snag_next_line_by(self, nickname: str | None) -> None:
        self._snag_next_line_by = nickname

    async def consider(
        self,
        message: ChatMessage,
        author_id: int,
        words: Sequence[str],
        reply: ReplyCallback,
    ) -> SnagOutcome:
        async with self._repository.guard.hold("QuoteSampler.consider"):
            outcome, acknowledgement = await self._decide(message, author_id, words)

        if acknowledgement is not None:
            try:
                await reply(acknowledgement)
            except Exception:
                logger.exception(
                    "Failed to send snag acknowledgement",
                    nick=message.sender.nickname,
                    channel=message.channel,
                )
        return outcome

    async def _decide(
        self, message: ChatMessage, author_id: int, words: Sequence[str]
    ) -> tuple[SnagOutcome, str | None]:
        if self._snag_next_line:
            await self._snag(message, author_id)
            self._snag_next_line = False
            return SnagOutcome.REQUESTED, REQUESTED_SNAG_MESSAGE

        if self._snag_next_line_by == message.sender.nickname:
            await self._snag(message, author_id)
            self._snag_next_line_by = None
            return SnagOutcome.REQUESTED, REQUESTED_SNAG_MESSAGE

        last_quoted_at = await self._repository.get_last_quoted_at(author_id)
        if last_quoted_at is not None and datetime.now(UTC) - last_quoted_at < self._min_delay:
            return SnagOutcome.COOLDOWN, None

        if len(words) <= MIN_WORDS_EXCLUSIVE:
            return SnagOutcome.TOO_SHORT, None

        if self._rng.random() >= self._chance:
            return SnagOutcome.NOT_SNAGGED, None

        hidden = self._rng.random() < self._silent_chance
        if not self._allow_notifications or hidden:
            logger.info("Silently snagging message", author_id=author_id)
            await self._snag(message, author_id)
            return SnagOutcome.SILENT, None

        await self._snag(message, author_id)
        return SnagOutcome.ANNOUNCED, self._pick_acknowledgement()

    def _pick_acknowledgement(self) -> str:
        # Half of the time a canned phrase, otherwise the generic reply.
        count = len(self._snag_messages)
        if count == 0:
            return GENERIC_SNAG_MESSAGE
        draw = self._rng.randrange(count * 2)
        if draw < count:
            return self._snag_messages[draw]
        return GENERIC_SNAG_MESSAGE

    async def _snag(self, message: ChatMessage, author_id: int) -> None:
        await self._repository.add_quote(author_id, message.as_quote_text())
        logger.info("Snagged quote", nick=message.sender.nickname, channel=message.channel)
