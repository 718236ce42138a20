import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

import structlog

from chatstats.config import Settings, get_database_directory, get_settings
from chatstats.data_models import ChatMessage, ChatUser
from chatstats.database.exceptions import NotFoundError
from chatstats.database.repository import Repository
from chatstats.services.stats_handler import StatsHandler
from chatstats.services.topics import TopicScorer

ACTION_PREFIX = "* "


def configure_logging(log_level: str) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def parse_log_line(line: str, channel: str) -> ChatMessage | None:
    """Parse ``nick: message`` or ``* nick does something`` into a message."""
    line = line.rstrip("\n")
    if line.startswith(ACTION_PREFIX):
        nick, _, body = line[len(ACTION_PREFIX) :].partition(" ")
        is_action = True
    else:
        nick, sep, body = line.partition(": ")
        if not sep:
            return None
        is_action = False

    nick = nick.strip()
    if not nick or not body.strip():
        return None
    return ChatMessage(
        sender=ChatUser(unique_id=nick, nickname=nick, addressable_name=nick),
        channel=channel,
        body=body,
        is_action=is_action,
    )


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatstats",
        description="Collect chat statistics, snag quotes and find what people talk about.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the statistics tables.")

    replay = subparsers.add_parser(
        "replay",
        help="Feed a plain-text chat log (one 'nick: message' per line) through the stats handler.",
    )
    replay.add_argument("logfile", type=Path, help="Path to the chat log.")
    replay.add_argument("--channel", required=True, help="Channel the log was recorded in.")

    topics = subparsers.add_parser("topics", help="Show the topics of a user in a channel.")
    topics.add_argument("--nick", required=True, help="Nickname of the user.")
    topics.add_argument("--channel", required=True, help="Channel to look at.")
    topics.add_argument("--limit", type=int, default=10, help="Number of topics to show.")
    return parser


async def _print_reply(text: str) -> None:
    print(f"<chatstats> {text}")


async def replay_log(
    repository: Repository, settings: Settings, logfile: Path, channel: str
) -> int:
    handler = StatsHandler(repository, settings)
    processed = 0
    with logfile.open(encoding="utf-8") as f:
        for line in f:
            message = parse_log_line(line, channel)
            if message is None:
                continue
            await handler.handle_message(message, _print_reply)
            processed += 1
    return processed


async def show_topics(
    repository: Repository, settings: Settings, nick: str, channel: str, limit: int
) -> bool:
    user = await repository.get_user_by_nickname(nick)
    topics = await TopicScorer(repository, settings).find_topics(user.id, channel)
    if not topics:
        print(f"No topics available for {nick} in {channel}.")
        return False
    for topic in topics[:limit]:
        print(f"{topic.name:<24} {topic.score:8.3f}  ({topic.user_count}/{topic.global_count})")
    return True


async def run(args: argparse.Namespace, settings: Settings) -> int:
    db_dir = get_database_directory(settings.database_url)
    if db_dir is not None:
        db_dir.mkdir(parents=True, exist_ok=True)

    repository = Repository(settings.database_url)
    await repository.initialize()
    logger = structlog.get_logger()
    try:
        if args.command == "replay":
            processed = await replay_log(repository, settings, args.logfile, args.channel)
            logger.info("Replay complete", messages=processed)
        elif args.command == "topics":
            try:
                found = await show_topics(
                    repository, settings, args.nick, args.channel, args.limit
                )
            except (NotFoundError, ValueError) as e:
                print(str(e), file=sys.stderr)
                return 1
            if not found:
                return 1
        else:
            logger.info("Tables ready", tables=repository.get_table_names())
    finally:
        await repository.close()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_argument_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    logger = structlog.get_logger()
    logger.info("Starting chatstats", command=args.command)

    try:
        return asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.info("Shutdown requested")
        return 130
    except Exception:
        logger.exception("Fatal error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
