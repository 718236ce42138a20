from __future__ import annotations

import re

_NON_LETTER_RE = re.compile(r"[^a-z]")

PROFANITIES: tuple[str, ...] = (
    "fuck",
    "cock",
    "dick",
    "bitch",
    "shit",
    "asshole",
    "wank",
    "cunt",
    "piss",
)

CONJUNCTIONS = frozenset({"and", "but", "or", "yet", "for", "nor", "so"})
ARTICLES = frozenset({"the", "an", "a"})
IGNORED_WORDS = frozenset(
    {
        "you", "its", "not", "was", "are", "can", "now", "all", "how", "that",
        "this", "what", "thats", "they", "then", "there", "when", "with", "well",
        "from", "will", "here", "out", "dont",
    }
)  # fmt: skip

EMOTICONS = frozenset(
    {
        ":)", ":-)", ":(", ":-(", ":D", ":-D", ":P", ":-P", ":p", ":-p", ";)",
        ";-)", ":O", ":o", ":-O", ":|", ":-|", ":/", ":-/", ":\\", ":'(", ":3",
        "<3", "</3", "xD", "XD", "D:", "o_O", "O_o", "o.O", "O.o", "-_-", "^_^",
        "^^", ">_<", "T_T", ";_;", ":s", ":S", "B)", "8)",
    }
)  # fmt: skip

MIN_WORD_LENGTH = 3


def get_words(message: str) -> list[str]:
    """Split a message body on spaces, trimming trailing commas and periods."""
    words = (word.rstrip(",.") for word in message.strip().split(" "))
    return [word for word in words if word]


def clean_word(word: str) -> str:
    # "its" and "it's" count as the same word.
    return _NON_LETTER_RE.sub("", word.lower())


def is_url(word: str) -> bool:
    return word.startswith(("http://", "https://"))


def is_emoticon(word: str) -> bool:
    return word in EMOTICONS


def is_ignored_word(word: str) -> bool:
    word = word.lower()
    return word in CONJUNCTIONS or word in IGNORED_WORDS or word in ARTICLES


def is_common_word(word: str) -> bool:
    return is_ignored_word(word) or len(word) < MIN_WORD_LENGTH


def is_profanity(word: str) -> bool:
    word = word.lower()
    return any(profanity in word for profanity in PROFANITIES)
