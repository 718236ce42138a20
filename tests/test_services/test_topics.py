import pytest

from chatstats.config import Settings
from chatstats.data_models import ChatMessage, ChatUser
from chatstats.database.repository import Repository
from chatstats.services.topics import RARITY_BONUS, Topic, TopicScorer, score_topics


@pytest.fixture
async def repository():
    repo = Repository("sqlite+aiosqlite:///:memory:")
    await repo.initialize()
    yield repo
    await repo.close()


def by_name(topics: list[Topic]) -> dict[str, Topic]:
    return {topic.name: topic for topic in topics}


class TestScoreTopics:
    def test_normalises_mean_score_to_one(self) -> None:
        global_counts = {"a": 10, "b": 4, "c": 2}
        messages = ["a a a b b", "b b"]

        topics = score_topics(global_counts, messages, "-")

        assert topics is not None
        assert [topic.name for topic in topics] == ["b", "a"]
        scores = by_name(topics)
        assert scores["b"].score == pytest.approx(1.0 / 0.65)
        assert scores["a"].score == pytest.approx(0.3 / 0.65)
        assert scores["b"].user_count == 4
        assert scores["b"].global_count == 4
        assert scores["a"].user_count == 3

    def test_rare_words_get_bonus(self) -> None:
        topics = score_topics({"a": 10, "b": 4}, ["b"], "-")

        assert topics is not None
        assert len(topics) == 1
        assert topics[0].score == pytest.approx(1.0 + RARITY_BONUS)

    def test_no_bonus_when_user_is_only_speaker(self) -> None:
        topics = score_topics({"a": 10, "b": 2}, ["b b"], "-")

        assert topics is not None
        assert topics[0].score == pytest.approx(1.0)

    def test_no_bonus_for_globally_common_words(self) -> None:
        topics = score_topics({"a": 10}, ["a"], "-")

        assert topics is not None
        assert topics[0].score == pytest.approx(1.0)

    def test_words_used_more_than_globally_are_dropped(self) -> None:
        assert score_topics({"a": 2}, ["a a a"], "-") is None

    def test_words_missing_globally_are_ignored(self) -> None:
        topics = score_topics({"a": 5}, ["a unknown words"], "-")

        assert topics is not None
        assert [topic.name for topic in topics] == ["a"]

    def test_commands_are_excluded(self) -> None:
        topics = score_topics({"topics": 5, "pizza": 5}, ["-topics alice", "pizza"], "-")

        assert topics is not None
        assert [topic.name for topic in topics] == ["pizza"]

    def test_custom_command_prefix(self) -> None:
        topics = score_topics({"topics": 5, "pizza": 5}, ["!topics", "pizza"], "!")

        assert topics is not None
        assert [topic.name for topic in topics] == ["pizza"]

    def test_no_messages(self) -> None:
        assert score_topics({"a": 5}, [], "-") is None

    def test_empty_global_table(self) -> None:
        assert score_topics({}, ["anything at all"], "-") is None

    def test_ties_are_broken_by_word(self) -> None:
        topics = score_topics({"y": 4, "x": 4, "z": 100}, ["y x"], "-")

        assert topics is not None
        assert [topic.name for topic in topics] == ["x", "y"]
        assert topics[0].score == pytest.approx(topics[1].score)


class TestTopicScorer:
    async def test_find_topics_reads_store(self, repository: Repository) -> None:
        alice = await repository.upsert_user(ChatUser("uid-alice", "alice"))
        bob = await repository.upsert_user(ChatUser("uid-bob", "bob"))
        for word, uses in {"a": 10, "b": 4, "c": 2, "lonely": 1}.items():
            for _ in range(uses):
                await repository.increment_word(word)

        alice_chat = ChatUser("uid-alice", "alice")
        for body in ["a a a b b", "b b", "lonely", "-topics"]:
            await repository.add_message(ChatMessage(alice_chat, "#chat", body), alice.id)
        await repository.add_message(ChatMessage(alice_chat, "#elsewhere", "c c"), alice.id)
        await repository.add_message(ChatMessage(ChatUser("uid-bob", "bob"), "#chat", "c"), bob.id)

        scorer = TopicScorer(repository, Settings(_env_file=None, command_prefix="-"))
        topics = await scorer.find_topics(alice.id, "#chat")

        assert topics is not None
        assert [topic.name for topic in topics] == ["b", "a"]
        assert topics[0].score == pytest.approx(1.0 / 0.65)
        assert repository.lock_message == "None"

    async def test_find_topics_without_history(self, repository: Repository) -> None:
        alice = await repository.upsert_user(ChatUser("uid-alice", "alice"))
        await repository.increment_word("a")
        await repository.increment_word("a")

        scorer = TopicScorer(repository, Settings(_env_file=None))

        assert await scorer.find_topics(alice.id, "#chat") is None
