from chatstats.services.quote_sampler import QuoteSampler, SnagOutcome
from chatstats.services.stats_handler import StatsHandler
from chatstats.services.topics import Topic, TopicScorer, score_topics

__all__ = [
    "QuoteSampler",
    "SnagOutcome",
    "StatsHandler",
    "Topic",
    "TopicScorer",
    "score_topics",
]
