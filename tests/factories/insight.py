"""
Insight test factory.

Generates language-model insight records in the camelCase shape the
provider returns.
"""

import factory
from faker import Faker

fake = Faker()


class InsightFactory(factory.Factory):
    """
    Factory for generating Insight payloads.

    Usage:
        insight = InsightFactory()
        insight = NegativeInsightFactory(urgency="high")
    """

    class Meta:
        model = dict

    sentiment = "neutral"
    sentimentScore = 0.0
    urgency = "normal"
    emotions = factory.LazyFunction(list)
    keywords = factory.LazyFunction(lambda: fake.words(nb=3))
    themes = factory.LazyFunction(list)
    classification = factory.LazyFunction(dict)
    summary = factory.LazyFunction(lambda: fake.sentence(nb_words=8))
    confidence = factory.LazyFunction(lambda: round(fake.pyfloat(min_value=0.5, max_value=1.0), 2))


class NegativeInsightFactory(InsightFactory):
    """Complaint-shaped insight."""

    sentiment = "negative"
    sentimentScore = -0.8
    emotions = factory.LazyFunction(lambda: ["frustration"])
    classification = factory.LazyFunction(lambda: {"isComplaint": True})


class PraiseInsightFactory(InsightFactory):
    """Praise-shaped insight."""

    sentiment = "positive"
    sentimentScore = 0.9
    urgency = "low"
    emotions = factory.LazyFunction(lambda: ["appreciation"])
    classification = factory.LazyFunction(lambda: {"isPraise": True})
