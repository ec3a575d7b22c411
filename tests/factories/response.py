"""
Survey response test factory.
"""

import factory
from faker import Faker

fake = Faker()


class ResponseFactory(factory.Factory):
    """
    Factory for generating survey response snapshots.

    Usage:
        response = ResponseFactory(rating=1, review="awful")
    """

    class Meta:
        model = dict

    id = factory.Sequence(lambda n: n + 1)
    survey_id = 1
    review = None
    rating = None
    score = None
    answers = factory.LazyFunction(list)


class TextAnswerResponseFactory(ResponseFactory):
    """Response whose only text is in a free-text answer."""

    answers = factory.LazyFunction(
        lambda: [{"question_id": "q2", "answer": fake.sentence(nb_words=10)}]
    )
