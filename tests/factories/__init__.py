"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation.
"""

from .insight import InsightFactory, NegativeInsightFactory, PraiseInsightFactory
from .response import ResponseFactory, TextAnswerResponseFactory
from .survey import QuestionFactory, ChoiceQuestionFactory, SurveyDefinitionFactory
from .contact import ContactFactory

__all__ = [
    "InsightFactory",
    "NegativeInsightFactory",
    "PraiseInsightFactory",
    "ResponseFactory",
    "TextAnswerResponseFactory",
    "QuestionFactory",
    "ChoiceQuestionFactory",
    "SurveyDefinitionFactory",
    "ContactFactory",
]
