"""
Feedback Analysis Services

Rule evaluation, action execution, survey flow validation, segment
compilation and segment membership. The orchestrating pipeline lives in
``app.services.feedback.pipeline``.
"""

from app.services.feedback.rule_engine import RuleEngine, rule_engine, find_negative_keywords, requests_contact
from app.services.feedback.survey_flow_validator import validate_survey_flow, SurveyGraph
from app.services.feedback.segment_query_compiler import SegmentQueryCompiler, CompiledSegment, compile_segment
from app.services.feedback.action_factory import ActionFactory
from app.services.feedback.action_executor import ActionExecutor, IntentEffect, build_effects
from app.services.feedback.segmentation_service import SegmentationService

__all__ = [
    "RuleEngine",
    "rule_engine",
    "find_negative_keywords",
    "requests_contact",
    "validate_survey_flow",
    "SurveyGraph",
    "SegmentQueryCompiler",
    "CompiledSegment",
    "compile_segment",
    "ActionFactory",
    "ActionExecutor",
    "IntentEffect",
    "build_effects",
    "SegmentationService",
]
