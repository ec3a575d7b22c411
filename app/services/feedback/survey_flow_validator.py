"""
Survey Flow Validator

Pre-publish checks for a survey's branching question graph:
- required content (questions, target audience)
- per-question text, choice options, logic rule limit
- logic rule referential integrity (dangling and self references)
- circular flow detection
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from app.schemas.feedback import (
    CHOICE_QUESTION_TYPES,
    MAX_LOGIC_RULES,
    FlowValidationResult,
    QuestionDefinition,
    SurveyDefinition,
)


@dataclass
class SurveyGraph:
    """
    Question graph in arena form.

    Nodes are questions addressed by position; ``edges`` holds (from, to)
    index pairs in rule order followed by the default branch. Self edges and
    edges to unknown ids are left out because referential checks report them.
    """
    nodes: list[QuestionDefinition]
    index: dict[str, int]
    edges: list[tuple[int, int]] = field(default_factory=list)
    adjacency: list[list[int]] = field(default_factory=list)

    @classmethod
    def build(cls, questions: list[QuestionDefinition]) -> "SurveyGraph":
        index: dict[str, int] = {}
        for i, q in enumerate(questions):
            if q.id is not None and q.id not in index:
                index[q.id] = i

        graph = cls(nodes=list(questions), index=index, adjacency=[[] for _ in questions])
        for i, q in enumerate(questions):
            targets = [r.next_question_id for r in q.logic_rules if r.next_question_id]
            if q.default_next_question_id:
                targets.append(q.default_next_question_id)
            for target in targets:
                j = index.get(target)
                if j is None or j == i:
                    continue
                graph.edges.append((i, j))
                graph.adjacency[i].append(j)
        return graph

    def find_cycle(self) -> Optional[int]:
        """Index of the target of the first back edge found by DFS, or None if acyclic."""
        visited = [False] * len(self.nodes)
        rec_stack = [False] * len(self.nodes)

        for root in range(len(self.nodes)):
            if visited[root]:
                continue
            # (node, next adjacency position)
            stack = [(root, 0)]
            visited[root] = True
            rec_stack[root] = True
            while stack:
                node, pos = stack[-1]
                if pos < len(self.adjacency[node]):
                    stack[-1] = (node, pos + 1)
                    child = self.adjacency[node][pos]
                    if rec_stack[child]:
                        return child
                    if not visited[child]:
                        visited[child] = True
                        rec_stack[child] = True
                        stack.append((child, 0))
                else:
                    rec_stack[node] = False
                    stack.pop()
        return None


def survey_definition_from_model(survey: Any) -> SurveyDefinition:
    """Build a SurveyDefinition from a Survey row and its questions."""
    questions = [
        {
            "id": q.question_id,
            "type": q.question_type,
            "question_text": q.question_text,
            "title": q.title,
            "options": q.options,
            "logic_rules": q.logic_rules,
            "default_next_question_id": q.default_next_question_id,
        }
        for q in (survey.questions or [])
    ]
    return SurveyDefinition.model_validate(
        {
            "title": survey.title,
            "questions": questions,
            "target_audience": survey.target_audience,
        }
    )


def _label(q: QuestionDefinition, position: int) -> str:
    return q.question_text or q.title or str(position + 1)


def _ref_label(q: QuestionDefinition) -> str:
    return q.question_text or q.id or ""


def validate_survey_flow(survey: Union[SurveyDefinition, Mapping[str, Any]]) -> FlowValidationResult:
    """Collect every publish-blocking problem in ``survey``; valid iff no errors."""
    if not isinstance(survey, SurveyDefinition):
        survey = SurveyDefinition.model_validate(survey)

    errors: list[str] = []
    questions = survey.questions

    if not questions:
        errors.append("Survey must have at least one question")

    if not (survey.target_audience and survey.target_audience.audience_type):
        errors.append("Target audience must be defined")

    if not questions:
        return FlowValidationResult(valid=False, errors=errors)

    graph = SurveyGraph.build(questions)

    for i, q in enumerate(questions):
        if not q.question_text and not q.title:
            errors.append(f"Question {i + 1} is missing question text")

        if q.type in CHOICE_QUESTION_TYPES and len(q.options) < 2:
            errors.append(f'Question "{_label(q, i)}" ({q.type}) must have at least 2 options')

        if len(q.logic_rules) > MAX_LOGIC_RULES:
            errors.append(
                f'Question "{_label(q, i)}" has {len(q.logic_rules)} logic rules (max {MAX_LOGIC_RULES})'
            )

    for q in questions:
        for k, rule in enumerate(q.logic_rules):
            if not rule.next_question_id:
                continue
            if rule.next_question_id not in graph.index:
                errors.append(f'Logic rule {k + 1} in "{_ref_label(q)}" references non-existent question')
            if rule.next_question_id == q.id:
                errors.append(f'Logic rule {k + 1} in "{_ref_label(q)}" references itself (self-loop)')

        if q.default_next_question_id:
            if q.default_next_question_id not in graph.index:
                errors.append(f'Default branch in "{_ref_label(q)}" references non-existent question')
            if q.default_next_question_id == q.id:
                errors.append(f'Default branch in "{_ref_label(q)}" references itself')

    offender = graph.find_cycle()
    if offender is not None:
        errors.append(f'Circular logic detected involving question "{_ref_label(graph.nodes[offender])}"')

    return FlowValidationResult(valid=not errors, errors=errors)
