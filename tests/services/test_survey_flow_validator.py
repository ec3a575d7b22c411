"""
Tests for the survey flow validator and its question graph.
"""

import pytest

from app.services.feedback.survey_flow_validator import SurveyGraph, validate_survey_flow
from app.schemas.feedback import SurveyDefinition
from tests.factories import ChoiceQuestionFactory, QuestionFactory, SurveyDefinitionFactory


def rule(target: str) -> dict:
    return {"condition": {"operator": "equals", "value": "x"}, "nextQuestionId": target}


def cycle_errors(result) -> list[str]:
    return [e for e in result.errors if e.startswith("Circular logic")]


class TestValidSurveys:

    def test_linear_survey_is_valid(self):
        survey = SurveyDefinitionFactory(
            questions=[
                QuestionFactory(id="q1", default_next_question_id="q2"),
                QuestionFactory(id="q2", logic_rules=[rule("q3")]),
                ChoiceQuestionFactory(id="q3"),
            ]
        )

        result = validate_survey_flow(survey)

        assert result.valid is True
        assert result.errors == []

    def test_branches_converging_are_not_a_cycle(self):
        survey = SurveyDefinitionFactory(
            questions=[
                QuestionFactory(id="q1", logic_rules=[rule("q2"), rule("q3")]),
                QuestionFactory(id="q2", default_next_question_id="q4"),
                QuestionFactory(id="q3", default_next_question_id="q4"),
                QuestionFactory(id="q4"),
            ]
        )

        assert validate_survey_flow(survey).valid is True

    def test_camel_case_builder_payload(self):
        survey = {
            "title": "Builder",
            "targetAudience": {"audienceType": "segments", "segmentIds": [1]},
            "questions": [
                {"questionId": "a", "questionType": "text", "questionText": "First?", "defaultNextQuestionId": "b"},
                {"questionId": "b", "questionType": "yesno", "title": "Second?", "options": ["Yes", "No"]},
            ],
        }

        assert validate_survey_flow(survey).valid is True


class TestStructuralErrors:

    def test_empty_survey(self):
        result = validate_survey_flow({"title": "Empty", "questions": [], "target_audience": None})

        assert result.valid is False
        assert result.errors == [
            "Survey must have at least one question",
            "Target audience must be defined",
        ]

    def test_missing_question_text(self):
        survey = SurveyDefinitionFactory(questions=[QuestionFactory(id="q1", question_text=None)])

        result = validate_survey_flow(survey)

        assert result.errors == ["Question 1 is missing question text"]

    def test_title_counts_as_question_text(self):
        survey = SurveyDefinitionFactory(questions=[QuestionFactory(id="q1", question_text=None, title="Why?")])

        assert validate_survey_flow(survey).valid is True

    @pytest.mark.parametrize("qtype", ["radio", "checkbox", "yesno", "select", "imageChoice"])
    def test_choice_questions_need_two_options(self, qtype):
        survey = SurveyDefinitionFactory(
            questions=[QuestionFactory(id="q1", type=qtype, question_text="Pick one", options=["Only"])]
        )

        result = validate_survey_flow(survey)

        assert result.errors == [f'Question "Pick one" ({qtype}) must have at least 2 options']

    def test_too_many_logic_rules(self):
        survey = SurveyDefinitionFactory(
            questions=[
                QuestionFactory(id="q1", question_text="Busy", logic_rules=[rule("q2")] * 11),
                QuestionFactory(id="q2"),
            ]
        )

        result = validate_survey_flow(survey)

        assert result.errors == ['Question "Busy" has 11 logic rules (max 10)']

    def test_errors_accumulate(self):
        survey = SurveyDefinitionFactory(
            target_audience={},
            questions=[
                QuestionFactory(id="q1", question_text=None),
                ChoiceQuestionFactory(id="q2", question_text="Choose", options=[]),
            ],
        )

        result = validate_survey_flow(survey)

        assert result.valid is False
        assert len(result.errors) == 3


class TestReferences:

    def test_dangling_logic_rule(self):
        survey = SurveyDefinitionFactory(
            questions=[QuestionFactory(id="q1", question_text="Start", logic_rules=[rule("missing")])]
        )

        result = validate_survey_flow(survey)

        assert result.errors == ['Logic rule 1 in "Start" references non-existent question']

    def test_dangling_default_branch(self):
        survey = SurveyDefinitionFactory(
            questions=[QuestionFactory(id="q1", question_text="Start", default_next_question_id="nowhere")]
        )

        result = validate_survey_flow(survey)

        assert result.errors == ['Default branch in "Start" references non-existent question']

    def test_self_reference_is_not_a_cycle(self):
        survey = SurveyDefinitionFactory(
            questions=[QuestionFactory(id="a", question_text="Loop", logic_rules=[rule("a")])]
        )

        result = validate_survey_flow(survey)

        assert result.valid is False
        assert result.errors == ['Logic rule 1 in "Loop" references itself (self-loop)']
        assert cycle_errors(result) == []

    def test_default_branch_self_reference(self):
        survey = SurveyDefinitionFactory(
            questions=[QuestionFactory(id="a", question_text="Loop", default_next_question_id="a")]
        )

        result = validate_survey_flow(survey)

        assert result.errors == ['Default branch in "Loop" references itself']


class TestCycles:

    def test_two_question_cycle(self):
        survey = SurveyDefinitionFactory(
            questions=[
                QuestionFactory(id="A", question_text="Question A", logic_rules=[rule("B")]),
                QuestionFactory(id="B", question_text="Question B", logic_rules=[rule("A")]),
            ]
        )

        result = validate_survey_flow(survey)

        assert result.valid is False
        assert len(result.errors) == 1
        assert result.errors[0] in (
            'Circular logic detected involving question "Question A"',
            'Circular logic detected involving question "Question B"',
        )

    def test_cycle_through_default_branch(self):
        survey = SurveyDefinitionFactory(
            questions=[
                QuestionFactory(id="q1", question_text="One", default_next_question_id="q2"),
                QuestionFactory(id="q2", question_text="Two", default_next_question_id="q3"),
                QuestionFactory(id="q3", question_text="Three", logic_rules=[rule("q1")]),
            ]
        )

        result = validate_survey_flow(survey)

        assert cycle_errors(result) == ['Circular logic detected involving question "One"']

    def test_only_first_cycle_is_reported(self):
        survey = SurveyDefinitionFactory(
            questions=[
                QuestionFactory(id="a", logic_rules=[rule("b")]),
                QuestionFactory(id="b", logic_rules=[rule("a")]),
                QuestionFactory(id="c", logic_rules=[rule("d")]),
                QuestionFactory(id="d", logic_rules=[rule("c")]),
            ]
        )

        assert len(cycle_errors(validate_survey_flow(survey))) == 1


class TestSurveyGraph:

    def test_edges_exclude_self_and_dangling(self):
        survey = SurveyDefinition.model_validate(
            SurveyDefinitionFactory(
                questions=[
                    QuestionFactory(id="a", logic_rules=[rule("a"), rule("b"), rule("zzz")]),
                    QuestionFactory(id="b", default_next_question_id="a"),
                ]
            )
        )

        graph = SurveyGraph.build(survey.questions)

        assert graph.index == {"a": 0, "b": 1}
        assert graph.edges == [(0, 1), (1, 0)]
        assert graph.adjacency == [[1], [0]]

    def test_acyclic_graph_has_no_cycle(self):
        survey = SurveyDefinition.model_validate(
            SurveyDefinitionFactory(
                questions=[
                    QuestionFactory(id="a", default_next_question_id="b"),
                    QuestionFactory(id="b"),
                ]
            )
        )

        assert SurveyGraph.build(survey.questions).find_cycle() is None
