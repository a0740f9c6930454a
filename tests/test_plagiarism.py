import json
from unittest.mock import AsyncMock

import pytest

from gradewise.config import Settings
from gradewise.exceptions import TransportError
from gradewise.schemas.assessment import Answer, Assessment, Question, Submission
from gradewise.schemas.plagiarism import PlagiarismReport, StylometricScore
from gradewise.services.fallbacks import PLAGIARISM_UNAVAILABLE, REPORT_UNAVAILABLE
from gradewise.services.plagiarism import PlagiarismDetector
from gradewise.services.scoring import SimilarityBands


class FixedStylometry:
    def __init__(self, score: float) -> None:
        self._score = score

    def score(self, text: str) -> StylometricScore:
        return StylometricScore(score=self._score)


class BrokenStylometry:
    def score(self, text: str) -> StylometricScore:
        raise RuntimeError("tokenizer crashed")


def _detector(client, settings, heuristic: float = 0.0) -> PlagiarismDetector:
    return PlagiarismDetector(client, settings, stylometry=FixedStylometry(heuristic))


ESSAY = Assessment(
    id="a1",
    questions=[
        Question(id="q1", question="Explain photosynthesis.", type="essay"),
        Question(id="q2", question="Pick one.", type="multiple-choice", correct_answer="B"),
    ],
)


class TestAssessText:
    @pytest.mark.asyncio
    async def test_ai_judgement_dominates(self, mock_client, mock_settings):
        mock_client.execute_prompt = AsyncMock(
            return_value="Score: 100\nConfidence: 90\nReasoning: reads like a textbook"
        )

        verdict = await _detector(mock_client, mock_settings).assess_text("some text")

        assert verdict.similarity_score == pytest.approx(70)
        assert verdict.ai_confidence == 90
        assert verdict.feedback == SimilarityBands().significant_message
        assert not verdict.is_fallback

    @pytest.mark.asyncio
    async def test_heuristic_only(self, mock_client, mock_settings):
        mock_client.execute_prompt = AsyncMock(return_value="Score: 0\nConfidence: 100")

        verdict = await _detector(mock_client, mock_settings, heuristic=100).assess_text("text")

        assert verdict.similarity_score == pytest.approx(30)
        assert verdict.feedback == SimilarityBands().possible_message

    @pytest.mark.asyncio
    async def test_model_failure_uses_neutral_judgement(self, mock_client, mock_settings):
        mock_client.execute_prompt = AsyncMock(side_effect=TransportError("timeout"))

        verdict = await _detector(mock_client, mock_settings).assess_text("text")

        assert verdict.ai_score == 50
        assert verdict.ai_confidence == 0
        assert verdict.similarity_score == pytest.approx(35)

    @pytest.mark.asyncio
    async def test_unlabeled_reply(self, mock_client, mock_settings):
        mock_client.execute_prompt = AsyncMock(return_value="Looks fine to me.")

        verdict = await _detector(mock_client, mock_settings).assess_text("text")

        assert verdict.ai_score == 50
        assert verdict.ai_confidence == 70

    @pytest.mark.asyncio
    async def test_stylometry_failure_degrades(self, mock_client, mock_settings):
        mock_client.execute_prompt = AsyncMock(return_value="Score: 10\nConfidence: 80")
        detector = PlagiarismDetector(mock_client, mock_settings, stylometry=BrokenStylometry())

        verdict = await detector.assess_text("text")

        assert verdict.similarity_score == 0
        assert verdict.feedback == PLAGIARISM_UNAVAILABLE
        assert verdict.is_fallback


class TestCheckSubmission:
    @pytest.mark.asyncio
    async def test_short_and_multiple_choice_answers_are_skipped(self, mock_client, mock_settings):
        submission = Submission(
            id="s1",
            answers=[
                Answer(question_id="q1", answer="Too short."),
                Answer(question_id="q2", answer="B" * 300),
            ],
        )

        report = await _detector(mock_client, mock_settings).check_submission(
            submission, [], ESSAY
        )

        assert report == PlagiarismReport()
        mock_client.execute_prompt.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_flags_copied_answer(self, mock_client, mock_settings):
        text = "Plants turn light into chemical energy."
        mock_client.execute_prompt = AsyncMock(
            return_value=json.dumps({"similarity_score": 0.95, "evidence": "identical"})
        )
        previous = [Submission(id="prev-1", answers=[Answer(question_id="q1", answer=text)])]
        submission = Submission(id="s1", answers=[Answer(question_id="q1", answer=text)])

        report = await _detector(mock_client, mock_settings).check_submission(
            submission, previous, ESSAY
        )

        assert report.is_plagiarism_detected
        assert report.overall_similarity_score == pytest.approx(0.95)
        flagged = report.flagged_answers[0]
        assert flagged.matched_submission_id == "prev-1"
        assert flagged.evidence == "identical"

    @pytest.mark.asyncio
    async def test_ai_and_source_checks_on_long_answers(self, mock_client, mock_settings):
        def reply(system_message, user_message, **kwargs):
            if "AI-generated" in system_message:
                return '{"score": 0.9, "evidence": "generic transitions"}'
            if "sources" in system_message:
                return json.dumps(
                    [
                        {"source_type": "Wikipedia", "confidence": 0.8},
                        {"source_type": "Blog", "confidence": 0.3},
                    ]
                )
            raise AssertionError(f"unexpected prompt: {system_message}")

        mock_client.execute_prompt = AsyncMock(side_effect=reply)
        text = "Photosynthesis converts light energy into chemical energy stored in glucose. " * 2
        submission = Submission(id="s1", answers=[Answer(question_id="q1", answer=text[:150])])

        report = await _detector(mock_client, mock_settings).check_submission(
            submission, [], ESSAY
        )

        assert report.ai_generated_content_detected
        assert report.ai_generated_content_score == pytest.approx(0.9)
        assert [s.source_type for s in report.potential_sources[0].sources] == ["Wikipedia"]
        assert report.cross_language_matches == []
        assert not report.is_plagiarism_detected

    @pytest.mark.asyncio
    async def test_failed_checks_report_nothing(self, mock_client, mock_settings):
        mock_client.execute_prompt = AsyncMock(side_effect=TransportError("down"))
        submission = Submission(id="s1", answers=[Answer(question_id="q1", answer="x " * 150)])

        report = await _detector(mock_client, mock_settings).check_submission(
            submission, [], ESSAY
        )

        assert not report.ai_generated_content_detected
        assert report.potential_sources == []
        assert report.cross_language_matches == []


class TestSingleChecks:
    @pytest.mark.asyncio
    async def test_cross_language(self, mock_client, mock_settings):
        mock_client.execute_prompt = AsyncMock(
            return_value='{"detected": true, "original_language": "German", "similarity_score": 0.8}'
        )

        result = await _detector(mock_client, mock_settings).detect_cross_language("text")

        assert result.detected
        assert result.original_language == "German"

    @pytest.mark.asyncio
    async def test_ai_detection_out_of_range_falls_back(self, mock_client, mock_settings):
        mock_client.execute_prompt = AsyncMock(return_value='{"score": 7}')

        result = await _detector(mock_client, mock_settings).detect_ai_generated("text")

        assert result.score == 0


class TestEducationalReport:
    @pytest.mark.asyncio
    async def test_no_report(self, mock_client, mock_settings):
        result = await _detector(mock_client, mock_settings).generate_educational_report(None)

        assert result.summary == "No plagiarism analysis results available."
        mock_client.execute_prompt.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_parsed_report(self, mock_client, mock_settings):
        mock_client.execute_prompt = AsyncMock(
            return_value=json.dumps(
                {
                    "summary": "Minor overlap found.",
                    "educational_guidance": ["Quote and cite."],
                    "resources": [{"title": "Purdue OWL", "description": "Citation styles"}],
                }
            )
        )

        result = await _detector(mock_client, mock_settings).generate_educational_report(
            PlagiarismReport()
        )

        assert result.summary == "Minor overlap found."
        assert result.resources[0].title == "Purdue OWL"

    @pytest.mark.asyncio
    async def test_failure_uses_citation_guidance(self, mock_client, mock_settings):
        mock_client.execute_prompt = AsyncMock(return_value="I'd rather not.")

        result = await _detector(mock_client, mock_settings).generate_educational_report(
            PlagiarismReport()
        )

        assert result.is_fallback
        assert result.summary == REPORT_UNAVAILABLE
        assert len(result.educational_guidance) == 3


def test_custom_bands_from_settings(mock_client):
    settings = Settings(llm_api_key="k", plagiarism_possible_band=10, plagiarism_significant_band=20)
    detector = PlagiarismDetector(mock_client, settings)

    assert detector._bands.possible == 10
    assert detector._bands.significant == 20
