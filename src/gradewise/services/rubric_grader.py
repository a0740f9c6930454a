"""Rubric-weighted grading of a single free-text answer.

Stages:
  1. concurrently: plagiarism verdict, accuracy, conceptual understanding,
     presentation, expert panel
  2. originality derived from the verdict, weighted total from the rubric
  3. expert consensus, learning gaps, improvement suggestions
"""

import asyncio
import logging

from gradewise.config import Settings
from gradewise.exceptions import ExtractionError, LLMResponseError, TransportError
from gradewise.schemas.assessment import AnswerEvaluation, Question, Suggestion
from gradewise.schemas.expert import ExpertFeedback
from gradewise.schemas.scoring import RubricDimension, ScoreReply, SubScore
from gradewise.services.expert_panel import ExpertPanel
from gradewise.services.fallbacks import (
    ACCURACY_UNAVAILABLE,
    CONCEPTUAL_UNAVAILABLE,
    PRESENTATION_UNAVAILABLE,
)
from gradewise.services.llm import LLMClient
from gradewise.services.plagiarism import PlagiarismDetector
from gradewise.services.scoring import (
    ScoringDefaults,
    compute_total_score,
    normalize,
    originality_from_similarity,
)
from gradewise.utils.llm_parse import (
    extract_bullet_sections,
    extract_leading_score,
    parse_payload,
    strip_leading_score,
)

logger = logging.getLogger(__name__)

DIMENSION_SCALE = 10.0
MAX_GAP_ITEMS = 3

_SCORE_FORMAT = """\
Provide:
1. A score between 0 and 10, where 10 is {perfect}
2. Detailed feedback explaining the score

Format your response as a JSON object:
{{
  "score": <number between 0 and 10>,
  "feedback": "<detailed feedback>"
}}"""

_ACCURACY_PROMPT = """\
You are an expert educator evaluating student answers.

Question: {question}
Student Answer: {answer}
Reference Answer (Ground Truth): {ground_truth}

Rubric Criteria: {criteria}

Please evaluate the accuracy of the student's answer compared to the reference answer.
Consider factual correctness, completeness, and alignment with the reference answer.

"""

_CONCEPTUAL_PROMPT = """\
You are an expert educator evaluating a student's conceptual understanding.

Question: {question}
Student Answer: {answer}
Related Concepts: {concepts}

Rubric Criteria: {criteria}

Please evaluate the student's conceptual understanding based on their answer.
Consider depth of understanding, application of concepts, and connections between ideas.

"""

_PRESENTATION_PROMPT = """\
You are an expert educator evaluating the presentation quality of a student answer.

Student Answer: {answer}

Rubric Criteria: {criteria}

Please evaluate the presentation quality of the student's answer.
Consider clarity, organization, language usage, and overall communication effectiveness.

"""

_LEARNING_GAPS_PROMPT = """\
You are an expert educator analyzing a student's answer for misconceptions and learning gaps.

Question: {question}
Student Answer: {answer}
Reference Answer: {ground_truth}
Related Concepts: {concepts}

Please identify:
1. List of specific misconceptions shown in the student's answer (max 3)
2. List of learning gaps or concepts the student needs to study further (max 3)

Format your response as:
Misconceptions:
- [misconception 1]
- [misconception 2]

Learning Gaps:
- [learning gap 1]
- [learning gap 2]"""

_SUGGESTIONS_PROMPT = """\
You are an expert educator providing constructive suggestions to a student.

Based on the following feedback and context:

{feedback}

Question context:
Question topic: {topic}
Related concepts: {concepts}

Generate 3-5 specific, actionable suggestions for how the student can improve.
Each suggestion should be:
1. Concise and directly address a specific area for improvement
2. Actionable with clear steps the student can take
3. Tailored to the specific topic and concepts of the question
4. Include specific learning resources or activities when relevant

Format your response as a JSON array:
[
  {{
    "suggestion": "Brief suggestion statement",
    "explanation": "More detailed explanation",
    "action_items": ["Specific action 1", "Specific action 2"],
    "resources": ["Resource suggestion 1", "Resource suggestion 2"]
  }}
]"""

_FALLBACK_SUGGESTION = Suggestion(
    suggestion="Review core concepts",
    explanation="Focus on understanding the fundamental concepts related to this topic",
    action_items=["Create a concept map", "Review course materials"],
    resources=["Course textbook", "Online tutorials"],
)


def _criteria(dimension: RubricDimension) -> str:
    return ", ".join(dimension.criteria) or "General quality"


class RubricGrader:
    def __init__(
        self,
        client: LLMClient,
        settings: Settings,
        *,
        plagiarism: PlagiarismDetector | None = None,
        panel: ExpertPanel | None = None,
    ) -> None:
        self._client = client
        self._system_message = settings.llm_system_message
        self._defaults = ScoringDefaults.from_settings(settings)
        self._plagiarism = plagiarism or PlagiarismDetector(client, settings)
        self._panel = panel or ExpertPanel(client)

    async def grade_answer(
        self, question: Question, answer: str, *, domain: str | None = None
    ) -> AnswerEvaluation:
        """Full rubric evaluation of *answer*; every model failure degrades to a default."""
        logger.info("Grading answer for question %s", question.id or "<unnamed>")
        rubric = question.rubric
        verdict, accuracy, conceptual, presentation, experts = await asyncio.gather(
            self._plagiarism.assess_text(answer),
            self.evaluate_accuracy(question, answer),
            self.evaluate_conceptual_understanding(question, answer),
            self.evaluate_presentation(question, answer),
            self._panel.get_panel_feedback(
                question.question,
                answer,
                ground_truth=question.ground_truth,
                related_concepts=question.related_concepts,
                domain=domain,
            ),
        )

        originality = SubScore(
            name="originality",
            value=originality_from_similarity(verdict.similarity_score),
            feedback=verdict.feedback,
            is_fallback=verdict.is_fallback,
        )
        dimensions = {
            score.name: score.normalized
            for score in (accuracy, conceptual, originality, presentation)
        }
        total = compute_total_score(dimensions, rubric.weights())

        consensus = await self._panel.get_consensus(experts)
        misconceptions, learning_gaps = await self.identify_learning_gaps(question, answer)
        suggestions = await self.generate_suggestions(
            question, [accuracy, conceptual, presentation], experts, misconceptions
        )

        return AnswerEvaluation(
            question_id=question.id,
            answer=answer,
            accuracy=accuracy,
            conceptual_understanding=conceptual,
            originality=originality,
            presentation=presentation,
            plagiarism=verdict,
            total_score=total,
            suggestions=suggestions,
            expert_feedback=experts,
            consensus=consensus,
            misconceptions=misconceptions,
            learning_gaps=learning_gaps,
            topic=question.topic,
            related_concepts=question.related_concepts,
        )

    async def evaluate_accuracy(self, question: Question, answer: str) -> SubScore:
        prompt = _ACCURACY_PROMPT.format(
            question=question.question,
            answer=answer,
            ground_truth=question.ground_truth or "Not provided",
            criteria=_criteria(question.rubric.accuracy),
        ) + _SCORE_FORMAT.format(perfect="perfect accuracy")
        return await self._score_dimension(
            "accuracy", prompt, 500, self._defaults.accuracy, ACCURACY_UNAVAILABLE
        )

    async def evaluate_conceptual_understanding(self, question: Question, answer: str) -> SubScore:
        prompt = _CONCEPTUAL_PROMPT.format(
            question=question.question,
            answer=answer,
            concepts=", ".join(question.related_concepts) or "Not specified",
            criteria=_criteria(question.rubric.conceptual_understanding),
        ) + _SCORE_FORMAT.format(perfect="perfect conceptual understanding")
        return await self._score_dimension(
            "conceptual_understanding",
            prompt,
            500,
            self._defaults.conceptual,
            CONCEPTUAL_UNAVAILABLE,
        )

    async def evaluate_presentation(self, question: Question, answer: str) -> SubScore:
        prompt = _PRESENTATION_PROMPT.format(
            answer=answer,
            criteria=_criteria(question.rubric.presentation),
        ) + _SCORE_FORMAT.format(perfect="perfect presentation")
        return await self._score_dimension(
            "presentation", prompt, 300, self._defaults.presentation, PRESENTATION_UNAVAILABLE
        )

    async def _score_dimension(
        self, name: str, prompt: str, max_tokens: int, fallback: float, notice: str
    ) -> SubScore:
        """One 0-10 model judgement, normalized to 0-1.

        JSON replies are preferred; a plain-prose reply falls back to the
        first number in the text.
        """
        try:
            raw = await self._client.execute_prompt(
                self._system_message, prompt, temperature=0.3, max_tokens=max_tokens
            )
        except TransportError as e:
            logger.warning("Scoring %s failed: %s", name, e)
            return SubScore(name=name, value=fallback, feedback=notice, is_fallback=True)

        try:
            reply = parse_payload(raw, ScoreReply)
        except ExtractionError:
            legacy = extract_leading_score(raw, scale=DIMENSION_SCALE)
            if legacy is None:
                logger.warning("Scoring %s: reply carried no score", name)
                return SubScore(name=name, value=fallback, feedback=notice, is_fallback=True)
            return SubScore(name=name, value=legacy, feedback=strip_leading_score(raw))
        except LLMResponseError as e:
            logger.warning("Scoring %s returned an unusable payload: %s", name, e)
            return SubScore(name=name, value=fallback, feedback=notice, is_fallback=True)

        return SubScore(
            name=name,
            value=normalize(reply.score, DIMENSION_SCALE),
            feedback=reply.feedback,
            suggestions=reply.suggestions,
        )

    async def identify_learning_gaps(
        self, question: Question, answer: str
    ) -> tuple[list[str], list[str]]:
        prompt = _LEARNING_GAPS_PROMPT.format(
            question=question.question,
            answer=answer,
            ground_truth=question.ground_truth or "Not provided",
            concepts=", ".join(question.related_concepts) or "Not specified",
        )
        try:
            raw = await self._client.execute_prompt(
                self._system_message, prompt, temperature=0.3, max_tokens=500
            )
        except TransportError as e:
            logger.warning("Learning gap analysis failed: %s", e)
            return [], []

        sections = extract_bullet_sections(raw, ["Misconceptions", "Learning Gaps"])
        return (
            sections["Misconceptions"][:MAX_GAP_ITEMS],
            sections["Learning Gaps"][:MAX_GAP_ITEMS],
        )

    async def generate_suggestions(
        self,
        question: Question,
        scores: list[SubScore],
        experts: list[ExpertFeedback],
        misconceptions: list[str],
    ) -> list[Suggestion]:
        feedback = [f"{score.name.replace('_', ' ')} feedback: {score.feedback}" for score in scores]
        feedback += [f"{expert.role} feedback: {expert.feedback}" for expert in experts]
        feedback += [f"Misconception: {item}" for item in misconceptions]
        prompt = _SUGGESTIONS_PROMPT.format(
            feedback="\n\n".join(feedback),
            topic=question.topic or "General",
            concepts=", ".join(question.related_concepts) or "Not specified",
        )
        try:
            raw = await self._client.execute_prompt(
                self._system_message, prompt, temperature=0.5, max_tokens=2000
            )
            suggestions = parse_payload(raw, list[Suggestion])
        except (TransportError, LLMResponseError) as e:
            logger.warning("Suggestion generation failed: %s", e)
            return [_FALLBACK_SUGGESTION.model_copy(deep=True)]
        return suggestions or [_FALLBACK_SUGGESTION.model_copy(deep=True)]
