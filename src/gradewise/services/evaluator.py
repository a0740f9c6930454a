import logging
import math
from collections import defaultdict

from gradewise.exceptions import LLMResponseError, TransportError
from gradewise.schemas.assessment import (
    Answer,
    Assessment,
    ImprovementArea,
    Question,
    QuestionFeedback,
    QuestionReply,
    QuestionResult,
    Submission,
    SubmissionEvaluation,
)
from gradewise.services.fallbacks import (
    PARTIAL_CREDIT,
    SHORT_ANSWER_PARTIAL_CREDIT,
    overall_feedback_for,
)
from gradewise.services.llm import LLMClient
from gradewise.services.scoring import ScoringDefaults, clamp
from gradewise.utils.llm_parse import parse_payload

logger = logging.getLogger(__name__)

ESSAY_MIN_LENGTH = 10
MAX_IMPROVEMENT_AREAS = 3

_EVALUATOR_SYSTEM_PROMPT = "You are an expert educational assessment evaluator."
_SHORT_ANSWER_SYSTEM_PROMPT = (
    "You are an expert educational assessment evaluator specializing in concise answers."
)
_COACH_SYSTEM_PROMPT = "You are an encouraging and supportive educational coach."

_ESSAY_PROMPT = """\
As an expert evaluator, assess the following student response to this question:

QUESTION: {question}

STUDENT ANSWER: "{answer}"
{rubric}{sample}
Total possible points: {points}

Evaluate the response and provide:
1. A score out of {points} points
2. Specific feedback on the response's strengths and weaknesses
3. One specific recommendation for improvement

Format your response as a JSON object with the following structure:
{{
  "score": <numeric score>,
  "feedback": "<detailed feedback>",
  "improvement": "<improvement recommendation>"
}}"""

_SHORT_ANSWER_PROMPT = """\
Evaluate the following student's short answer response:

QUESTION: {question}
STUDENT ANSWER: "{answer}"
{correct}{keywords}
Total possible points: {points}

Evaluate the response and provide:
1. A score out of {points} points
2. Brief feedback (1-2 sentences)
3. One specific improvement suggestion

Format your response as a JSON object with the following structure:
{{
  "score": <numeric score>,
  "feedback": "<brief feedback>",
  "improvement": "<improvement suggestion>"
}}"""

_OVERALL_FEEDBACK_PROMPT = """\
Create encouraging, personalized feedback for a student who received a score of {score}% on their "{title}" assessment.

Some areas they did well: {strengths}
Some areas needing improvement: {weaknesses}

The feedback should be:
1. Positive and encouraging
2. Specific to their performance
3. About 2-3 sentences long"""


def _line(label: str, value: str | None) -> str:
    return f"{label}: {value}\n" if value else ""


class AssessmentEvaluator:
    """Grades a full submission question by question, then summarizes it."""

    def __init__(self, client: LLMClient, defaults: ScoringDefaults | None = None) -> None:
        self._client = client
        self._defaults = defaults or ScoringDefaults()

    async def evaluate_submission(
        self, submission: Submission, assessment: Assessment
    ) -> SubmissionEvaluation:
        logger.info("Evaluating submission %s for assessment %r", submission.id, assessment.title)
        answers: dict[int, Answer] = {}
        for answer in submission.answers:
            if answer.question_index is not None:
                answers.setdefault(answer.question_index, answer)
        evaluation = SubmissionEvaluation()

        for index, question in enumerate(assessment.questions):
            answer = answers.get(index)
            if answer is None:
                logger.warning("No answer found for question %d", index)
                evaluation.question_feedback.append(
                    QuestionFeedback(
                        question_index=index,
                        feedback="No answer provided.",
                        improvement="Make sure to answer all questions.",
                    )
                )
                continue

            evaluation.total_points += question.points
            result = await self.evaluate_question(question, answer.answer)
            evaluation.earned_points += result.score
            evaluation.question_feedback.append(
                QuestionFeedback(question_index=index, **result.model_dump())
            )

        if evaluation.total_points > 0:
            evaluation.score = round(evaluation.earned_points / evaluation.total_points * 100)

        evaluation.feedback = await self.generate_overall_feedback(
            evaluation.score, evaluation.question_feedback, assessment.title
        )
        evaluation.improvement = improvement_recommendations(
            evaluation.question_feedback, assessment
        )
        return evaluation

    async def evaluate_question(self, question: Question, answer: str) -> QuestionResult:
        if question.type == "multiple-choice":
            return evaluate_multiple_choice(question, answer)
        if question.type == "essay":
            return await self.evaluate_essay(question, answer)
        if question.type == "short-answer":
            return await self.evaluate_short_answer(question, answer)
        logger.warning("Unknown question type: %s", question.type)
        return QuestionResult(feedback="Could not evaluate this question type.")

    async def evaluate_essay(self, question: Question, answer: str) -> QuestionResult:
        if len(answer) < ESSAY_MIN_LENGTH:
            return QuestionResult(
                feedback="Your response is too short to evaluate.",
                improvement="Please provide a complete answer to receive credit and feedback.",
            )

        prompt = _ESSAY_PROMPT.format(
            question=question.question,
            answer=answer,
            rubric=_line("RUBRIC", question.rubric_text),
            sample=_line("SAMPLE ANSWER", question.sample_answer),
            points=question.points,
        )
        try:
            raw = await self._client.execute_prompt(
                _EVALUATOR_SYSTEM_PROMPT, prompt, temperature=0.3, max_tokens=500
            )
            reply = parse_payload(raw, QuestionReply)
        except (TransportError, LLMResponseError) as e:
            logger.warning("Essay evaluation failed: %s", e)
            return QuestionResult(
                score=math.floor(question.points * self._defaults.essay_ratio),
                feedback=PARTIAL_CREDIT,
                improvement="Please check that your answer fully addresses all aspects of the question.",
                is_fallback=True,
            )
        return _bounded(reply, question.points)

    async def evaluate_short_answer(self, question: Question, answer: str) -> QuestionResult:
        if not answer:
            return QuestionResult(
                feedback="No answer provided.",
                improvement="Please provide an answer to receive credit.",
            )

        keywords = ", ".join(question.keywords)
        prompt = _SHORT_ANSWER_PROMPT.format(
            question=question.question,
            answer=answer,
            correct=_line("CORRECT ANSWER", question.correct_answer),
            keywords=_line("KEY CONCEPTS THAT SHOULD BE MENTIONED", keywords),
            points=question.points,
        )
        try:
            raw = await self._client.execute_prompt(
                _SHORT_ANSWER_SYSTEM_PROMPT, prompt, temperature=0.3, max_tokens=300
            )
            reply = parse_payload(raw, QuestionReply)
        except (TransportError, LLMResponseError) as e:
            logger.warning("Short answer evaluation failed: %s", e)
            return QuestionResult(
                score=math.floor(question.points * self._defaults.short_answer_ratio),
                feedback=SHORT_ANSWER_PARTIAL_CREDIT,
                improvement="Ensure your answer is clear and addresses the question directly.",
                is_fallback=True,
            )
        return _bounded(reply, question.points)

    async def generate_overall_feedback(
        self, score: int, question_feedback: list[QuestionFeedback], title: str
    ) -> str:
        strengths = [qf.feedback for qf in question_feedback if qf.score > 0]
        weaknesses = [qf.feedback for qf in question_feedback if qf.score <= 0]
        prompt = _OVERALL_FEEDBACK_PROMPT.format(
            score=score,
            title=title,
            strengths=". ".join(strengths[:3]) or "None identified.",
            weaknesses=". ".join(weaknesses[:3]) or "None identified.",
        )
        try:
            raw = await self._client.execute_prompt(
                _COACH_SYSTEM_PROMPT, prompt, temperature=0.7, max_tokens=200
            )
        except TransportError as e:
            logger.warning("Overall feedback generation failed: %s", e)
            return overall_feedback_for(score)
        return raw.strip() or overall_feedback_for(score)


def evaluate_multiple_choice(question: Question, answer: str) -> QuestionResult:
    """Exact comparison against the correct answer; never calls the model."""
    if answer == question.correct_answer:
        return QuestionResult(score=question.points, is_correct=True, feedback="Correct answer!")
    return QuestionResult(
        score=0,
        is_correct=False,
        feedback=f"Incorrect. The correct answer is: {question.correct_answer}.",
        improvement=f"Review the section about {question.topic or 'this topic'}.",
    )


def improvement_recommendations(
    question_feedback: list[QuestionFeedback], assessment: Assessment
) -> list[ImprovementArea]:
    """Top topics to revisit, ranked by the points at stake."""
    weights: dict[str, float] = defaultdict(float)
    first_improvement: dict[str, str] = {}
    for qf in question_feedback:
        if not qf.improvement:
            continue
        question = assessment.questions[qf.question_index]
        topic = question.topic or "General knowledge"
        weights[topic] += question.points
        first_improvement.setdefault(topic, qf.improvement)

    # sorted() is stable, so equal weights keep first-seen order
    ranked = sorted(weights, key=lambda topic: weights[topic], reverse=True)
    return [
        ImprovementArea(topic=topic, recommendation=first_improvement[topic])
        for topic in ranked[:MAX_IMPROVEMENT_AREAS]
    ]


def _bounded(reply: QuestionReply, points: float) -> QuestionResult:
    return QuestionResult(
        score=clamp(reply.score, 0.0, points),
        feedback=reply.feedback,
        improvement=reply.improvement,
    )
