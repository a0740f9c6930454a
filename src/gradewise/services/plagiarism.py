"""Plagiarism detection service.

Per submission:
  similarity against earlier answers to the same question
  -> AI-authorship check (longer answers)
  -> potential online sources, cross-language translation artifacts
Per single text:
  model judgement (0-100) + heuristic stylometry (0-100), blended 0.7/0.3

All model calls fail open: a failed check reports "nothing found" rather than
aborting the report.
"""

import asyncio
import logging

from gradewise.config import Settings
from gradewise.exceptions import LLMResponseError, TransportError
from gradewise.schemas.assessment import Assessment, Submission
from gradewise.schemas.plagiarism import (
    AIDetectionResult,
    AIGeneratedAnswer,
    CrossLanguageMatch,
    CrossLanguageResult,
    EducationalReport,
    FlaggedAnswer,
    LearningResource,
    PlagiarismReport,
    PlagiarismVerdict,
    PotentialSource,
    PriorText,
    SourceMatch,
)
from gradewise.services.fallbacks import PLAGIARISM_UNAVAILABLE, REPORT_UNAVAILABLE
from gradewise.services.llm import LLMClient
from gradewise.services.scoring import (
    PlagiarismWeights,
    SimilarityBands,
    combine_plagiarism_scores,
    similarity_feedback,
)
from gradewise.services.similarity import (
    HeuristicStylometry,
    SimilarityEstimator,
    StylometryStrategy,
)
from gradewise.utils.llm_parse import extract_labeled_number, parse_payload

logger = logging.getLogger(__name__)

_AI_DETECTION_SYSTEM_PROMPT = "You are an expert at detecting AI-generated content."
_AI_DETECTION_PROMPT = """\
Analyze this text and determine if it was likely generated by an AI (like ChatGPT, Bard, Claude, etc):

TEXT: "{text}"{truncated}

Consider these factors:
1. Writing style and pattern consistency
2. Formulaic structures common in AI outputs
3. Lack of personal perspective or experience
4. Generic phrasing and predictable transitions
5. Overall fluency that seems artificial

Return your analysis as a JSON object with:
{{
  "score": <number between 0.0 and 1.0 indicating likelihood of AI-generation>,
  "evidence": <specific examples from the text supporting your conclusion>
}}"""

_SOURCES_SYSTEM_PROMPT = (
    "You are an expert at identifying potential sources of plagiarized content."
)
_SOURCES_PROMPT = """\
Analyze this text and determine if it appears to be copied or closely paraphrased from common online sources:

TEXT: "{text}"{truncated}

If the content appears to be potentially plagiarized, identify:
1. What specific online sources it might be from (e.g., Wikipedia, academic journals, textbooks, etc.)
2. Why you believe it may be from these sources (distinctive phrasing, specialized knowledge, etc.)
3. Confidence level in your assessment

Return your analysis as a JSON array with potential sources:
[
  {{
    "source_type": "source type (e.g., 'Wikipedia', 'Academic Journal', etc.)",
    "confidence": <number between 0.0 and 1.0>,
    "reasoning": "explanation of why this seems like a potential source",
    "distinctive_phrases": ["phrase 1", "phrase 2"]
  }}
]

If you cannot identify any specific potential sources, return an empty array: []"""

_CROSS_LANGUAGE_SYSTEM_PROMPT = (
    "You are an expert linguist specializing in identifying cross-language translation artifacts."
)
_CROSS_LANGUAGE_PROMPT = """\
Analyze this text and determine if it shows signs of being translated from another language:

TEXT: "{text}"{truncated}

Look for:
1. Unusual phrasing or word choices that suggest translation
2. Grammar patterns typical of specific languages
3. Direct translation artifacts
4. Cultural references that might indicate original language

Return your analysis as a JSON object:
{{
  "detected": true or false,
  "original_language": "language name or 'unknown'",
  "similarity_score": <number between 0.0 and 1.0 indicating confidence>,
  "evidence": "specific examples from the text showing translation artifacts"
}}"""

_VERDICT_PROMPT = """\
You are an expert at detecting plagiarism in student work.

Please analyze the following text for signs of plagiarism such as:
1. Unusual vocabulary or phrases that don't match typical student writing
2. Sophisticated sentence structure inconsistent with student level
3. Formal academic language mixed with informal language
4. Content that appears to be copied from common sources

Text to analyze:
"{text}"

Provide:
1. A plagiarism probability score from 0-100 (where 0 is definitely original and 100 is definitely plagiarized)
2. Your confidence level in this assessment (0-100)
3. Reasoning for your assessment

Format your response as:
Score: [number]
Confidence: [number]
Reasoning: [your analysis]"""

_REPORT_SYSTEM_PROMPT = (
    "You are an academic integrity educator who helps students understand "
    "and improve their academic writing."
)
_REPORT_PROMPT = """\
Create an educational report about potential academic integrity issues based on these plagiarism detection results:

{results}

The report should:
1. Provide a clear, educational summary of the findings (not accusatory, but informative)
2. Offer 3-5 specific pieces of guidance for improving academic writing and citation practices
3. Suggest 2-3 resources for learning proper citation and academic integrity principles

Format your response as a JSON object:
{{
  "summary": "clear summary of the findings",
  "educational_guidance": ["guidance point 1", "guidance point 2"],
  "resources": [
    {{"title": "Resource 1", "description": "Brief description"}}
  ]
}}"""

_FALLBACK_AI_SCORE = 50
_FALLBACK_AI_CONFIDENCE = 0
_DEFAULT_AI_CONFIDENCE = 70

_FALLBACK_GUIDANCE = [
    "Always cite your sources when using information from elsewhere",
    "Use quotation marks for direct quotes and provide citations",
    "Paraphrase in your own words and still cite the original source",
]
_FALLBACK_RESOURCES = [
    LearningResource(title="Citation Guide", description="Learn proper citation formats"),
    LearningResource(
        title="Academic Integrity Handbook",
        description="Guide to academic integrity principles",
    ),
]


def _truncate(text: str, limit: int) -> tuple[str, str]:
    if len(text) > limit:
        return text[:limit], " ...(text truncated)"
    return text, ""


class PlagiarismDetector:
    def __init__(
        self,
        client: LLMClient,
        settings: Settings,
        *,
        estimator: SimilarityEstimator | None = None,
        stylometry: StylometryStrategy | None = None,
    ) -> None:
        self._client = client
        self._estimator = estimator or SimilarityEstimator(client, settings)
        self._stylometry = stylometry or HeuristicStylometry()
        self._settings = settings
        self._weights = PlagiarismWeights(
            ai=settings.plagiarism_ai_weight,
            heuristic=settings.plagiarism_heuristic_weight,
        )
        self._bands = SimilarityBands(
            possible=settings.plagiarism_possible_band,
            significant=settings.plagiarism_significant_band,
        )

    # ------------------------------------------------------------------ #
    #  Submission-level report
    # ------------------------------------------------------------------ #

    async def check_submission(
        self,
        submission: Submission,
        previous_submissions: list[Submission],
        assessment: Assessment,
    ) -> PlagiarismReport:
        """Check every text answer of *submission* for plagiarism signals."""
        s = self._settings
        logger.info("Checking submission %s for plagiarism", submission.id)
        report = PlagiarismReport()
        questions = {q.id: q for q in assessment.questions}

        for index, answer in enumerate(submission.answers):
            question = questions.get(answer.question_id or "")
            text = answer.answer
            if len(text) < s.min_answer_length:
                continue
            if question is not None and question.type == "multiple-choice":
                continue

            prior = _previous_answers_for(previous_submissions, answer.question_id)
            similarity = await self._estimator.find_most_similar(text, prior)
            if similarity.score >= s.similarity_threshold:
                report.is_plagiarism_detected = True
                report.flagged_answers.append(
                    FlaggedAnswer(
                        question_id=answer.question_id,
                        question_index=index,
                        similarity_score=similarity.score,
                        matched_submission_id=similarity.matched_id,
                        evidence=similarity.evidence,
                    )
                )

            checks = []
            if len(text) >= s.ai_detection_min_length:
                checks.append(self.detect_ai_generated(text))
            if len(text) >= s.source_detection_min_length:
                checks.append(self.find_potential_sources(text))
            if len(text) >= s.cross_language_min_length:
                checks.append(self.detect_cross_language(text))
            results = await asyncio.gather(*checks)

            for result in results:
                if isinstance(result, AIDetectionResult):
                    if result.score >= s.ai_generated_threshold:
                        report.ai_generated_content_detected = True
                        report.ai_generated_answers.append(
                            AIGeneratedAnswer(
                                question_id=answer.question_id,
                                question_index=index,
                                ai_score=result.score,
                                evidence=result.evidence,
                            )
                        )
                    report.ai_generated_content_score = max(
                        report.ai_generated_content_score, result.score
                    )
                elif isinstance(result, CrossLanguageResult):
                    if result.detected:
                        report.cross_language_matches.append(
                            CrossLanguageMatch(
                                question_id=answer.question_id,
                                question_index=index,
                                original_language=result.original_language,
                                similarity_score=result.similarity_score,
                                evidence=result.evidence,
                            )
                        )
                elif result:
                    report.potential_sources.append(
                        SourceMatch(
                            question_id=answer.question_id,
                            question_index=index,
                            sources=result,
                        )
                    )

        if report.flagged_answers:
            report.overall_similarity_score = sum(
                f.similarity_score for f in report.flagged_answers
            ) / len(report.flagged_answers)
        return report

    async def detect_ai_generated(self, text: str) -> AIDetectionResult:
        """Likelihood (0-1) that *text* was machine-generated."""
        snippet, truncated = _truncate(text, self._settings.ai_detection_max_chars)
        try:
            raw = await self._client.execute_prompt(
                _AI_DETECTION_SYSTEM_PROMPT,
                _AI_DETECTION_PROMPT.format(text=snippet, truncated=truncated),
                temperature=0.1,
                max_tokens=500,
            )
            return parse_payload(raw, AIDetectionResult)
        except (TransportError, LLMResponseError) as e:
            logger.warning("AI generation check failed: %s", e)
            return AIDetectionResult()

    async def find_potential_sources(self, text: str) -> list[PotentialSource]:
        """Likely online sources with at least medium confidence."""
        snippet, truncated = _truncate(text, self._settings.source_detection_max_chars)
        try:
            raw = await self._client.execute_prompt(
                _SOURCES_SYSTEM_PROMPT,
                _SOURCES_PROMPT.format(text=snippet, truncated=truncated),
                temperature=0.1,
                max_tokens=800,
            )
            sources = parse_payload(raw, list[PotentialSource])
        except (TransportError, LLMResponseError) as e:
            logger.warning("Source detection failed: %s", e)
            return []
        return [src for src in sources if src.confidence >= self._settings.source_confidence_min]

    async def detect_cross_language(self, text: str) -> CrossLanguageResult:
        snippet, truncated = _truncate(text, self._settings.source_detection_max_chars)
        try:
            raw = await self._client.execute_prompt(
                _CROSS_LANGUAGE_SYSTEM_PROMPT,
                _CROSS_LANGUAGE_PROMPT.format(text=snippet, truncated=truncated),
                temperature=0.1,
                max_tokens=800,
            )
            return parse_payload(raw, CrossLanguageResult)
        except (TransportError, LLMResponseError) as e:
            logger.warning("Cross-language check failed: %s", e)
            return CrossLanguageResult()

    # ------------------------------------------------------------------ #
    #  Single-text verdict
    # ------------------------------------------------------------------ #

    async def assess_text(self, text: str) -> PlagiarismVerdict:
        """Blend the model's judgement with heuristic stylometry into one 0-100 verdict."""
        ai_score, ai_confidence = await self._judge_text(text)
        try:
            stylometric = self._stylometry.score(text)
        except Exception as e:
            # stylometry strategies are pluggable; any failure there degrades the verdict
            logger.warning("Plagiarism verdict failed: %s", e)
            return PlagiarismVerdict(feedback=PLAGIARISM_UNAVAILABLE, is_fallback=True)

        combined = combine_plagiarism_scores(ai_score, stylometric.score, self._weights)
        return PlagiarismVerdict(
            similarity_score=combined,
            feedback=similarity_feedback(combined, self._bands),
            ai_score=ai_score,
            ai_confidence=ai_confidence,
            heuristic_score=stylometric.score,
            text_features=stylometric.features,
        )

    async def _judge_text(self, text: str) -> tuple[float, float]:
        """Model's ``Score:``/``Confidence:`` reply, both 0-100."""
        snippet = text[: self._settings.verdict_max_chars]
        try:
            raw = await self._client.execute_prompt(
                self._settings.llm_system_message,
                _VERDICT_PROMPT.format(text=snippet),
                temperature=0.3,
                max_tokens=500,
            )
        except TransportError as e:
            logger.warning("AI plagiarism judgement failed: %s", e)
            return _FALLBACK_AI_SCORE, _FALLBACK_AI_CONFIDENCE

        score = extract_labeled_number(raw, "Score")
        confidence = extract_labeled_number(raw, "Confidence")
        return (
            float(min(score, 100)) if score is not None else _FALLBACK_AI_SCORE,
            float(min(confidence, 100)) if confidence is not None else _DEFAULT_AI_CONFIDENCE,
        )

    # ------------------------------------------------------------------ #
    #  Educational report
    # ------------------------------------------------------------------ #

    async def generate_educational_report(
        self, report: PlagiarismReport | None
    ) -> EducationalReport:
        if report is None:
            return EducationalReport(summary="No plagiarism analysis results available.")
        try:
            raw = await self._client.execute_prompt(
                _REPORT_SYSTEM_PROMPT,
                _REPORT_PROMPT.format(results=report.model_dump_json(indent=2)),
                temperature=0.4,
                max_tokens=1000,
            )
            return parse_payload(raw, EducationalReport)
        except (TransportError, LLMResponseError) as e:
            logger.warning("Educational report generation failed: %s", e)
            return EducationalReport(
                summary=REPORT_UNAVAILABLE,
                educational_guidance=list(_FALLBACK_GUIDANCE),
                resources=list(_FALLBACK_RESOURCES),
                is_fallback=True,
            )


def _previous_answers_for(
    previous_submissions: list[Submission], question_id: str | None
) -> list[PriorText]:
    prior: list[PriorText] = []
    for submission in previous_submissions:
        for answer in submission.answers:
            if answer.question_id == question_id and answer.answer:
                prior.append(PriorText(id=submission.id, text=answer.answer))
                break
    return prior
