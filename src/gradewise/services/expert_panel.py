"""Expert panel: independent reviewer perspectives plus an LLM-mediated consensus.

Each expert is one model call, run concurrently. The consensus step is a further
model call over the experts' concatenated feedback; there is no numeric
formula for combining expert scores.
"""

import asyncio
import logging
from collections.abc import Sequence

from gradewise.exceptions import LLMResponseError, TransportError
from gradewise.schemas.expert import (
    ALL_EXPERT_ROLES,
    ConsensusEvaluation,
    ConsensusReply,
    ExpertFeedback,
    ExpertReply,
)
from gradewise.services.fallbacks import CONSENSUS_EMPTY, CONSENSUS_UNAVAILABLE
from gradewise.services.llm import LLMClient
from gradewise.utils.llm_parse import extract_labeled_fields, parse_payload

logger = logging.getLogger(__name__)

_EXPERT_SYSTEM_PROMPT = "You are an expert educational evaluator."
_CONSENSUS_SYSTEM_PROMPT = (
    "You are an educational assessment expert who synthesizes multiple perspectives."
)

_REPLY_FORMAT = """\
Provide:
1. A concise {focus} (max 3 sentences)
2. A score from 0-100 representing {measure}
3. A list of 2-3 specific suggestions for {improving}

Format your response as:
{{
  "feedback": "your analysis here",
  "score": numeric_score,
  "suggestions": ["suggestion 1", "suggestion 2", "suggestion 3"]
}}"""

_CONSENSUS_PROMPT = """\
You are a senior educational evaluator synthesizing feedback from multiple expert reviewers.

EXPERT FEEDBACK:
{summary}

Based on the collective input from these experts, provide:
1. A cohesive overall evaluation summarizing the key points (3-4 sentences)
2. A list of 2-3 clear strengths identified across multiple experts
3. A list of 2-3 key areas for improvement mentioned by multiple experts
4. A recommended overall score on a scale of 0-100 that reflects the consensus view

Format your response as a JSON object with the following structure:
{{
  "overall_feedback": "your cohesive evaluation",
  "strengths": ["strength 1", "strength 2"],
  "weaknesses": ["weakness 1", "weakness 2"],
  "recommended_score": numeric_score
}}"""

# role -> (feedback when the call fails, suggestion when the call fails)
_ROLE_FALLBACKS: dict[str, tuple[str, str]] = {
    "fact-checker": (
        "Unable to complete fact checking. Please verify factual accuracy manually.",
        "Verify key facts against reliable sources",
    ),
    "concept-analyzer": (
        "Unable to complete conceptual analysis. Please review the depth of understanding manually.",
        "Focus on clearly articulating how concepts relate to each other",
    ),
    "clarity-evaluator": (
        "Unable to complete clarity analysis. Please review for clear organization manually.",
        "Ensure your response has a logical structure",
    ),
    "critical-thinking-evaluator": (
        "Unable to complete critical thinking analysis. Please review depth of analysis manually.",
        "Consider strengthening your arguments with specific evidence",
    ),
    "domain-expert": (
        "Unable to complete {domain} expert analysis. Please have a subject matter expert review.",
        "Review current literature in {domain} to strengthen your answer",
    ),
}

_DEFAULT_PANEL: tuple[tuple[str, str, str], ...] = (
    (
        "fact-checker",
        "Error analyzing facts. Please review manually.",
        "Ensure all key facts are verified with reliable sources",
    ),
    (
        "concept-analyzer",
        "Error analyzing conceptual understanding. Please review manually.",
        "Review core concepts related to this topic",
    ),
    (
        "clarity-evaluator",
        "Error analyzing clarity. Please review manually.",
        "Ensure your answer is clearly structured and easy to follow",
    ),
)


def default_panel_feedback() -> list[ExpertFeedback]:
    return [
        ExpertFeedback(role=role, feedback=feedback, suggestions=[suggestion], is_fallback=True)
        for role, feedback, suggestion in _DEFAULT_PANEL
    ]


def _optional(label: str, value: str | None) -> str:
    return f"\n{label}: {value}\n" if value else ""


class ExpertPanel:
    def __init__(self, client: LLMClient) -> None:
        self._client = client

    async def get_panel_feedback(
        self,
        question: str,
        answer: str,
        *,
        ground_truth: str | None = None,
        related_concepts: Sequence[str] = (),
        experts: Sequence[str] = ALL_EXPERT_ROLES,
        domain: str | None = None,
    ) -> list[ExpertFeedback]:
        """Ask each requested expert concurrently; one failing expert degrades only its entry."""
        roles = [role for role in experts if role in ALL_EXPERT_ROLES]
        if not domain:
            roles = [role for role in roles if role != "domain-expert"]
        if not roles:
            return default_panel_feedback()

        logger.info("Consulting expert panel: %s", ", ".join(roles))
        prompts = [
            self._build_prompt(role, question, answer, ground_truth, related_concepts, domain)
            for role in roles
        ]
        results = await asyncio.gather(
            *(self._ask_expert(role, prompt, domain) for role, prompt in zip(roles, prompts))
        )
        return list(results)

    async def get_consensus(self, feedback: Sequence[ExpertFeedback]) -> ConsensusEvaluation:
        """Synthesize expert feedback into one narrative and a 0-100 recommended score."""
        if not feedback:
            return ConsensusEvaluation(overall_feedback=CONSENSUS_EMPTY, is_fallback=True)

        summary = "\n\n".join(
            f"Expert: {item.role}\nFeedback: {item.feedback}\n"
            f"Suggestions: {', '.join(item.suggestions)}"
            for item in feedback
        )
        try:
            raw = await self._client.execute_prompt(
                _CONSENSUS_SYSTEM_PROMPT,
                _CONSENSUS_PROMPT.format(summary=summary),
                temperature=0.3,
                max_tokens=800,
            )
            reply = parse_payload(raw, ConsensusReply)
        except (TransportError, LLMResponseError) as e:
            logger.warning("Consensus evaluation failed: %s", e)
            return ConsensusEvaluation(overall_feedback=CONSENSUS_UNAVAILABLE, is_fallback=True)
        return ConsensusEvaluation(**reply.model_dump())

    async def _ask_expert(self, role: str, prompt: str, domain: str | None) -> ExpertFeedback:
        try:
            raw = await self._client.execute_prompt(
                _EXPERT_SYSTEM_PROMPT, prompt, temperature=0.3, max_tokens=500
            )
        except TransportError as e:
            logger.warning("Expert %s call failed: %s", role, e)
            return self._role_fallback(role, domain)

        try:
            reply = parse_payload(raw, ExpertReply)
        except LLMResponseError as e:
            logger.warning("Expert %s returned no usable JSON (%s), parsing labeled text", role, e)
            reply = self._parse_labeled(raw, role)
            if reply is None:
                return self._role_fallback(role, domain)
        return ExpertFeedback(role=role, **reply.model_dump())

    @staticmethod
    def _parse_labeled(raw: str, role: str) -> ExpertReply | None:
        fields = extract_labeled_fields(raw)
        if "feedback" not in fields:
            return None
        score = fields.get("score")
        try:
            return ExpertReply(
                feedback=fields["feedback"],
                score=score if score is not None and 0 <= score <= 100 else None,
                suggestions=fields.get("suggestions")
                or ["Review your answer for accuracy and clarity"],
            )
        except ValueError as e:
            logger.warning("Expert %s labeled text unusable: %s", role, e)
            return None

    @staticmethod
    def _role_fallback(role: str, domain: str | None) -> ExpertFeedback:
        feedback, suggestion = _ROLE_FALLBACKS[role]
        name = domain or "subject"
        return ExpertFeedback(
            role=role,
            feedback=feedback.format(domain=name),
            suggestions=[suggestion.format(domain=name)],
            is_fallback=True,
        )

    @staticmethod
    def _build_prompt(
        role: str,
        question: str,
        answer: str,
        ground_truth: str | None,
        related_concepts: Sequence[str],
        domain: str | None,
    ) -> str:
        reference = _optional("Reference Answer", ground_truth)
        if role == "fact-checker":
            return (
                "You are an academic fact checker analyzing a student's answer.\n\n"
                f"Question: {question}\n\nStudent Answer: {answer}\n{reference}\n"
                "As a fact checker, your job is to:\n"
                "1. Identify any factual errors or inaccuracies in the student's answer\n"
                "2. Highlight missing key facts that should be included\n"
                "3. Note any misinterpretations of concepts or theories\n\n"
                + _REPLY_FORMAT.format(
                    focus="analysis of factual accuracy",
                    measure="factual accuracy",
                    improving="improving factual accuracy",
                )
            )
        if role == "concept-analyzer":
            concepts = _optional("Related Concepts", ", ".join(related_concepts))
            return (
                "You are an expert in conceptual analysis evaluating a student's "
                "understanding of key concepts.\n\n"
                f"Question: {question}\n\nStudent Answer: {answer}\n{concepts}\n"
                "As a concept analyzer, your job is to:\n"
                "1. Assess how well the student demonstrates understanding of core concepts\n"
                "2. Identify connections between concepts that the student made or missed\n"
                "3. Evaluate the depth of conceptual understanding\n\n"
                + _REPLY_FORMAT.format(
                    focus="analysis of conceptual understanding",
                    measure="conceptual understanding",
                    improving="improving conceptual depth",
                )
            )
        if role == "clarity-evaluator":
            return (
                "You are an expert in clear communication evaluating a student's writing clarity.\n\n"
                f"Student Answer: {answer}\n\n"
                "As a clarity evaluator, your job is to:\n"
                "1. Assess the organization and structure of the response\n"
                "2. Evaluate the clarity of expression and language usage\n"
                "3. Check for logical flow and coherence\n\n"
                + _REPLY_FORMAT.format(
                    focus="analysis of the communication clarity",
                    measure="clarity of communication",
                    improving="improving clarity and organization",
                )
            )
        if role == "critical-thinking-evaluator":
            return (
                "You are an expert in critical thinking and analytical reasoning "
                "evaluating a student's response.\n\n"
                f"Question: {question}\n\nStudent Answer: {answer}\n\n"
                "As a critical thinking evaluator, your job is to:\n"
                "1. Assess the depth of analysis in the student's response\n"
                "2. Evaluate their ability to consider multiple perspectives\n"
                "3. Check for evidence of reasoned arguments and logical conclusions\n"
                "4. Identify any logical fallacies or unsupported assertions\n\n"
                + _REPLY_FORMAT.format(
                    focus="analysis of critical thinking quality",
                    measure="critical thinking ability",
                    improving="improving analytical depth",
                )
            )
        return (
            f"You are an expert in {domain} evaluating a student's response to a "
            "question in this field.\n\n"
            f"Question: {question}\n\nStudent Answer: {answer}\n{reference}\n"
            f"As a domain expert in {domain}, your job is to:\n"
            "1. Evaluate the technical accuracy of the response within this specific field\n"
            "2. Assess the student's use of domain-specific terminology and concepts\n"
            "3. Consider how well the answer reflects current understanding in the field\n"
            "4. Identify any field-specific improvements that could be made\n\n"
            + _REPLY_FORMAT.format(
                focus="domain-specific analysis",
                measure="domain mastery",
                improving="improving domain expertise",
            )
        )
