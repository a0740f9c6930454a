import asyncio
import json
import logging
import math
from typing import TypeVar

from gradewise.config import Settings
from gradewise.exceptions import LLMResponseError, TransportError
from gradewise.schemas.syllabus import (
    AssessmentPattern,
    AssessmentPatterns,
    BasicInfo,
    ConceptMap,
    ConceptNode,
    GeneratedAssessment,
    GeneratedQuestion,
    LearningOutcomes,
    PatternItem,
    SyllabusAnalysis,
)
from gradewise.services.fallbacks import ASSESSMENT_TEMPLATE, SYLLABUS_PARTIAL
from gradewise.services.llm import LLMClient
from gradewise.utils.llm_parse import parse_payload

logger = logging.getLogger(__name__)

T = TypeVar("T")

SYSTEM_PROMPT = (
    "You are an expert educational AI specializing in curriculum analysis and assessment creation."
)

_BASIC_INFO_PROMPT = """\
Analyze the following syllabus content and extract key information.
Format your response as a valid JSON object with the following structure:
{{
  "course_title": "Title of the course",
  "course_code": "Course code/number",
  "department": "Department offering the course",
  "academic_level": "Undergraduate/Graduate/etc",
  "credits": "Number of credit hours",
  "instructor": "Course instructor(s) name(s)",
  "term": "Semester/term/year",
  "description": "A 1-2 sentence summary of the course"
}}

Only return the JSON, no other text.

SYLLABUS CONTENT:
{content}"""

_OUTCOMES_PROMPT = """\
Analyze the following syllabus content and extract:

1. Learning outcomes/objectives of the course
2. Key topics covered in the course
3. Weekly schedule or topic breakdown (if available)

Format your response as a valid JSON object with the following structure:
{{
  "learning_outcomes": ["outcome1", "outcome2"],
  "key_topics": ["topic1", "topic2"],
  "weekly_breakdown": [
    {{"week": "1", "topics": ["topic1", "topic2"], "description": "Brief description of what is covered"}}
  ]
}}

Only return the JSON, no other text.

SYLLABUS CONTENT:
{content}"""

_PATTERNS_PROMPT = """\
Based on this course information:
- Course: {title} ({code})
- Level: {level}
- Key topics: {topics}
- Learning outcomes: {outcomes}

Generate 3 different assessment patterns that would be appropriate for evaluating students in this course.
Each pattern should have a different structure, difficulty level, and assessment philosophy.

Format your response as a valid JSON object with the following structure:
{{
  "patterns": [
    {{
      "name": "Pattern name",
      "description": "Brief description of this assessment pattern",
      "difficulty": "Beginner/Intermediate/Advanced",
      "structure": [
        {{"question_type": "Multiple Choice", "count": 10, "points_per_question": 1}},
        {{"question_type": "Essay", "count": 2, "points_per_question": 10}}
      ],
      "total_points": 30,
      "estimated_time": 60,
      "evaluation_criteria": ["criteria1", "criteria2"],
      "best_suited_for": "Description of when this pattern works best"
    }}
  ]
}}

Include question types such as Multiple Choice, True/False, Fill-in-the-blank, Short Answer,
Essay, Problem Solving, Case Study, Programming, Diagram/Visual, Matching.

The pattern structures should vary to match different assessment philosophies (traditional testing,
project-based, mastery learning, etc.)

Only return the JSON, no other text."""

_CONCEPT_MAP_PROMPT = """\
Based on the following course topics:
{topics}

Weekly breakdown:
{weeks}

Create a concept map showing how these topics are related to each other.
The concept map should show:

1. Main topics and subtopics
2. Relationships between topics (prerequisite, related to, leads to, etc.)
3. Key concepts under each topic

Format your response as a valid JSON object representing a directed graph:
{{
  "nodes": [
    {{"id": "topic1", "label": "Topic 1", "type": "main|sub|concept"}}
  ],
  "edges": [
    {{"source": "topic1", "target": "topic2", "relationship": "prerequisite|related|leads-to"}}
  ]
}}

Only return the JSON, no other text."""

_ASSESSMENT_PROMPT = """\
Generate an assessment for the following course:
- Course: {title} ({code})
- Level: {level}

The assessment should follow this pattern:
- Name: {pattern_name}
- Description: {pattern_description}
- Structure: {structure}
- Total points: {total_points}

Key topics to cover:
{topics}

Learning objectives:
{objectives}

For each question, provide the question text, question type, associated topic from the list above,
points worth, ground truth answer, a rubric for evaluation and related concepts.

Format your response as a valid JSON object with the following structure:
{{
  "title": "Assessment title",
  "description": "Brief description of this assessment",
  "total_points": 100,
  "time_limit": 60,
  "questions": [
    {{
      "question": "Question text here",
      "type": "multiple-choice|short-answer|essay|...",
      "options": ["Option A", "Option B", "Option C", "Option D"],
      "topic": "Related topic from the syllabus",
      "points": 5,
      "difficulty": "Easy|Medium|Hard",
      "bloom_level": "Knowledge|Comprehension|Application|Analysis|Synthesis|Evaluation",
      "ground_truth": "Correct answer or expected response",
      "rubric": {{
        "accuracy": {{"weight": 0.6, "criteria": ["What makes an answer accurate"]}},
        "conceptual_understanding": {{"weight": 0.3, "criteria": ["How to judge understanding"]}},
        "originality": {{"weight": 0.0, "criteria": []}},
        "presentation": {{"weight": 0.1, "criteria": ["Presentation expectations"]}}
      }},
      "related_concepts": ["concept1", "concept2"]
    }}
  ]
}}

Distribute questions across all topics approximately evenly, with {per_topic} questions per topic.
For multiple-choice and similar questions, include a complete set of options.
For essay and open-ended questions, provide a comprehensive model answer and detailed rubric.

Only return the JSON, no other text."""

_TRUNCATION_NOTE = "\n[Content truncated due to length...]"

STANDARD_PATTERN = AssessmentPattern(
    name="Standard Mixed Assessment",
    description="A balanced mix of question types suitable for most courses",
    difficulty="Intermediate",
    structure=[
        PatternItem(question_type="Multiple Choice", count=10, points_per_question=1),
        PatternItem(question_type="Short Answer", count=5, points_per_question=2),
        PatternItem(question_type="Essay", count=1, points_per_question=10),
    ],
    total_points=30,
    estimated_time=45,
    evaluation_criteria=["Content knowledge", "Critical thinking", "Communication"],
    best_suited_for="General assessment of course material comprehension",
)


class SyllabusAnalyzer:
    """Syllabus text -> course info, outcomes, assessment patterns, concept map."""

    def __init__(self, client: LLMClient, settings: Settings) -> None:
        self._client = client
        self._max_chars = settings.syllabus_max_chars

    async def analyze(self, content: str) -> SyllabusAnalysis:
        if len(content) > self._max_chars:
            logger.warning(
                "Syllabus too long (%d chars), truncating to %d chars",
                len(content),
                self._max_chars,
            )
            content = content[: self._max_chars] + _TRUNCATION_NOTE

        notices: list[str] = []
        basic_info, outcomes = await asyncio.gather(
            self._ask(_BASIC_INFO_PROMPT.format(content=content), BasicInfo, 0.2, 1500),
            self._ask(_OUTCOMES_PROMPT.format(content=content), LearningOutcomes, 0.3, 2000),
        )
        if basic_info is None:
            basic_info = BasicInfo()
            notices.append(SYLLABUS_PARTIAL)
        if outcomes is None:
            outcomes = LearningOutcomes()
            if SYLLABUS_PARTIAL not in notices:
                notices.append(SYLLABUS_PARTIAL)

        patterns = await self.generate_assessment_patterns(basic_info, outcomes)
        concept_map = await self.generate_concept_map(outcomes)
        logger.info(
            "Syllabus analyzed: %d topics, %d patterns, %d concept nodes",
            len(outcomes.key_topics),
            len(patterns.patterns),
            len(concept_map.nodes),
        )
        return SyllabusAnalysis(
            basic_info=basic_info,
            learning_outcomes=outcomes,
            assessment_patterns=patterns,
            concept_map=concept_map,
            notices=notices,
        )

    async def generate_assessment_patterns(
        self, basic_info: BasicInfo, outcomes: LearningOutcomes
    ) -> AssessmentPatterns:
        prompt = _PATTERNS_PROMPT.format(
            title=basic_info.course_title,
            code=basic_info.course_code,
            level=basic_info.academic_level,
            topics=", ".join(outcomes.key_topics),
            outcomes="; ".join(outcomes.learning_outcomes[:5]),
        )
        patterns = await self._ask(prompt, AssessmentPatterns, 0.7, 2500)
        if patterns is None or not patterns.patterns:
            return AssessmentPatterns(patterns=[STANDARD_PATTERN.model_copy(deep=True)])
        return patterns

    async def generate_concept_map(self, outcomes: LearningOutcomes) -> ConceptMap:
        weeks = "\n".join(
            f"Week {week.week}: {', '.join(week.topics)}" for week in outcomes.weekly_breakdown
        )
        prompt = _CONCEPT_MAP_PROMPT.format(topics=", ".join(outcomes.key_topics), weeks=weeks)
        concept_map = await self._ask(prompt, ConceptMap, 0.6, 2000)
        if concept_map is None:
            return ConceptMap(
                nodes=[
                    ConceptNode(id=f"topic{i}", label=topic, type="main")
                    for i, topic in enumerate(outcomes.key_topics)
                ]
            )
        return concept_map

    async def generate_assessment(
        self, analysis: SyllabusAnalysis, pattern: AssessmentPattern
    ) -> GeneratedAssessment:
        """Draft an assessment for *pattern*, spreading questions over the key topics.

        A failed or empty model reply yields an outline built from the pattern
        structure, flagged ``is_fallback``.
        """
        info = analysis.basic_info
        topics = analysis.learning_outcomes.key_topics
        total_questions = sum(item.count for item in pattern.structure)
        prompt = _ASSESSMENT_PROMPT.format(
            title=info.course_title,
            code=info.course_code,
            level=info.academic_level,
            pattern_name=pattern.name,
            pattern_description=pattern.description,
            structure=json.dumps([item.model_dump() for item in pattern.structure]),
            total_points=pattern.total_points,
            topics="\n".join(topics),
            objectives="\n".join(analysis.learning_outcomes.learning_outcomes),
            per_topic=math.ceil(total_questions / max(len(topics), 1)),
        )
        assessment = await self._ask(prompt, GeneratedAssessment, 0.7, 4000)
        if assessment is None or not assessment.questions:
            logger.warning(
                "Assessment generation failed for pattern %r, drafting outline", pattern.name
            )
            return outline_assessment(analysis, pattern)
        assessment.pattern_name = pattern.name
        logger.info(
            "Generated assessment %r with %d questions", assessment.title, len(assessment.questions)
        )
        return assessment

    async def _ask(
        self, prompt: str, schema: type[T], temperature: float, max_tokens: int
    ) -> T | None:
        try:
            raw = await self._client.execute_prompt(
                SYSTEM_PROMPT, prompt, temperature=temperature, max_tokens=max_tokens
            )
            return parse_payload(raw, schema)
        except (TransportError, LLMResponseError) as e:
            logger.warning("Syllabus %s extraction failed: %s", schema.__name__, e)
            return None


def outline_assessment(
    analysis: SyllabusAnalysis, pattern: AssessmentPattern
) -> GeneratedAssessment:
    """One open question per pattern slot, topics assigned round-robin."""
    topics = analysis.learning_outcomes.key_topics or ["the course material"]
    questions: list[GeneratedQuestion] = []
    for item in pattern.structure:
        for _ in range(item.count):
            topic = topics[len(questions) % len(topics)]
            questions.append(
                GeneratedQuestion(
                    question=f"{item.question_type}: explain the key ideas of {topic}.",
                    type=item.question_type.lower().replace(" ", "-"),
                    points=item.points_per_question,
                    topic=topic,
                )
            )
    title = analysis.basic_info.course_title
    return GeneratedAssessment(
        title=f"{title} {pattern.name}".strip(),
        description=pattern.description,
        pattern_name=pattern.name,
        total_points=sum(q.points for q in questions),
        time_limit=pattern.estimated_time,
        questions=questions,
        is_fallback=True,
        notices=[ASSESSMENT_TEMPLATE],
    )
