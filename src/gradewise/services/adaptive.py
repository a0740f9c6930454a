"""Adaptive-learning recommendations.

Mostly deterministic curriculum logic over a student's assessment history. The
model is consulted only to top up struggle predictions when prerequisite
analysis finds fewer than two. Random choices (exploration topics, general
resources) come from an injected ``random.Random`` so results can be pinned
with ``Settings.recommendation_seed``.
"""

import json
import logging
import random
from collections import defaultdict
from collections.abc import Sequence

from gradewise.config import Settings
from gradewise.exceptions import GradewiseError, LLMResponseError, TransportError
from gradewise.schemas.assessment import AnswerEvaluation
from gradewise.schemas.learning import (
    AssessmentRecord,
    Course,
    DifficultyAdjustment,
    KnowledgeGap,
    LearningPath,
    PathActivity,
    PathModule,
    PerformanceAnalysis,
    PracticeActivity,
    Progress,
    Recommendations,
    ResourceRecommendation,
    Student,
    StrugglePrediction,
    Topic,
    TopicRecommendation,
    TrendEntry,
    WeakTopic,
)
from gradewise.services.fallbacks import LEARNING_PATH_UNAVAILABLE, RECOMMENDATIONS_UNAVAILABLE
from gradewise.services.llm import LLMClient
from gradewise.utils.llm_parse import parse_payload

logger = logging.getLogger(__name__)

DIFFICULTY_LEVELS = ("beginner", "intermediate", "advanced", "expert")
STRENGTH_SCORE = 85
MASTERY_SCORE = 90

MAX_NEXT_TOPICS = 5
MAX_RESOURCES = 7
MIN_RESOURCES = 5
MAX_PRACTICE = 5
MAX_STRUGGLE_AREAS = 3
RECENT_TREND_WINDOW = 5
UPCOMING_TOPIC_WINDOW = 3

_STRUGGLE_SYSTEM_PROMPT = (
    "You are an adaptive learning specialist analyzing student performance data."
)
_STRUGGLE_PROMPT = """\
As an adaptive learning specialist, predict which upcoming topics a student might struggle with based on their past performance.

STUDENT ASSESSMENT HISTORY:
{history}

UPCOMING TOPICS:
{topics}

Based on the student's performance patterns, predict which of the upcoming topics they might struggle with.
For each predicted struggle area, explain your reasoning and suggest preparation activities.

Return your predictions as a JSON array with this structure:
[
  {{
    "topic_id": "topic-id",
    "title": "Topic Title",
    "confidence": <number between 0 and 1>,
    "reason": "Explanation of why you predict struggle in this area",
    "recommended_preparation": ["specific preparation activity 1", "activity 2"]
  }}
]

Limit your predictions to the top 2 most likely struggle areas."""

_LEARNING_PATH_SYSTEM_PROMPT = "You are an expert educational designer."
_LEARNING_PATH_PROMPT = """\
You are an expert educational designer creating a personalized learning path for a student.

The student needs improvement in these areas (ranked from weakest to strongest):
{weak_areas}

The assessment was titled: "{assessment_title}"

Create a structured learning path with modules focusing on each weak area.
For each module, include varied learning activities (readings, videos, exercises, etc.).

Return a JSON object with the following structure:
{{
  "title": "Personalized Learning Path: [focus area]",
  "description": "A customized learning path to help you improve in specific areas.",
  "modules": [
    {{
      "title": "Module Title",
      "description": "Module description",
      "focus": "Main topic/concept of focus",
      "activities": [
        {{
          "type": "reading|video|practice|reflection|project",
          "title": "Activity Title",
          "description": "Detailed description of the activity",
          "estimated_time": "time in minutes",
          "resources": ["Resource 1", "Resource 2"]
        }}
      ]
    }}
  ]
}}

Limit to a maximum of {max_modules} modules, focusing on the weakest areas first.
Each module should have 2-4 activities.

IMPORTANT: Return ONLY the JSON object, no additional text."""

GENERAL_LEARNING_PATH = LearningPath(
    title="General Knowledge Enhancement",
    description="A learning path to strengthen your overall understanding of the subject.",
    modules=[
        PathModule(
            title="Subject Overview",
            description="A general review of key concepts in this subject.",
            activities=[
                PathActivity(
                    type="reading",
                    title="Review Core Concepts",
                    description="Review the fundamental concepts covered in this subject.",
                ),
                PathActivity(
                    type="practice",
                    title="Practice Problems",
                    description="Solve practice problems to reinforce your understanding.",
                ),
            ],
        )
    ],
)


def _find_topic(courses: Sequence[Course], topic_id: str) -> Topic | None:
    for course in courses:
        for topic in course.topics:
            if topic.id == topic_id:
                return topic
    return None


def _find_course(courses: Sequence[Course], course_id: str | None) -> Course | None:
    return next((c for c in courses if c.id == course_id), None)


def _topic_index(course: Course, topic_id: str | None) -> int:
    return next((i for i, t in enumerate(course.topics) if t.id == topic_id), -1)


def analyze_learning_trends(history: Sequence[AssessmentRecord]) -> list[TrendEntry]:
    """Score changes between consecutive same-topic assessments, plus each topic's latest result."""
    if len(history) < 2:
        return []

    by_topic: dict[str, list[AssessmentRecord]] = defaultdict(list)
    for record in sorted(history, key=lambda r: r.date):
        if record.topic:
            by_topic[record.topic].append(record)

    trends: list[TrendEntry] = []
    for topic, records in by_topic.items():
        if len(records) < 2:
            continue
        for previous, current in zip(records, records[1:]):
            diff = current.score - previous.score
            trends.append(
                TrendEntry(
                    topic=topic,
                    type="trend",
                    score_diff=diff,
                    days_between=round((current.date - previous.date).total_seconds() / 86400),
                    improvement=diff > 0,
                    start_date=previous.date,
                    end_date=current.date,
                    start_score=previous.score,
                    end_score=current.score,
                )
            )
        latest = records[-1]
        trends.append(
            TrendEntry(
                topic=topic, type="assessment", id=latest.id, date=latest.date, score=latest.score
            )
        )
    return sorted(trends, key=lambda entry: entry.sort_date)


def summarize_weak_topics(
    evaluations: Sequence[AnswerEvaluation], weak_score: float = 0.7
) -> list[WeakTopic]:
    """Pool answers scoring below *weak_score* by topic, weakest topic first.

    Topic scores are the mean of the pooled totals; the misconception, gap and
    concept lists keep first-seen order without duplicates.
    """
    pooled: dict[str, list[AnswerEvaluation]] = defaultdict(list)
    for evaluation in evaluations:
        if evaluation.total_score < weak_score:
            pooled[evaluation.topic or "General"].append(evaluation)

    weak_topics = [
        WeakTopic(
            topic=topic,
            score=sum(e.total_score for e in answers) / len(answers),
            count=len(answers),
            misconceptions=list(dict.fromkeys(m for e in answers for m in e.misconceptions)),
            learning_gaps=list(dict.fromkeys(g for e in answers for g in e.learning_gaps)),
            related_concepts=list(dict.fromkeys(c for e in answers for c in e.related_concepts)),
        )
        for topic, answers in pooled.items()
    ]
    return sorted(weak_topics, key=lambda weak: weak.score)


class AdaptiveLearningEngine:
    def __init__(
        self, client: LLMClient, settings: Settings, *, rng: random.Random | None = None
    ) -> None:
        self._client = client
        self._adaptation_threshold = settings.adaptation_threshold
        self._struggle_threshold = settings.struggle_threshold
        self._weak_answer_score = settings.learning_path_weak_score
        self._max_path_modules = settings.learning_path_max_modules
        self._rng = rng or random.Random(settings.recommendation_seed)

    async def generate_recommendations(
        self, student: Student, courses: Sequence[Course], progress: Progress | None
    ) -> Recommendations:
        logger.info("Generating recommendations for student %s", student.id)
        progress = progress or Progress()
        try:
            analysis = self.analyze_performance(student.assessment_history)
            return Recommendations(
                next_topics=self.recommend_next_topics(analysis, progress, courses),
                resource_recommendations=self.recommend_resources(analysis, courses),
                practice_suggestions=self.suggest_practice_activities(analysis, courses),
                adjusted_difficulty=self.adjust_difficulty(analysis, progress),
                predicted_struggle_areas=await self.predict_struggle_areas(
                    student, progress, courses
                ),
            )
        except (GradewiseError, ValueError) as e:
            logger.warning("Recommendation generation failed, using defaults: %s", e)
            return self.default_recommendations(progress, courses)

    def analyze_performance(self, history: Sequence[AssessmentRecord]) -> PerformanceAnalysis:
        """Per-topic averages sorted into strengths, mastered topics and knowledge gaps."""
        if not history:
            return PerformanceAnalysis()

        by_topic: dict[str, list[AssessmentRecord]] = defaultdict(list)
        for record in history:
            if record.topic:
                by_topic[record.topic].append(record)

        analysis = PerformanceAnalysis(learning_trends=analyze_learning_trends(history))
        weak_ceiling = self._struggle_threshold * 100
        for topic, records in by_topic.items():
            average = sum(r.score for r in records) / len(records)
            analysis.average_scores[topic] = average
            if average >= STRENGTH_SCORE:
                analysis.strengths.append(topic)
                if average >= MASTERY_SCORE:
                    analysis.mastered_topics.append(topic)
            elif average <= weak_ceiling:
                analysis.weaknesses.append(topic)
                analysis.knowledge_gaps.append(
                    KnowledgeGap(
                        topic=topic, score=average, assessment_ids=[r.id for r in records]
                    )
                )
        return analysis

    def adjust_difficulty(
        self, analysis: PerformanceAnalysis, progress: Progress
    ) -> DifficultyAdjustment:
        """Move one level up or down based on the average of recent results."""
        current = progress.current_difficulty
        index = DIFFICULTY_LEVELS.index(current)
        recent = [
            entry
            for entry in analysis.learning_trends[-RECENT_TREND_WINDOW:]
            if entry.type == "assessment"
        ]
        if not recent:
            return DifficultyAdjustment(
                level=current, change="maintain", reason="Not enough assessment data"
            )

        average = sum(entry.score or 0.0 for entry in recent) / len(recent)
        if average >= self._adaptation_threshold * 100:
            if index < len(DIFFICULTY_LEVELS) - 1:
                return DifficultyAdjustment(
                    level=DIFFICULTY_LEVELS[index + 1],
                    change="increase",
                    reason=(
                        f"Consistent strong performance ({round(average)}% average) "
                        "indicates readiness for more challenge"
                    ),
                )
            return DifficultyAdjustment(
                level=current,
                change="maintain",
                reason="Already at maximum difficulty level with strong performance",
            )
        if average < self._struggle_threshold * 100:
            if index > 0:
                return DifficultyAdjustment(
                    level=DIFFICULTY_LEVELS[index - 1],
                    change="decrease",
                    reason=(
                        f"Recent performance ({round(average)}% average) suggests "
                        "current level may be too challenging"
                    ),
                )
            return DifficultyAdjustment(
                level=current,
                change="maintain",
                reason="Already at minimum difficulty level, providing additional support",
            )
        return DifficultyAdjustment(
            level=current,
            change="maintain",
            reason=f"Current performance ({round(average)}% average) is appropriate for this level",
        )

    # ------------------------------------------------------------------ #
    #  Topics
    # ------------------------------------------------------------------ #

    def recommend_next_topics(
        self, analysis: PerformanceAnalysis, progress: Progress, courses: Sequence[Course]
    ) -> list[TopicRecommendation]:
        """Remedial gaps first, then the curriculum sequence, then exploration."""
        course = _find_course(courses, progress.course_id)
        if not progress.current_topic or course is None:
            return starting_topics(courses)

        completed = set(progress.completed_topics)
        remedial = [
            TopicRecommendation(
                topic_id=gap.topic,
                reason=f"This addresses a knowledge gap where you scored {round(gap.score)}%",
                priority="high",
                type="remedial",
            )
            for gap in analysis.knowledge_gaps
            if gap.topic not in completed
        ][:2]
        recommendations = (remedial + next_logical_topics(course, progress.current_topic, completed))[
            :MAX_NEXT_TOPICS
        ]
        if len(recommendations) < 3:
            recommendations += self.suggest_exploration_topics(analysis.strengths, completed, courses)
        return recommendations[:MAX_NEXT_TOPICS]

    def suggest_exploration_topics(
        self, strengths: Sequence[str], completed: set[str], courses: Sequence[Course]
    ) -> list[TopicRecommendation]:
        related = [
            TopicRecommendation(
                topic_id=topic.id,
                reason=f"This builds on your strength in {strength}",
                priority="medium",
                type="exploration",
            )
            for strength in strengths
            for course in courses
            for topic in course.topics
            if topic.id not in completed
            and topic.id != strength
            and strength in topic.related_topics
        ]
        self._rng.shuffle(related)
        return related[:2]

    # ------------------------------------------------------------------ #
    #  Resources and practice
    # ------------------------------------------------------------------ #

    def recommend_resources(
        self, analysis: PerformanceAnalysis, courses: Sequence[Course]
    ) -> list[ResourceRecommendation]:
        recommendations: list[ResourceRecommendation] = []
        for gap in analysis.knowledge_gaps[:3]:
            topic = _find_topic(courses, gap.topic)
            if topic is None:
                continue
            suitable = [r for r in topic.resources if r.difficulty in ("beginner", "intermediate")]
            recommendations += [
                ResourceRecommendation(
                    **resource.model_dump(),
                    reason=f"This will help strengthen your understanding of {topic.title}",
                    topic_id=gap.topic,
                    priority="high",
                )
                for resource in suitable[:2]
            ]

        for mastered in analysis.mastered_topics[:2]:
            topic = _find_topic(courses, mastered)
            if topic is None:
                continue
            advanced = [r for r in topic.resources if r.difficulty in ("advanced", "expert")]
            recommendations += [
                ResourceRecommendation(
                    **resource.model_dump(),
                    reason=f"This will deepen your expertise in {topic.title}",
                    topic_id=mastered,
                    priority="medium",
                )
                for resource in advanced[:1]
            ]

        if len(recommendations) < MIN_RESOURCES:
            recommendations += self._general_resources(
                courses, MIN_RESOURCES - len(recommendations)
            )
        return recommendations[:MAX_RESOURCES]

    def _general_resources(
        self, courses: Sequence[Course], count: int
    ) -> list[ResourceRecommendation]:
        pool = [
            ResourceRecommendation(
                **resource.model_dump(),
                reason=f"Additional resource for {topic.title}",
                topic_id=topic.id,
                priority="low",
            )
            for course in courses
            for topic in course.topics
            for resource in topic.resources
        ]
        self._rng.shuffle(pool)
        return pool[:count]

    def suggest_practice_activities(
        self, analysis: PerformanceAnalysis, courses: Sequence[Course]
    ) -> list[PracticeActivity]:
        activities: list[PracticeActivity] = []
        for gap in analysis.knowledge_gaps[:4]:
            topic = _find_topic(courses, gap.topic)
            if topic is None:
                continue
            if topic.quizzes:
                activities.append(
                    PracticeActivity(
                        type="quiz",
                        activity_id=topic.quizzes[0].id,
                        topic=gap.topic,
                        title=f"Practice Quiz: {topic.title}",
                        reason=(
                            "This will help strengthen your understanding in an area "
                            f"where you scored {round(gap.score)}%"
                        ),
                        priority="high",
                    )
                )
            if topic.exercises:
                activities.append(
                    PracticeActivity(
                        type="exercise",
                        activity_id=topic.exercises[0].id,
                        topic=gap.topic,
                        title=f"Practice Exercise: {topic.title}",
                        reason=f"Hands-on practice will reinforce concepts in {topic.title}",
                        priority="high",
                    )
                )

        for strength in analysis.strengths[:2]:
            topic = _find_topic(courses, strength)
            if topic is not None and topic.advanced_exercises:
                activities.append(
                    PracticeActivity(
                        type="advanced_exercise",
                        activity_id=topic.advanced_exercises[0].id,
                        topic=strength,
                        title=f"Advanced Exercise: {topic.title}",
                        reason="This will push your skills in an area where you show strength",
                        priority="medium",
                    )
                )
        return activities[:MAX_PRACTICE]

    # ------------------------------------------------------------------ #
    #  Struggle prediction
    # ------------------------------------------------------------------ #

    async def predict_struggle_areas(
        self, student: Student, progress: Progress, courses: Sequence[Course]
    ) -> list[StrugglePrediction]:
        """Upcoming topics whose prerequisites the student scored poorly on."""
        course = _find_course(courses, progress.course_id)
        if not progress.current_topic or course is None:
            return []
        index = _topic_index(course, progress.current_topic)
        if index == -1:
            return []
        upcoming = course.topics[index + 1 : index + 1 + UPCOMING_TOPIC_WINDOW]
        if not upcoming:
            return []

        weak_ceiling = self._struggle_threshold * 100
        weak_topics = {
            r.topic for r in student.assessment_history if r.topic and r.score < weak_ceiling
        }
        predictions: list[StrugglePrediction] = []
        for topic in upcoming:
            if not topic.prerequisites:
                continue
            weak = [p for p in topic.prerequisites if p in weak_topics]
            if weak:
                predictions.append(
                    StrugglePrediction(
                        topic_id=topic.id,
                        title=topic.title,
                        confidence=len(weak) / len(topic.prerequisites),
                        reason=f"Based on difficulty with prerequisites: {', '.join(weak)}",
                        recommended_preparation=preparation_for_topic(topic, courses),
                    )
                )

        if len(predictions) < 2 and student.assessment_history:
            known = {p.topic_id for p in predictions}
            predicted = await self._predict_with_model(student.assessment_history, upcoming)
            predictions += [p for p in predicted if p.topic_id not in known]
        return predictions[:MAX_STRUGGLE_AREAS]

    async def _predict_with_model(
        self, history: Sequence[AssessmentRecord], upcoming: Sequence[Topic]
    ) -> list[StrugglePrediction]:
        history_lines = "\n".join(
            f"Topic: {r.topic}, Score: {r.score}%, Date: {r.date.date().isoformat()}"
            for r in history
        )
        topic_lines = "\n".join(
            f"Topic ID: {t.id}, Title: {t.title}, "
            f"Key Concepts: {', '.join(t.key_concepts) or 'N/A'}"
            for t in upcoming
        )
        try:
            raw = await self._client.execute_prompt(
                _STRUGGLE_SYSTEM_PROMPT,
                _STRUGGLE_PROMPT.format(history=history_lines, topics=topic_lines),
                temperature=0.3,
                max_tokens=800,
            )
            return parse_payload(raw, list[StrugglePrediction])
        except (TransportError, LLMResponseError) as e:
            logger.warning("Model struggle prediction failed: %s", e)
            return []

    # ------------------------------------------------------------------ #
    #  Learning paths
    # ------------------------------------------------------------------ #

    async def generate_learning_path(
        self, evaluations: Sequence[AnswerEvaluation], assessment_title: str = ""
    ) -> LearningPath:
        """Study modules for the topics a graded assessment shows to be weak."""
        weak_topics = summarize_weak_topics(evaluations, self._weak_answer_score)
        if not weak_topics:
            return GENERAL_LEARNING_PATH.model_copy(deep=True)

        weak_areas = [
            {
                "topic": weak.topic,
                "misconceptions": weak.misconceptions[:3],
                "learning_gaps": weak.learning_gaps[:3],
                "related_concepts": weak.related_concepts[:5],
            }
            for weak in weak_topics
        ]
        try:
            raw = await self._client.execute_prompt(
                _LEARNING_PATH_SYSTEM_PROMPT,
                _LEARNING_PATH_PROMPT.format(
                    weak_areas=json.dumps(weak_areas, indent=2),
                    assessment_title=assessment_title,
                    max_modules=self._max_path_modules,
                ),
                temperature=0.7,
                max_tokens=4000,
            )
            path = parse_payload(raw, LearningPath)
        except (TransportError, LLMResponseError) as e:
            logger.warning("Learning path generation failed, building review modules: %s", e)
            return review_path(weak_topics[: self._max_path_modules])

        path.modules = path.modules[: self._max_path_modules]
        path.weak_topics = weak_topics
        logger.info("Learning path %r with %d modules", path.title, len(path.modules))
        return path

    # ------------------------------------------------------------------ #
    #  Defaults
    # ------------------------------------------------------------------ #

    def default_recommendations(
        self, progress: Progress | None, courses: Sequence[Course]
    ) -> Recommendations:
        progress = progress or Progress()
        return Recommendations(
            next_topics=default_next_topics(progress, courses),
            adjusted_difficulty=DifficultyAdjustment(
                level=progress.current_difficulty,
                change="maintain",
                reason=RECOMMENDATIONS_UNAVAILABLE,
            ),
            is_fallback=True,
        )


def next_logical_topics(
    course: Course, current_topic: str, completed: set[str]
) -> list[TopicRecommendation]:
    index = _topic_index(course, current_topic)
    if index == -1:
        return []
    remaining = [t for t in course.topics[index + 1 :] if t.id not in completed][:3]
    return [
        TopicRecommendation(
            topic_id=topic.id,
            reason=(
                "This is the next topic in your learning sequence"
                if i == 0
                else "This follows your current learning progression"
            ),
            priority="high" if i == 0 else "medium",
            type="sequential",
        )
        for i, topic in enumerate(remaining)
    ]


def starting_topics(courses: Sequence[Course], count: int = 3) -> list[TopicRecommendation]:
    """First topics of up to two beginner courses (or the first course when none are)."""
    chosen = [c for c in courses if c.difficulty == "beginner" and c.topics][:2]
    if not chosen and courses:
        chosen = [courses[0]]
    topics = [
        TopicRecommendation(
            topic_id=topic.id,
            reason=(
                f"Recommended starting point for {course.title}"
                if i == 0
                else f"Early topic in the {course.title} course"
            ),
            priority="high" if i == 0 else "medium",
            type="starting",
        )
        for course in chosen
        for i, topic in enumerate(course.topics[:2])
    ]
    return topics[:count]


def default_next_topics(progress: Progress, courses: Sequence[Course]) -> list[TopicRecommendation]:
    course = _find_course(courses, progress.course_id)
    if course is None or not course.topics:
        return starting_topics(courses)
    index = _topic_index(course, progress.current_topic)
    if progress.current_topic and index != -1 and index < len(course.topics) - 1:
        return [
            TopicRecommendation(
                topic_id=topic.id,
                reason="Next topic in sequence" if i == 0 else "Upcoming topic in your current course",
                priority="high" if i == 0 else "medium",
                type="sequential",
            )
            for i, topic in enumerate(course.topics[index + 1 : index + 4])
        ]
    return starting_topics(courses)


def preparation_for_topic(topic: Topic, courses: Sequence[Course]) -> list[str]:
    steps: list[str] = []
    for prerequisite_id in topic.prerequisites:
        prerequisite = _find_topic(courses, prerequisite_id)
        if prerequisite is None:
            continue
        steps.append(f"Review the fundamentals of {prerequisite.title}")
        if prerequisite.resources:
            steps.append(f'Complete the "{prerequisite.resources[0].title}" resource')
    concept = topic.key_concepts[0] if topic.key_concepts else "key concepts"
    steps.append(f"Complete practice exercises on {concept}")
    return steps


def review_path(weak_topics: Sequence[WeakTopic]) -> LearningPath:
    """One review module per weak topic, used when the model cannot draft a path."""
    modules = []
    for weak in weak_topics:
        activities = [
            PathActivity(
                type="reading",
                title=f"Review {weak.topic}",
                description=f"Revisit the course materials covering {weak.topic}.",
                resources=weak.related_concepts[:5],
            ),
            PathActivity(
                type="practice",
                title=f"Practice {weak.topic}",
                description="Solve practice problems to reinforce your understanding.",
            ),
        ]
        if weak.misconceptions:
            activities.append(
                PathActivity(
                    type="reflection",
                    title="Correct misconceptions",
                    description="Check your understanding of: "
                    + "; ".join(weak.misconceptions[:3]),
                )
            )
        modules.append(
            PathModule(
                title=f"Strengthen {weak.topic}",
                description=f"Focused review of {weak.topic}.",
                focus=weak.topic,
                activities=activities,
            )
        )
    return LearningPath(
        title=f"Personalized Learning Path: {weak_topics[0].topic}",
        description="A customized learning path to help you improve in specific areas.",
        modules=modules,
        weak_topics=list(weak_topics),
        is_fallback=True,
        notices=[LEARNING_PATH_UNAVAILABLE],
    )
