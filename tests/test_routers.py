from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from gradewise.exceptions import GradewiseError
from gradewise.schemas.assessment import AnswerEvaluation, SubmissionEvaluation
from gradewise.schemas.expert import ConsensusEvaluation, ExpertFeedback
from gradewise.schemas.learning import DifficultyAdjustment, LearningPath, Recommendations
from gradewise.schemas.plagiarism import EducationalReport, PlagiarismReport, PlagiarismVerdict
from gradewise.schemas.scoring import SubScore
from gradewise.schemas.syllabus import (
    AssessmentPatterns,
    BasicInfo,
    ConceptMap,
    GeneratedAssessment,
    LearningOutcomes,
    SyllabusAnalysis,
)

ASSESSMENT = {"id": "a1", "title": "Quiz", "questions": [{"question": "2+2?", "type": "short-answer"}]}
SUBMISSION = {"id": "s1", "answers": [{"question_index": 0, "answer": "4"}]}


class TestHealth:
    def test_reachable(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "llm_provider": "openai", "llm_reachable": True}

    def test_degraded(self, client, mock_client):
        mock_client.is_reachable = AsyncMock(return_value=False)

        response = client.get("/api/v1/health")

        assert response.json()["status"] == "degraded"


class TestAssessmentsEndpoint:
    def test_evaluate(self, client, test_app):
        evaluator = test_app.state.evaluator
        evaluator.evaluate_submission = AsyncMock(
            return_value=SubmissionEvaluation(score=100, feedback="Great", total_points=1, earned_points=1)
        )

        response = client.post(
            "/api/v1/assessments/evaluate",
            json={"submission": SUBMISSION, "assessment": ASSESSMENT},
        )

        assert response.status_code == 200
        assert response.json()["score"] == 100
        submission, assessment = evaluator.evaluate_submission.call_args.args
        assert submission.answers[0].answer == "4"
        assert assessment.questions[0].question == "2+2?"

    def test_missing_assessment(self, client):
        response = client.post("/api/v1/assessments/evaluate", json={"submission": SUBMISSION})

        assert response.status_code == 422


class TestAnswersEndpoint:
    def test_grade(self, client, test_app):
        grader = test_app.state.rubric_grader
        grader.grade_answer = AsyncMock(
            return_value=AnswerEvaluation(
                answer="4",
                accuracy=SubScore(name="accuracy", value=1.0),
                conceptual_understanding=SubScore(name="conceptual_understanding", value=0.8),
                originality=SubScore(name="originality", value=0.9),
                presentation=SubScore(name="presentation", value=0.7),
                plagiarism=PlagiarismVerdict(similarity_score=10),
                total_score=0.89,
            )
        )

        response = client.post(
            "/api/v1/answers/grade",
            json={"question": {"question": "2+2?"}, "answer": "4", "domain": "math"},
        )

        assert response.status_code == 200
        assert response.json()["total_score"] == 0.89
        assert grader.grade_answer.call_args.kwargs["domain"] == "math"


class TestPlagiarismEndpoints:
    def test_check_without_report(self, client, test_app):
        detector = test_app.state.plagiarism
        detector.check_submission = AsyncMock(return_value=PlagiarismReport())
        detector.generate_educational_report = AsyncMock()

        response = client.post(
            "/api/v1/plagiarism/check",
            json={"submission": SUBMISSION, "assessment": ASSESSMENT},
        )

        assert response.status_code == 200
        assert response.json()["educational_report"] is None
        detector.generate_educational_report.assert_not_called()

    def test_check_with_report(self, client, test_app):
        detector = test_app.state.plagiarism
        detector.check_submission = AsyncMock(return_value=PlagiarismReport())
        detector.generate_educational_report = AsyncMock(
            return_value=EducationalReport(summary="All clear.")
        )

        response = client.post(
            "/api/v1/plagiarism/check",
            json={"submission": SUBMISSION, "assessment": ASSESSMENT, "include_report": True},
        )

        assert response.json()["educational_report"]["summary"] == "All clear."

    def test_assess(self, client, test_app):
        detector = test_app.state.plagiarism
        detector.assess_text = AsyncMock(
            return_value=PlagiarismVerdict(similarity_score=42, feedback="Possible")
        )

        response = client.post("/api/v1/plagiarism/assess", json={"text": "Some essay"})

        assert response.status_code == 200
        assert response.json()["similarity_score"] == 42

    def test_assess_empty_text(self, client):
        response = client.post("/api/v1/plagiarism/assess", json={"text": ""})

        assert response.status_code == 422


class TestExpertPanelEndpoints:
    def test_feedback_defaults_to_all_roles(self, client, test_app):
        panel = test_app.state.expert_panel
        panel.get_panel_feedback = AsyncMock(
            return_value=[ExpertFeedback(role="fact-checker", feedback="Accurate.", score=90)]
        )

        response = client.post(
            "/api/v1/expert-panel/feedback", json={"question": "Why?", "answer": "Because."}
        )

        assert response.status_code == 200
        assert response.json()[0]["role"] == "fact-checker"
        assert len(panel.get_panel_feedback.call_args.kwargs["experts"]) == 5

    def test_consensus(self, client, test_app):
        panel = test_app.state.expert_panel
        panel.get_consensus = AsyncMock(
            return_value=ConsensusEvaluation(overall_feedback="Good.", recommended_score=80)
        )

        response = client.post(
            "/api/v1/expert-panel/consensus",
            json={"feedback": [{"role": "fact-checker", "feedback": "Accurate."}]},
        )

        assert response.json()["recommended_score"] == 80


class TestLearningEndpoint:
    def test_recommendations(self, client, test_app):
        engine = test_app.state.adaptive
        engine.generate_recommendations = AsyncMock(
            return_value=Recommendations(
                adjusted_difficulty=DifficultyAdjustment(
                    level="beginner", change="maintain", reason="Not enough assessment data"
                )
            )
        )

        response = client.post("/api/v1/learning/recommendations", json={"student": {"id": "st1"}})

        assert response.status_code == 200
        assert response.json()["adjusted_difficulty"]["change"] == "maintain"
        student, courses, progress = engine.generate_recommendations.call_args.args
        assert student.id == "st1"
        assert courses == []
        assert progress is None

    def test_learning_path(self, client, test_app):
        engine = test_app.state.adaptive
        engine.generate_learning_path = AsyncMock(
            return_value=LearningPath(title="General Knowledge Enhancement")
        )
        evaluation = {
            "answer": "4",
            "accuracy": {"name": "accuracy", "value": 0.2},
            "conceptual_understanding": {"name": "conceptual_understanding", "value": 0.2},
            "originality": {"name": "originality", "value": 0.2},
            "presentation": {"name": "presentation", "value": 0.2},
            "plagiarism": {},
            "total_score": 0.2,
            "topic": "Arithmetic",
        }

        response = client.post(
            "/api/v1/learning/path",
            json={"evaluations": [evaluation], "assessment_title": "Quiz"},
        )

        assert response.status_code == 200
        assert response.json()["title"] == "General Knowledge Enhancement"
        evaluations, title = engine.generate_learning_path.call_args.args
        assert evaluations[0].topic == "Arithmetic"
        assert title == "Quiz"


class TestSyllabusEndpoint:
    def test_analyze(self, client, test_app):
        analyzer = test_app.state.syllabus
        analyzer.analyze = AsyncMock(
            return_value=SyllabusAnalysis(
                basic_info=BasicInfo(course_title="CS 101"),
                learning_outcomes=LearningOutcomes(),
                assessment_patterns=AssessmentPatterns(),
                concept_map=ConceptMap(),
            )
        )

        response = client.post("/api/v1/syllabus/analyze", json={"content": "Week 1: intro"})

        assert response.status_code == 200
        assert response.json()["basic_info"]["course_title"] == "CS 101"

    def test_generate_assessment(self, client, test_app):
        analyzer = test_app.state.syllabus
        analyzer.generate_assessment = AsyncMock(
            return_value=GeneratedAssessment(title="CS 101 Quiz", pattern_name="Quiz")
        )
        analysis = SyllabusAnalysis(
            basic_info=BasicInfo(course_title="CS 101"),
            learning_outcomes=LearningOutcomes(key_topics=["Loops"]),
            assessment_patterns=AssessmentPatterns(),
            concept_map=ConceptMap(),
        )

        response = client.post(
            "/api/v1/syllabus/assessment",
            json={"analysis": analysis.model_dump(), "pattern": {"name": "Quiz"}},
        )

        assert response.status_code == 200
        assert response.json()["title"] == "CS 101 Quiz"
        sent_analysis, pattern = analyzer.generate_assessment.call_args.args
        assert sent_analysis.learning_outcomes.key_topics == ["Loops"]
        assert pattern.name == "Quiz"


class TestErrorHandlers:
    def test_domain_errors_map_to_500(self, test_app):
        from gradewise.main import gradewise_error_handler

        test_app.add_exception_handler(GradewiseError, gradewise_error_handler)
        analyzer = test_app.state.syllabus
        analyzer.analyze = AsyncMock(side_effect=GradewiseError("boom"))

        response = TestClient(test_app).post("/api/v1/syllabus/analyze", json={"content": "x"})

        assert response.status_code == 500
        assert response.json() == {"detail": "boom"}
