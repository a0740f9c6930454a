"""User-facing copy shown alongside fallback values.

Every call site that substitutes a default for a failed model call attaches
one of these strings so the surrounding application never has to invent its
own wording.
"""

PARTIAL_CREDIT = (
    "We encountered an issue evaluating your response in detail; partial credit given."
)
SHORT_ANSWER_PARTIAL_CREDIT = (
    "System encountered an issue evaluating your response in detail; partial credit given."
)
ACCURACY_UNAVAILABLE = "Error evaluating answer accuracy. Please review manually."
CONCEPTUAL_UNAVAILABLE = "Error evaluating conceptual understanding. Please review manually."
PRESENTATION_UNAVAILABLE = "Error evaluating presentation quality. Please review manually."
PLAGIARISM_UNAVAILABLE = (
    "Plagiarism detection system encountered an error. Please review manually."
)
SIMILARITY_UNAVAILABLE = "Similarity comparison was unavailable; no match reported."
CONSENSUS_UNAVAILABLE = "An error occurred while generating the consensus evaluation."
CONSENSUS_EMPTY = "Unable to provide a consensus evaluation without expert feedback."
REPORT_UNAVAILABLE = "An error occurred while generating the educational report."
RECOMMENDATIONS_UNAVAILABLE = "Continuing at current level"
SYLLABUS_PARTIAL = "Part of the syllabus could not be analyzed automatically; defaults were used."
ASSESSMENT_TEMPLATE = (
    "The assessment could not be generated automatically; a question outline was drafted instead."
)
LEARNING_PATH_UNAVAILABLE = (
    "A personalized path could not be generated; review modules were built from your results."
)

OVERALL_FEEDBACK_BANDS: tuple[tuple[float, str], ...] = (
    (90, "Excellent work! You've demonstrated a strong understanding of the material."),
    (70, "Good job! You've shown solid knowledge, with some areas that could be strengthened."),
    (50, "You've made good progress, but there are several concepts that need further review."),
    (0, "This topic needs additional study. Focus on reviewing the core concepts and try again."),
)


def overall_feedback_for(score: float) -> str:
    """Pick the canned overall feedback for a percentage score."""
    for floor, message in OVERALL_FEEDBACK_BANDS:
        if score >= floor:
            return message
    return OVERALL_FEEDBACK_BANDS[-1][1]
