from .merger import merge_questions
from .question_detector import PatternQuestionDetector, detect_questions
from .semantic_extractor import SemanticExtractor, fallback_parse

__all__ = [
    "PatternQuestionDetector",
    "SemanticExtractor",
    "detect_questions",
    "fallback_parse",
    "merge_questions",
]
