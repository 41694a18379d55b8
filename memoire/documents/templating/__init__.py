from .answer_injector import ExportOptions, InjectionDetail, InjectionReport, export_with_answers
from .placeholders import placeholder_token
from .template_builder import BuildResult, InternalTemplate, QuestionPositionMapping, build_internal_template
from .validator import ValidationResult, ensure_valid, validate_template

__all__ = [
    "BuildResult",
    "ExportOptions",
    "InjectionDetail",
    "InjectionReport",
    "InternalTemplate",
    "QuestionPositionMapping",
    "ValidationResult",
    "build_internal_template",
    "ensure_valid",
    "export_with_answers",
    "placeholder_token",
    "validate_template",
]
