from .package import (
    BodyParagraph,
    check_package,
    iter_body_paragraphs,
    open_package,
    package_hash,
    render_plain_text,
    save_package,
)

__all__ = [
    "BodyParagraph",
    "check_package",
    "iter_body_paragraphs",
    "open_package",
    "package_hash",
    "render_plain_text",
    "save_package",
]
