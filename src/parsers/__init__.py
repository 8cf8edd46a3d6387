from .markdown import (
    ExtraField,
    KnownField,
    classify_meta,
    parse_content,
    parse_file,
    render_document,
    write_file,
)

__all__ = [
    "parse_content",
    "parse_file",
    "render_document",
    "write_file",
    "classify_meta",
    "KnownField",
    "ExtraField",
]
