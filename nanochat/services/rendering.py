"""
Markdown Rendering

Assistant replies are stored with an HTML rendering next to the raw
Markdown. Raw HTML in model output is escaped, not passed through.
"""

from markdown_it import MarkdownIt

from nanochat.core.logging import get_logger

logger = get_logger(__name__)


def _build_markdown_parser() -> MarkdownIt:
    md = MarkdownIt("commonmark", {"html": False, "breaks": True, "linkify": False})
    md.enable(["table", "strikethrough"])
    return md


_MD_PARSER: MarkdownIt | None = None


def _get_markdown_parser() -> MarkdownIt:
    global _MD_PARSER
    if _MD_PARSER is None:
        _MD_PARSER = _build_markdown_parser()
    return _MD_PARSER


def render_markdown(content: str) -> str | None:
    """Render Markdown to HTML; None when rendering fails."""
    try:
        return _get_markdown_parser().render(content or "")
    except Exception as e:
        logger.warning("Failed to render HTML", error=str(e), content_length=len(content or ""))
        return None
