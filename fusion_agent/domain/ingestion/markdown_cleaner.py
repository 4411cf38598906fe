import re

_HTML_TAG = re.compile(r"<[^>]*>")
_IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]+\)")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_INLINE_CODE = re.compile(r"`([^`]+)`")
_BOLD = re.compile(r"\*\*([^*]+)\*\*")
_ITALIC = re.compile(r"\*([^*]+)\*")
_HEADER = re.compile(r"^\s*#{1,6}\s+")
_BULLET = re.compile(r"^\s*[-*+]\s+")
_NUMBERED = re.compile(r"^\s*\d+\.\s+")
_BLOCKQUOTE = re.compile(r"^\s*>\s+")
_RULE = re.compile(r"^\s*---+\s*$")
_FENCE = re.compile(r"^\s*```")


class MarkdownLineCleaner:
    """Strips markdown syntax one line at a time.

    Fenced code blocks span lines, so the cleaner keeps track of whether it is
    inside one; use a fresh instance per document.
    """

    def __init__(self):
        self.in_code_block = False

    def __call__(self, line: str) -> str:
        if _FENCE.match(line):
            self.in_code_block = not self.in_code_block
            return ""
        if self.in_code_block or _RULE.match(line):
            return ""

        line = _HTML_TAG.sub("", line)
        line = _IMAGE.sub("", line)
        line = _LINK.sub(r"\1", line)
        line = _INLINE_CODE.sub(r"\1", line)
        line = _BOLD.sub(r"\1", line)
        line = _ITALIC.sub(r"\1", line)
        line = _HEADER.sub("", line)
        line = _BULLET.sub("", line)
        line = _NUMBERED.sub("", line)
        line = _BLOCKQUOTE.sub("", line)
        return line
