"""Pull focused sections out of a rendered transcript."""

from collections.abc import Callable

from .errors import InvalidRequest

DECISION_KEYWORDS = (
    "decided",
    "chose",
    "chosen",
    "approach",
    "because",
    "instead of",
    "opted for",
    "going with",
    "let's go with",
    "decision",
    "trade-off",
    "tradeoff",
)

ERROR_KEYWORDS = (
    "error",
    "exception",
    "failed",
    "failure",
    "bug",
    "issue",
    "crash",
    "fix",
    "broken",
    "stacktrace",
    "stack trace",
    "traceback",
)


def _keyword_paragraphs(content: str, keywords: tuple[str, ...]) -> list[str]:
    """Collect paragraphs containing a keyword, each under its ``## `` header.

    A paragraph runs from the keyword line to the next blank line or header.
    """
    lines = content.split("\n")
    relevant: list[str] = []
    header: str | None = None
    emitted_header: str | None = None
    in_block = False

    for i, line in enumerate(lines):
        if line.startswith("## "):
            if in_block:
                relevant.append("")
            in_block = False
            header = line

        if any(kw in line.lower() for kw in keywords) and not in_block:
            if header and header != line and header != emitted_header:
                relevant.append(header)
            emitted_header = header
            in_block = True

        if in_block:
            relevant.append(line)
            if not line.strip() and i > 0 and lines[i - 1].strip():
                in_block = False

    return relevant


def extract_decisions(content: str) -> str:
    found = _keyword_paragraphs(content, DECISION_KEYWORDS)
    return "\n".join(found) if found else "No decision-related content found."


def extract_errors(content: str) -> str:
    found = _keyword_paragraphs(content, ERROR_KEYWORDS)
    return "\n".join(found) if found else "No error-related content found."


def extract_code_blocks(content: str) -> str:
    """Return every fenced code block, separated by blank lines."""
    blocks = []
    current: list[str] | None = None

    for line in content.split("\n"):
        if line.lstrip().startswith("```"):
            if current is None:
                current = [line]
            else:
                current.append(line)
                blocks.append("\n".join(current))
                current = None
        elif current is not None:
            current.append(line)

    return "\n\n".join(blocks) if blocks else "No code blocks found."


SECTIONS: dict[str, Callable[[str], str]] = {
    "full": lambda content: content,
    "decisions": extract_decisions,
    "code": extract_code_blocks,
    "errors": extract_errors,
}


def extract_section(content: str, section: str = "full") -> str:
    try:
        extractor = SECTIONS[section]
    except KeyError:
        raise InvalidRequest(
            f"Unknown section {section!r}; expected one of {', '.join(SECTIONS)}"
        ) from None
    return extractor(content)
