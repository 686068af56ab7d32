"""Field-level cleanup of raw report values. No I/O."""

import re

_COVERAGE_RE = re.compile(r">([\d.]+)<")
_LEADING_NUMBER_RE = re.compile(r"\d+(?:\.\d*)?|\.\d+")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

# ostype codes used by the report submitter
PLATFORMS_BY_OSTYPE = {
    0: "windows",
    1: "linux",
    2: "android",
    3: "macos",
    4: "ios",
}
DEFAULT_PLATFORM = "linux"


def parse_coverage(html: str | None) -> float:
    """Extract the percentage from coverage markup like ``<span>73.5</span>``.

    Returns 0 when there is no ``>number<`` match.
    """
    if not html:
        return 0
    match = _COVERAGE_RE.search(html)
    if not match:
        return 0
    raw = match.group(1)
    try:
        return float(raw)
    except ValueError:
        # e.g. "1.2.3" - keep the leading number
        leading = _LEADING_NUMBER_RE.match(raw)
        return float(leading.group(0)) if leading else 0


def classify_platform(ostype: int | None) -> str:
    """Map an ostype code to a platform name. Unknown codes count as linux."""
    return PLATFORMS_BY_OSTYPE.get(ostype, DEFAULT_PLATFORM)


def sanitize_text(text: str | None) -> str:
    """Sanitize text for PostgreSQL by removing control chars and trimming."""
    if not text:
        return ""
    if not isinstance(text, str):
        text = str(text)
    return _CONTROL_CHARS_RE.sub("", text).strip()
