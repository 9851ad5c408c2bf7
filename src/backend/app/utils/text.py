import re
import unicodedata

# keeps \t and \n, which notes may legitimately contain
CONTROL_CHAR_RE = re.compile(r"[\u0000-\u0008\u000b-\u001f\u007f-\u009f]")
WHITESPACE_RE = re.compile(r"\s+")
TRAILING_SPACE_RE = re.compile(r"[ \t]+\n")
BLANK_LINES_RE = re.compile(r"\n{3,}")


def normalize_search(value: str) -> str:
    """Single-line search term: NFC, control characters dropped, whitespace collapsed."""
    if not value:
        return ""
    text = unicodedata.normalize("NFC", value)
    text = CONTROL_CHAR_RE.sub(" ", text)
    return WHITESPACE_RE.sub(" ", text).strip()


def clean_note(value: str) -> str:
    """Free-text note with its line breaks kept, at most one empty line in a row."""
    if not value:
        return ""
    text = unicodedata.normalize("NFC", value).replace("\r\n", "\n").replace("\r", "\n")
    text = CONTROL_CHAR_RE.sub("", text)
    text = TRAILING_SPACE_RE.sub("\n", text)
    text = BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()
