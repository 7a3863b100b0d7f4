"""Question type resolution.

Import documents name question types in free form: canonical kind names,
the names used by older exports, a few free-text aliases (one of them a
misspelling that shipped in real documents) and legacy numeric codes.
Everything is normalized here so no other module has to deal with raw
type strings.
"""

import re
from typing import Optional, Tuple

from ..models import QuestionKind

_WHITESPACE = re.compile(r"\s+")

_KIND_NAMES = {
    "singlecorrect": QuestionKind.SINGLE_CORRECT,
    "multicorrect": QuestionKind.MULTI_CORRECT,
    "booleanchoice": QuestionKind.BOOLEAN_CHOICE,
    "freetext": QuestionKind.FREE_TEXT,
    # names used by older exports
    "multiplechoice": QuestionKind.SINGLE_CORRECT,
    "multiplecheckbox": QuestionKind.MULTI_CORRECT,
    "truefalse": QuestionKind.BOOLEAN_CHOICE,
}

FREE_TEXT_ALIASES = frozenset({"shortanswer", "usershortanswer", "usershortanwswer"})

_LEGACY_CODES = {
    "1": QuestionKind.SINGLE_CORRECT,
    "2": QuestionKind.MULTI_CORRECT,
    "3": QuestionKind.BOOLEAN_CHOICE,
    "4": QuestionKind.FREE_TEXT,
}


def normalize(raw_type: Optional[str]) -> str:
    """Remove all whitespace and lower-case `raw_type`."""
    if not isinstance(raw_type, str):
        return ""
    return _WHITESPACE.sub("", raw_type).lower()


def resolve(raw_type: Optional[str]) -> Tuple[Optional[QuestionKind], bool]:
    """Map a raw type string to a `QuestionKind`.

    Returns `(kind, True)` on success and `(None, False)` for anything
    unrecognized, including `None` and blank strings. Never raises.
    """
    norm = normalize(raw_type)
    if not norm:
        return None, False
    if norm in FREE_TEXT_ALIASES:
        return QuestionKind.FREE_TEXT, True
    kind = _KIND_NAMES.get(norm) or _LEGACY_CODES.get(norm)
    if kind is None:
        return None, False
    return kind, True


def is_gradable(kind: QuestionKind) -> bool:
    """Free-text questions are reviewed by people, never auto-graded."""
    return kind != QuestionKind.FREE_TEXT
