"""Heuristic: is the model waiting on the user?

Best effort only. It looks at surface phrasing, so it misses questions
phrased unusually and flags rhetorical ones. The run loop treats a miss as
"send a reminder" and a false hit as "ask the user", both recoverable.
"""

import re

__all__ = ["QUESTION_PHRASES", "looks_like_question"]

QUESTION_PHRASES = (
    "would you like",
    "should i",
    "shall i",
    "do you want",
    "let me know",
    "can you confirm",
    "could you clarify",
    "please confirm",
    "which one",
    "what would you prefer",
)

_CODE_FENCE_RE = re.compile(r"```.*?```", re.DOTALL)


def looks_like_question(text: str) -> bool:
    if not text:
        return False
    prose = _CODE_FENCE_RE.sub("", text).strip()
    if not prose:
        return False
    if prose.rstrip("*_ )\"'").endswith("?"):
        return True
    lowered = prose.lower()
    return any(phrase in lowered for phrase in QUESTION_PHRASES)
