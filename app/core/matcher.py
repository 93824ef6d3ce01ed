"""
Identity name matcher.

Scores two personal names 0..100. Two signals are computed over the
normalized names and the larger one wins:
  - token score: share of tokens in A that have a counterpart in B
    (identical, substring either way, or edit distance <= 2)
  - Levenshtein similarity of the full normalized strings
Ties are reported as "token".
"""
import math
import re
from dataclasses import dataclass
from typing import List

import Levenshtein

METHOD_EXACT = "exact"
METHOD_TOKEN = "token"
METHOD_LEVENSHTEIN = "levenshtein"

_NON_LETTERS = re.compile(r"[^A-Z\s]")
_WS = re.compile(r"\s+")

# Max edit distance for two tokens to count as the same word
TOKEN_EDIT_TOLERANCE = 2


@dataclass(frozen=True)
class MatchResult:
    score: int
    method: str


def normalize_name(name) -> str:
    s = str(name or "").upper()
    s = _NON_LETTERS.sub("", s)
    return _WS.sub(" ", s).strip()


def _tokens_match(t: str, others: List[str]) -> bool:
    for o in others:
        if t == o or t in o or o in t:
            return True
        if Levenshtein.distance(t, o) <= TOKEN_EDIT_TOLERANCE:
            return True
    return False


def token_score(a: str, b: str) -> float:
    ta = a.split()
    tb = b.split()
    if not ta or not tb:
        return 0.0
    matched = sum(1 for t in ta if _tokens_match(t, tb))
    return 100.0 * matched / max(len(ta), len(tb))


def levenshtein_score(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return 100.0 * (longest - Levenshtein.distance(a, b)) / longest


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def score(name_a, name_b) -> MatchResult:
    a = normalize_name(name_a)
    b = normalize_name(name_b)
    if not a or not b:
        return MatchResult(score=0, method=METHOD_TOKEN)
    if a == b:
        return MatchResult(score=100, method=METHOD_EXACT)

    tok = token_score(a, b)
    lev = levenshtein_score(a, b)
    if tok >= lev:
        return MatchResult(score=_round_half_up(tok), method=METHOD_TOKEN)
    return MatchResult(score=_round_half_up(lev), method=METHOD_LEVENSHTEIN)
