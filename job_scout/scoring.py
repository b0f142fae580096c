"""job_scout.scoring: heuristic relevance score of a page.

The patterns below are plain text-matching signals without a precision/recall
target. Tune them freely; nothing downstream depends on exact values beyond
"higher is more promising".
"""
from __future__ import annotations

import re
from urllib.parse import urlsplit

from job_scout.crawler.models import PageSignals, Score

__all__ = ["compute_score", "INTERNATIONAL_RE", "GEO_RESTRICTION_RE", "INSTITUTIONAL_RE"]

INTERNATIONAL_RE = re.compile(
    r"international|foreign applicants|from abroad|outside germany|aus dem ausland|internationale bewerb",
    re.IGNORECASE,
)
GEO_RESTRICTION_RE = re.compile(
    r"only germany|nur .{0,40}deutschland|german residence|required in germany|wohnsitz in deutschland",
    re.IGNORECASE,
)
INSTITUTIONAL_RE = re.compile(r"\.(?:edu|ac|org)(?:\.[a-z]{2})?$", re.IGNORECASE)

# (points, reason)
EMAIL_POINTS = (30, "Application email found")
NO_FORM_POINTS = (20, "No application form")
INTERNATIONAL_POINTS = (25, "Open to international applicants")
NO_RESTRICTION_POINTS = (15, "No geographic restriction detected")
INSTITUTIONAL_POINTS = (10, "Institutional source")


def compute_score(page: PageSignals) -> Score:
    score = 0
    reasons: list[str] = []

    def add(rule: tuple[int, str]) -> None:
        nonlocal score
        score += rule[0]
        reasons.append(rule[1])

    if page.emails:
        add(EMAIL_POINTS)
    if not page.has_form:
        add(NO_FORM_POINTS)
    if INTERNATIONAL_RE.search(page.text):
        add(INTERNATIONAL_POINTS)
    if not GEO_RESTRICTION_RE.search(page.text):
        add(NO_RESTRICTION_POINTS)
    if INSTITUTIONAL_RE.search(urlsplit(page.url).hostname or ""):
        add(INSTITUTIONAL_POINTS)

    return Score(score=score, reasons=tuple(reasons))
