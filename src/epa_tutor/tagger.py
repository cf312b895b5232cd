"""Keyword tagging of free text against the requirement catalog."""
from epa_tutor.catalog import load_requirements
from epa_tutor.models import Requirement

MIN_KEYWORD_LENGTH = 6
MIN_KEYWORD_MATCHES = 2


def requirement_keywords(requirement: Requirement) -> list:
    """Words longer than five characters from a requirement's key points."""
    return [
        word
        for point in requirement.key_points
        for word in point.lower().split()
        if len(word) >= MIN_KEYWORD_LENGTH
    ]


def matches_requirement(text: str, requirement: Requirement) -> bool:
    text_lower = text.lower()
    if requirement.id.lower() in text_lower:
        return True
    hits = sum(1 for kw in requirement_keywords(requirement) if kw in text_lower)
    return hits >= MIN_KEYWORD_MATCHES


def tag_evidence_ordered(text: str, requirements=None) -> list:
    """Codes the text appears to evidence, in catalog order."""
    if not text:
        return []
    if requirements is None:
        requirements = load_requirements()
    return [r.id for r in requirements if matches_requirement(text, r)]


def tag_evidence(text: str, requirements=None) -> set:
    return set(tag_evidence_ordered(text, requirements))
