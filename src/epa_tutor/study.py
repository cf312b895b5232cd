"""Study mode: browsing requirements and tracking which have been studied."""
from epa_tutor.catalog import load_requirements, requirements_by_category
from epa_tutor.store import ProgressStore

ASSESSMENT_BADGES = {
    "knowledge_test": "KT",
    "practical_observation": "PO",
    "technical_interview": "TI",
}

FILTERS = {
    "all": "All requirements",
    "knowledge": "Knowledge (K1–K4)",
    "skill": "Skills (S1–S12)",
    "behaviour": "Behaviours (B1–B7)",
}


def filter_requirements(category: str = "all") -> list:
    if category not in FILTERS:
        raise ValueError(f"unknown filter: {category}")
    if category == "all":
        return list(load_requirements())
    return requirements_by_category(category)


def studied_progress(store: ProgressStore) -> int:
    """Percentage of catalog requirements marked studied."""
    total = len(load_requirements())
    if total == 0:
        return 0
    known = {r.id for r in load_requirements()}
    studied = sum(1 for code in store.studied if code in known)
    return round(studied / total * 100)


def mark_studied(store: ProgressStore, code: str) -> bool:
    """Toggle the studied mark for a requirement code."""
    known = {r.id for r in load_requirements()}
    if code not in known:
        raise KeyError(f"unknown requirement: {code}")
    return store.toggle_studied(code)


def assessment_labels(methods) -> list:
    return [f"{ASSESSMENT_BADGES[m]} – {m.replace('_', ' ')}" for m in methods]
