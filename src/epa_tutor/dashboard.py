"""Dashboard statistics and per-requirement tracker status."""
from epa_tutor.catalog import load_requirements
from epa_tutor.portfolio import document_text
from epa_tutor.quiz import get_grade, grade_for_percentage
from epa_tutor.store import PORTFOLIO_TARGET, ProgressStore
from epa_tutor.tagger import tag_evidence

STATUS_LABELS = {
    "complete": ("Completed", "green"),
    "evidenced": ("Evidenced", "dark_orange"),
    "studied": ("Studied", "blue"),
    "pending": ("Not Started", "dim"),
}


def get_score_color(pct: float) -> str:
    return grade_for_percentage(pct).color


def evidenced_codes(store: ProgressStore) -> set:
    """Requirement codes the portfolio text provides evidence for."""
    text = " ".join(document_text(d) for d in store.documents)
    return tag_evidence(text)


def tested_codes(store: ProgressStore) -> set:
    """Requirement codes covered by at least one finished exam."""
    codes = set()
    for attempt in store.attempts:
        codes.update(attempt.requirements)
    return codes


def requirement_status(code: str, store: ProgressStore, evidenced=None, tested=None) -> str:
    if evidenced is None:
        evidenced = evidenced_codes(store)
    if tested is None:
        tested = tested_codes(store)
    if code in evidenced and code in tested:
        return "complete"
    if code in evidenced:
        return "evidenced"
    if store.is_studied(code):
        return "studied"
    return "pending"


def tracker_statuses(store: ProgressStore) -> dict:
    evidenced = evidenced_codes(store)
    tested = tested_codes(store)
    return {
        r.id: requirement_status(r.id, store, evidenced, tested)
        for r in load_requirements()
    }


def tracker_summary(store: ProgressStore) -> dict:
    statuses = tracker_statuses(store)
    return {
        "total": len(statuses),
        "studied": store.studied_count,
        "evidenced": sum(1 for s in statuses.values() if s in ("evidenced", "complete")),
        "complete": sum(1 for s in statuses.values() if s == "complete"),
    }


def get_dashboard_stats(store: ProgressStore) -> dict:
    total = len(load_requirements())
    last = store.last_attempt
    stats = {
        "studied": store.studied_count,
        "requirements_total": total,
        "studied_pct": round(store.studied_count / total * 100) if total else 0,
        "tests_taken": len(store.attempts),
        "tests_progress": min(100, len(store.attempts) * 10),
        "avg_score": store.average_score,
        "portfolio_complete": store.completed_portfolio_count,
        "portfolio_target": PORTFOLIO_TARGET,
        "portfolio_pct": round(store.completed_portfolio_count / PORTFOLIO_TARGET * 100),
        "last_attempt": None,
    }
    if last is not None:
        stats["last_attempt"] = {
            "score": last.score,
            "total": last.total,
            "pct": round(last.percentage),
            "grade": get_grade(last.score, last.total).name,
            "mode": last.mode,
        }
    return stats
