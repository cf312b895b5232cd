"""Static reference data: requirements, question bank and portfolio sections."""
import json
from functools import lru_cache
from pathlib import Path

from epa_tutor.models import (
    ASSESSMENT_METHODS, CATEGORIES, OPTION_LETTERS,
    PortfolioSection, Question, Requirement,
)

CONTENT_DIR = Path(__file__).parent / "content"

GRADE_BOUNDARIES = {
    "knowledge_test": {"pass": 60, "merit": 75, "distinction": 85, "total": 30},
    "practical_observation": {"pass": 3.5, "merit": 7, "distinction": 10.5},
    "technical_interview": {"pass": 3.5, "merit": 7, "distinction": 10.5},
}

EPA_COMPONENTS = [
    {"name": "Knowledge Test", "weight": "20%", "requirements": "K1–K4", "color": "blue"},
    {"name": "Practical Observation", "weight": "40%", "requirements": "S1–S12, B1–B4, B6–B7", "color": "green"},
    {"name": "Technical Interview", "weight": "40%", "requirements": "K1–K4, S2/S4/S6/S8/S9–S12, B5", "color": "magenta"},
]


def _read(name: str) -> dict:
    return json.loads((CONTENT_DIR / name).read_text(encoding="utf-8"))


def _check_unique(kind: str, ids: list) -> None:
    seen = set()
    for item_id in ids:
        if item_id in seen:
            raise ValueError(f"duplicate {kind} id: {item_id}")
        seen.add(item_id)


@lru_cache(maxsize=None)
def load_requirements() -> tuple:
    """Load the requirement catalog from requirements.json."""
    data = _read("requirements.json")
    requirements = []
    for entry in data["requirements"]:
        if entry["category"] not in CATEGORIES:
            raise ValueError(f"unknown category for {entry['id']}: {entry['category']}")
        methods = tuple(entry.get("assessed_by", []))
        unknown = set(methods) - set(ASSESSMENT_METHODS)
        if unknown:
            raise ValueError(f"unknown assessment method for {entry['id']}: {sorted(unknown)}")
        requirements.append(Requirement(
            id=entry["id"],
            category=entry["category"],
            title=entry["title"],
            description=entry["description"],
            assessed_by=methods,
            key_points=tuple(entry.get("key_points", [])),
            specialism=entry.get("specialism"),
        ))
    _check_unique("requirement", [r.id for r in requirements])
    return tuple(requirements)


@lru_cache(maxsize=None)
def load_questions() -> tuple:
    """Load the question bank from questions.json."""
    data = _read("questions.json")
    questions = []
    for q in data["questions"]:
        if q["answer"] not in OPTION_LETTERS or set(q["options"]) != set(OPTION_LETTERS):
            raise ValueError(f"question {q['id']} must have options a-d and a matching answer")
        questions.append(Question(
            id=int(q["id"]),
            requirement=q["requirement"],
            topic=q["topic"],
            text=q["text"],
            options={letter: q["options"][letter] for letter in OPTION_LETTERS},
            answer=q["answer"],
            explanation=q.get("explanation", ""),
        ))
    _check_unique("question", [q.id for q in questions])
    return tuple(questions)


@lru_cache(maxsize=None)
def load_sections() -> tuple:
    """Load the portfolio section templates from sections.json."""
    data = _read("sections.json")
    sections = tuple(
        PortfolioSection(
            id=s["id"],
            title=s["title"],
            prompt=s["prompt"],
            placeholder=s.get("placeholder", ""),
            requirement_hints=tuple(s.get("requirement_hints", [])),
        )
        for s in data["sections"]
    )
    _check_unique("section", [s.id for s in sections])
    return sections


def get_requirement(code: str) -> Requirement | None:
    for requirement in load_requirements():
        if requirement.id == code:
            return requirement
    return None


def get_section(section_id: str) -> PortfolioSection | None:
    for section in load_sections():
        if section.id == section_id:
            return section
    return None


def requirements_by_category(category: str | None = None, specialist: bool | None = None) -> list:
    """Filter the catalog by category and, optionally, by specialism."""
    results = []
    for requirement in load_requirements():
        if category is not None and requirement.category != category:
            continue
        if specialist is not None and requirement.is_specialist != specialist:
            continue
        results.append(requirement)
    return results


def requirement_groups() -> dict:
    return {
        "knowledge": requirements_by_category("knowledge"),
        "skills_core": requirements_by_category("skill", specialist=False),
        "skills_specialist": requirements_by_category("skill", specialist=True),
        "behaviours": requirements_by_category("behaviour"),
    }


def questions_for_requirement(code: str) -> list:
    return [q for q in load_questions() if q.requirement == code]


def knowledge_codes() -> list:
    """Requirement codes that can be picked for a topic exam."""
    return [r.id for r in requirements_by_category("knowledge")]
