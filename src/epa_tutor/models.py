"""Data classes for the tutor domain model."""
from dataclasses import dataclass, field
from typing import Optional

CATEGORIES = ("knowledge", "skill", "behaviour")
ASSESSMENT_METHODS = ("knowledge_test", "practical_observation", "technical_interview")
OPTION_LETTERS = ("a", "b", "c", "d")


@dataclass(frozen=True)
class Requirement:
    id: str
    category: str
    title: str
    description: str
    assessed_by: tuple = ()
    key_points: tuple = ()
    specialism: Optional[str] = None

    @property
    def is_specialist(self) -> bool:
        return self.specialism is not None


@dataclass(frozen=True)
class Question:
    id: int
    requirement: str
    topic: str
    text: str
    options: dict
    answer: str
    explanation: str = ""

    def is_correct(self, letter: Optional[str]) -> bool:
        return letter is not None and letter == self.answer


@dataclass(frozen=True)
class PortfolioSection:
    id: str
    title: str
    prompt: str
    placeholder: str = ""
    requirement_hints: tuple = ()


@dataclass(frozen=True)
class Grade:
    name: str
    color: str
    points: float


@dataclass
class ExamAttempt:
    score: int
    total: int
    date: str
    mode: str
    requirements: list = field(default_factory=list)

    def __post_init__(self):
        if self.total <= 0:
            raise ValueError(f"attempt total must be positive, got {self.total}")
        if not 0 <= self.score <= self.total:
            raise ValueError(f"attempt score {self.score} outside 0..{self.total}")

    @property
    def percentage(self) -> float:
        return self.score / self.total * 100

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "total": self.total,
            "date": self.date,
            "mode": self.mode,
            "requirements": list(self.requirements),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExamAttempt":
        return cls(
            score=int(data["score"]),
            total=int(data["total"]),
            date=str(data["date"]),
            mode=str(data.get("mode", "full")),
            requirements=[str(code) for code in data.get("requirements", [])],
        )


@dataclass
class PortfolioDocument:
    id: int
    title: str = ""
    sections: dict = field(default_factory=dict)
    completed_sections: list = field(default_factory=list)
    last_modified: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "sections": dict(self.sections),
            "completedSections": list(self.completed_sections),
            "lastModified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PortfolioDocument":
        sections = data.get("sections", {})
        if not isinstance(sections, dict):
            raise TypeError("portfolio sections must be a mapping")
        return cls(
            id=int(data["id"]),
            title=str(data.get("title", "")),
            sections={str(k): str(v) for k, v in sections.items()},
            completed_sections=[str(s) for s in data.get("completedSections", [])],
            last_modified=int(data.get("lastModified", 0)),
        )
