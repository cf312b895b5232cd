"""Mock exam engine: question selection, session state machine and grading."""
import logging
import random
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from epa_tutor.catalog import load_questions
from epa_tutor.models import ExamAttempt, Grade, OPTION_LETTERS, Question

logger = logging.getLogger(__name__)

QUICK_QUIZ_SIZE = 10


class ExamMode(str, Enum):
    FULL = "full"
    QUICK = "quick"
    TOPIC = "topic"


class SessionState(str, Enum):
    SELECTING = "selecting"
    ACTIVE = "active"
    RESULTS = "results"


@dataclass(frozen=True)
class ModeSettings:
    count: Optional[int]
    time_limit: int  # seconds
    countdown: bool


MODE_SETTINGS = {
    ExamMode.FULL: ModeSettings(count=None, time_limit=45 * 60, countdown=True),
    ExamMode.QUICK: ModeSettings(count=QUICK_QUIZ_SIZE, time_limit=15 * 60, countdown=True),
    ExamMode.TOPIC: ModeSettings(count=None, time_limit=20 * 60, countdown=False),
}

GRADES = (
    (85, Grade("Distinction", "yellow", 4.5)),
    (75, Grade("Merit", "blue", 3)),
    (60, Grade("Pass", "green", 1.5)),
)
FAIL = Grade("Fail", "red", 0)


def grade_for_percentage(pct: float) -> Grade:
    for lower, grade in GRADES:
        if pct >= lower:
            return grade
    return FAIL


def get_grade(score: int, total: int) -> Grade:
    if total <= 0:
        return FAIL
    return grade_for_percentage(score / total * 100)


def format_time(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def select_questions(mode, questions=None, topic: str | None = None,
                     rng: random.Random | None = None) -> list:
    """Pick and shuffle the questions for an exam mode.

    Full mode uses the whole bank, quick mode samples QUICK_QUIZ_SIZE questions
    without replacement, topic mode keeps the questions tagged to ``topic``.
    ``rng`` defaults to a system-entropy source; pass a seeded
    ``random.Random`` for repeatable selection.
    """
    mode = ExamMode(mode)
    rng = rng or random.SystemRandom()
    pool = list(load_questions() if questions is None else questions)
    if mode is ExamMode.QUICK:
        return rng.sample(pool, min(QUICK_QUIZ_SIZE, len(pool)))
    if mode is ExamMode.TOPIC:
        if topic is None:
            raise ValueError("topic mode needs a requirement code")
        pool = [q for q in pool if q.requirement == topic]
    rng.shuffle(pool)
    return pool


@dataclass(frozen=True)
class AnswerFeedback:
    question: Question
    selected: str
    correct: bool

    @property
    def explanation(self) -> str:
        return self.question.explanation


@dataclass(frozen=True)
class ReviewItem:
    number: int
    question: Question
    selected: Optional[str]

    @property
    def answered(self) -> bool:
        return self.selected is not None

    @property
    def correct(self) -> bool:
        return self.question.is_correct(self.selected)


class ExamSession:
    """One mock exam from mode selection to results.

    ``on_complete`` receives the ExamAttempt when the session finishes with at
    least one question; typically ``ProgressStore.record_attempt``.
    """

    def __init__(self, questions=None, rng: random.Random | None = None,
                 on_complete: Callable[[ExamAttempt], None] | None = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.bank = list(load_questions() if questions is None else questions)
        self.rng = rng
        self.on_complete = on_complete
        self.clock = clock
        self.state = SessionState.SELECTING
        self.reset()

    def reset(self) -> None:
        """Return to mode selection, discarding any exam in progress."""
        self.state = SessionState.SELECTING
        self.mode: ExamMode | None = None
        self.topic: str | None = None
        self.questions: list = []
        self.index = 0
        self.answers: dict = {}
        self.revealed = False
        self.remaining = 0
        self.countdown_enabled = False
        self.attempt: ExamAttempt | None = None

    def start(self, mode, topic: str | None = None) -> None:
        mode = ExamMode(mode)
        settings = MODE_SETTINGS[mode]
        self.reset()
        self.mode = mode
        self.topic = topic
        self.questions = select_questions(mode, self.bank, topic=topic, rng=self.rng)
        self.remaining = settings.time_limit
        self.countdown_enabled = settings.countdown
        self.state = SessionState.ACTIVE
        if not self.questions:
            logger.warning("Exam started with no questions (mode=%s, topic=%s)", mode.value, topic)
        logger.debug("Started %s exam with %d questions", mode.value, len(self.questions))

    def _require(self, state: SessionState) -> None:
        if self.state is not state:
            raise RuntimeError(f"exam is {self.state.value}, expected {state.value}")

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Question | None:
        if self.state is not SessionState.ACTIVE or self.index >= self.total:
            return None
        return self.questions[self.index]

    @property
    def is_last_question(self) -> bool:
        return self.index >= self.total - 1

    @property
    def expired(self) -> bool:
        return self.countdown_enabled and self.remaining <= 0

    @property
    def can_advance(self) -> bool:
        return self.state is SessionState.ACTIVE and (self.revealed or self.expired)

    def answer(self, letter: str) -> AnswerFeedback:
        """Record the answer for the current question and reveal the result.

        Only the first answer counts; later calls return the first feedback.
        """
        self._require(SessionState.ACTIVE)
        question = self.current_question
        if question is None:
            raise RuntimeError("exam has no current question")
        if question.id in self.answers:
            recorded = self.answers[question.id]
            return AnswerFeedback(question, recorded, question.is_correct(recorded))
        letter = letter.strip().lower()
        if letter not in OPTION_LETTERS:
            raise ValueError(f"answer must be one of {', '.join(OPTION_LETTERS)}")
        self.answers[question.id] = letter
        self.revealed = True
        return AnswerFeedback(question, letter, question.is_correct(letter))

    def advance(self) -> None:
        """Move to the next question, or finish after the last one."""
        self._require(SessionState.ACTIVE)
        if not self.can_advance:
            raise RuntimeError("answer the current question before moving on")
        if self.expired or self.is_last_question:
            self.finish()
            return
        self.index += 1
        self.revealed = False

    def tick(self, seconds: int = 1) -> None:
        """Run the countdown down; reaching zero finishes the exam."""
        if self.state is not SessionState.ACTIVE or not self.countdown_enabled:
            return
        self.remaining = max(0, self.remaining - seconds)
        if self.remaining == 0:
            logger.info("Exam time expired with %d/%d answered", len(self.answers), self.total)
            self.finish()

    @property
    def score(self) -> int:
        return sum(1 for q in self.questions if q.is_correct(self.answers.get(q.id)))

    @property
    def percentage(self) -> float:
        if not self.total:
            return 0.0
        return self.score / self.total * 100

    @property
    def grade(self) -> Grade:
        return get_grade(self.score, self.total)

    def finish(self) -> ExamAttempt | None:
        if self.state is SessionState.RESULTS:
            return self.attempt
        self._require(SessionState.ACTIVE)
        self.state = SessionState.RESULTS
        self.revealed = False
        if not self.total:
            return None
        self.attempt = ExamAttempt(
            score=self.score,
            total=self.total,
            date=self.clock().isoformat(),
            mode=self.mode.value,
            requirements=sorted({q.requirement for q in self.questions}),
        )
        if self.on_complete is not None:
            self.on_complete(self.attempt)
        return self.attempt

    def review(self) -> list:
        self._require(SessionState.RESULTS)
        return [
            ReviewItem(number=i, question=q, selected=self.answers.get(q.id))
            for i, q in enumerate(self.questions, 1)
        ]
