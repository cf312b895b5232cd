"""Progress store: persisted learner state held in named slots."""
import json
import logging
from datetime import datetime

from epa_tutor.db import get_connection
from epa_tutor.models import ExamAttempt, PortfolioDocument

logger = logging.getLogger(__name__)

STUDIED = "studied"
ATTEMPTS = "attempts"
PORTFOLIO = "portfolio"
API_KEY = "api_key"

# Dashboard target and per-piece threshold for a "complete" portfolio piece.
PORTFOLIO_TARGET = 3
PIECE_COMPLETE_SECTIONS = 4


def load_slot(db_path: str, key: str) -> str | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT value FROM slots WHERE key = ?", (key,)).fetchone()
    conn.close()
    return row["value"] if row else None


def save_slot(db_path: str, key: str, value: str) -> None:
    conn = get_connection(db_path)
    now = datetime.now().isoformat()
    conn.execute(
        "INSERT INTO slots (key, value, updated_at) VALUES (?, ?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value=?, updated_at=?",
        (key, value, now, value, now),
    )
    conn.commit()
    conn.close()


def clear_slots(db_path: str) -> None:
    conn = get_connection(db_path)
    conn.execute("DELETE FROM slots")
    conn.commit()
    conn.close()


def _decode_studied(data) -> list:
    if not isinstance(data, list):
        raise TypeError("studied slot must be a list")
    codes = []
    for code in data:
        if not isinstance(code, str):
            raise TypeError("studied codes must be strings")
        if code not in codes:
            codes.append(code)
    return codes


def _decode_attempts(data) -> list:
    if not isinstance(data, list):
        raise TypeError("attempts slot must be a list")
    return [ExamAttempt.from_dict(item) for item in data]


def _decode_portfolio(data) -> list:
    if not isinstance(data, list):
        raise TypeError("portfolio slot must be a list")
    return [PortfolioDocument.from_dict(item) for item in data]


def _decode_api_key(data) -> str:
    if not isinstance(data, str):
        raise TypeError("api_key slot must be a string")
    return data


SLOT_SCHEMAS = {
    STUDIED: (_decode_studied, list),
    ATTEMPTS: (_decode_attempts, list),
    PORTFOLIO: (_decode_portfolio, list),
    API_KEY: (_decode_api_key, str),
}


def read_slot(db_path: str, key: str):
    """Load and decode a slot, falling back to the slot's empty default.

    An absent row, invalid JSON and a value that fails its schema are all
    treated the same way: the default is returned and a warning is logged.
    """
    decoder, default = SLOT_SCHEMAS[key]
    raw = load_slot(db_path, key)
    if raw is None:
        return default()
    try:
        return decoder(json.loads(raw))
    except (ValueError, KeyError, TypeError) as e:
        logger.warning("Discarding unreadable %r slot: %s", key, e)
        return default()


class ProgressStore:
    """Learner progress owned by the application and passed to each command.

    Every mutation writes its slot back immediately.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.studied: list = []
        self.attempts: list = []
        self.documents: list = []
        self.api_key: str = ""

    @classmethod
    def load(cls, db_path: str) -> "ProgressStore":
        store = cls(db_path)
        store.reload()
        return store

    def reload(self) -> None:
        self.studied = read_slot(self.db_path, STUDIED)
        self.attempts = read_slot(self.db_path, ATTEMPTS)
        self.documents = read_slot(self.db_path, PORTFOLIO)
        self.api_key = read_slot(self.db_path, API_KEY)
        logger.debug(
            "Loaded progress: %d studied, %d attempts, %d documents",
            len(self.studied), len(self.attempts), len(self.documents),
        )

    def save(self, key: str) -> None:
        if key == STUDIED:
            value = list(self.studied)
        elif key == ATTEMPTS:
            value = [a.to_dict() for a in self.attempts]
        elif key == PORTFOLIO:
            value = [d.to_dict() for d in self.documents]
        elif key == API_KEY:
            value = self.api_key
        else:
            raise KeyError(key)
        save_slot(self.db_path, key, json.dumps(value))

    # --- studied set ---

    def is_studied(self, code: str) -> bool:
        return code in self.studied

    def toggle_studied(self, code: str) -> bool:
        """Flip a requirement's studied mark. Returns the new membership."""
        if code in self.studied:
            self.studied.remove(code)
            studied = False
        else:
            self.studied.append(code)
            studied = True
        self.save(STUDIED)
        return studied

    # --- attempt history ---

    def record_attempt(self, attempt: ExamAttempt) -> None:
        self.attempts.append(attempt)
        self.save(ATTEMPTS)
        logger.info("Recorded %s attempt: %d/%d", attempt.mode, attempt.score, attempt.total)

    # --- portfolio documents ---

    def get_document(self, doc_id: int) -> PortfolioDocument | None:
        for doc in self.documents:
            if doc.id == doc_id:
                return doc
        return None

    def add_document(self, document: PortfolioDocument) -> None:
        if self.get_document(document.id) is not None:
            raise ValueError(f"portfolio document {document.id} already exists")
        self.documents.append(document)
        self.save(PORTFOLIO)

    def update_document(self, document: PortfolioDocument) -> None:
        for i, doc in enumerate(self.documents):
            if doc.id == document.id:
                self.documents[i] = document
                self.save(PORTFOLIO)
                return
        raise KeyError(f"no portfolio document {document.id}")

    def delete_document(self, doc_id: int) -> bool:
        remaining = [d for d in self.documents if d.id != doc_id]
        if len(remaining) == len(self.documents):
            return False
        self.documents = remaining
        self.save(PORTFOLIO)
        return True

    # --- credential ---

    def set_api_key(self, key: str) -> None:
        self.api_key = key.strip()
        self.save(API_KEY)

    # --- reset ---

    def reset(self) -> None:
        """Clear every slot and reload the empty initial state."""
        clear_slots(self.db_path)
        self.reload()
        logger.info("Progress reset")

    # --- derived values ---

    @property
    def studied_count(self) -> int:
        return len(self.studied)

    @property
    def last_attempt(self) -> ExamAttempt | None:
        return self.attempts[-1] if self.attempts else None

    @property
    def average_score(self) -> int:
        """Mean of per-attempt percentages, rounded to a whole percent."""
        if not self.attempts:
            return 0
        return round(sum(a.percentage for a in self.attempts) / len(self.attempts))

    @property
    def completed_portfolio_count(self) -> int:
        return sum(
            1 for d in self.documents
            if len(d.completed_sections) >= PIECE_COMPLETE_SECTIONS
        )
