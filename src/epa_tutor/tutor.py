"""AI tutor chat and portfolio drafting through the Gemini generateContent API."""
import functools
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from epa_tutor.catalog import get_section
from epa_tutor.config import DEFAULT_BASE_URL, DEFAULT_MODEL, Settings
from epa_tutor.models import PortfolioSection
from epa_tutor.portfolio import update_section
from epa_tutor.store import ProgressStore

logger = logging.getLogger(__name__)

GREETING = (
    "Hello! I'm your AI Tutor for the Level 3 MOET Electrical Technician course. "
    "Ask me anything about KSBs, technical concepts, or the EPA assessment."
)
CLEARED = "Chat cleared. How can I help you studying today?"

USER = "user"
MODEL = "model"


class TutorError(Exception):
    """Base class for errors shown to the learner from the tutor features."""


class MissingCredentialError(TutorError):
    pass


class ProviderError(TutorError):
    pass


class RequestInFlightError(TutorError):
    pass


def user_content(text: str) -> Dict[str, Any]:
    return {"role": USER, "parts": [{"text": text}]}


class GeminiClient:
    def __init__(self, api_key: str, *, model: str = DEFAULT_MODEL, base_url: str = DEFAULT_BASE_URL,
                 timeout: float = 30.0, max_output_tokens: int = 1000,
                 transport: Optional[httpx.BaseTransport] = None) -> None:
        if not api_key:
            raise MissingCredentialError("Gemini API key is not configured")
        self.api_key = api_key
        self.model = model
        self.max_output_tokens = max_output_tokens
        self.url = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def generate(self, contents: List[Dict[str, Any]]) -> str:
        """Send one generateContent request and return the first candidate's text."""
        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {"maxOutputTokens": self.max_output_tokens},
        }
        try:
            r = self._client.post(self.url, params={"key": self.api_key}, json=payload)
            r.raise_for_status()
        except httpx.HTTPStatusError as err:
            raise ProviderError(_error_message(err.response)) from err
        except httpx.RequestError as err:
            raise ProviderError(f"Could not reach the AI service: {err}") from err
        try:
            data = r.json()
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as err:
            raise ProviderError("Unexpected response from the AI service") from err

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GeminiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _error_message(response: httpx.Response) -> str:
    try:
        message = response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        message = response.reason_phrase or "request failed"
    return f"AI service error ({response.status_code}): {message}"


def client_factory(settings: Settings) -> Callable[[str], GeminiClient]:
    """Build GeminiClient instances configured from settings, one per call."""
    return functools.partial(
        GeminiClient,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        timeout=settings.request_timeout,
        max_output_tokens=settings.max_output_tokens,
    )


class InFlightSlot:
    """Allows one outstanding request per call site.

    Each request captures a generation number; ``invalidate`` moves the
    generation on so a response that arrives afterwards can be dropped.
    """

    def __init__(self) -> None:
        self.generation = 0
        self.in_flight = False

    def begin(self) -> int:
        if self.in_flight:
            raise RequestInFlightError("Still waiting for the previous response")
        self.in_flight = True
        self.generation += 1
        return self.generation

    def end(self) -> None:
        self.in_flight = False

    def invalidate(self) -> None:
        self.generation += 1

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    @contextmanager
    def request(self):
        generation = self.begin()
        try:
            yield generation
        finally:
            self.end()


@dataclass
class ChatTurn:
    role: str
    text: str
    timestamp: float = field(default_factory=time.time)

    def to_content(self) -> Dict[str, Any]:
        return {"role": self.role, "parts": [{"text": self.text}]}


class TutorChat:
    """Conversation with the tutor; the whole history is re-sent on every turn."""

    def __init__(self, factory: Callable[[str], Any]) -> None:
        self.factory = factory
        self.slot = InFlightSlot()
        self.transcript: List[ChatTurn] = [ChatTurn(MODEL, GREETING)]

    @property
    def busy(self) -> bool:
        return self.slot.in_flight

    def send(self, message: str, api_key: str) -> Optional[ChatTurn]:
        """Send a learner message and append the reply to the transcript.

        Blank messages are ignored. Returns None if the reply arrived after
        the chat was cleared.
        """
        if not message.strip():
            return None
        if not api_key:
            raise MissingCredentialError("Please enter your Gemini API key first.")
        with self.slot.request() as generation:
            learner = ChatTurn(USER, message)
            contents = [turn.to_content() for turn in self.transcript] + [learner.to_content()]
            self.transcript.append(learner)
            client = self.factory(api_key)
            try:
                text = client.generate(contents)
            finally:
                client.close()
        if not self.slot.is_current(generation):
            logger.info("Discarding tutor reply for a cleared conversation")
            return None
        reply = ChatTurn(MODEL, text)
        self.transcript.append(reply)
        return reply

    def clear(self) -> None:
        self.slot.invalidate()
        self.transcript = [ChatTurn(MODEL, CLEARED)]


def build_draft_prompt(section: PortfolioSection, current_text: str) -> str:
    return (
        "You are an expert tutor for the Level 3 Maintenance and Operations Engineering "
        "Technician apprenticeship.\n"
        f'Help the student write a portfolio entry for the section: "{section.prompt}".\n'
        f'The student has provided this context/draft: "{current_text}".\n'
        "Write a professional, first-person paragraph suitable for an engineering portfolio.\n"
        f"Focus on evidence for these KSBs: {', '.join(section.requirement_hints)}.\n"
        'Keep it factual, concise, and focused on the student\'s actions ("I did...", "I checked...").'
    )


def draft_section(store: ProgressStore, doc_id: int, section_id: str, api_key: str,
                  factory: Callable[[str], Any], slot: Optional[InFlightSlot] = None) -> Optional[str]:
    """Ask the AI service to draft a portfolio section and store the result.

    The generated paragraph replaces the section's text. Returns None when
    the response is discarded because the document was deleted or the slot
    was invalidated while waiting. Failures leave the stored text unchanged.
    """
    if not api_key:
        raise MissingCredentialError("Please enter your Google API key in settings.")
    section = get_section(section_id)
    if section is None:
        raise KeyError(f"unknown portfolio section: {section_id}")
    doc = store.get_document(doc_id)
    if doc is None:
        raise KeyError(f"no portfolio document {doc_id}")
    slot = slot or InFlightSlot()
    with slot.request() as generation:
        prompt = build_draft_prompt(section, doc.sections.get(section_id, ""))
        client = factory(api_key)
        try:
            text = client.generate([user_content(prompt)])
        finally:
            client.close()
    doc = store.get_document(doc_id)
    if doc is None or not slot.is_current(generation):
        logger.info("Discarding draft for section %s of document %s", section_id, doc_id)
        return None
    update_section(doc, section_id, text)
    store.update_document(doc)
    return text
