"""Portfolio documents: creation, section editing and progress."""
import time

from epa_tutor.catalog import get_section, load_sections
from epa_tutor.models import PortfolioDocument
from epa_tutor.tagger import tag_evidence_ordered

COMPLETION_THRESHOLD = 50


def now_ms() -> int:
    return int(time.time() * 1000)


def is_section_complete(text: str) -> bool:
    return len(text) > COMPLETION_THRESHOLD


def new_document(created_ms: int | None = None, existing_ids=()) -> PortfolioDocument:
    """Create an empty document whose id is its creation time in milliseconds.

    The id is bumped past any existing id so two pieces created within the
    same millisecond still get distinct ids.
    """
    doc_id = created_ms if created_ms is not None else now_ms()
    if existing_ids:
        doc_id = max(doc_id, max(existing_ids) + 1)
    return PortfolioDocument(id=doc_id, title="", sections={}, completed_sections=[], last_modified=doc_id)


def update_section(doc: PortfolioDocument, section_id: str, text: str,
                   modified_ms: int | None = None) -> PortfolioDocument:
    """Store a section's text and recompute whether the section is complete."""
    if get_section(section_id) is None:
        raise KeyError(f"unknown portfolio section: {section_id}")
    doc.sections[section_id] = text
    completed = [s for s in doc.completed_sections if s != section_id]
    if is_section_complete(text):
        completed.append(section_id)
    doc.completed_sections = completed
    doc.last_modified = modified_ms if modified_ms is not None else now_ms()
    return doc


def rename_document(doc: PortfolioDocument, title: str, modified_ms: int | None = None) -> PortfolioDocument:
    doc.title = title
    doc.last_modified = modified_ms if modified_ms is not None else now_ms()
    return doc


def document_text(doc: PortfolioDocument) -> str:
    return " ".join(doc.sections.values())


def detected_requirements(doc: PortfolioDocument) -> list:
    return tag_evidence_ordered(document_text(doc))


def document_progress(doc: PortfolioDocument) -> tuple:
    """(completed sections, total sections) for a document."""
    return len(doc.completed_sections), len(load_sections())


def display_title(doc: PortfolioDocument) -> str:
    return doc.title or "Untitled Piece"
