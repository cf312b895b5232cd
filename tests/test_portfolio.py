import pytest

from epa_tutor.models import PortfolioDocument
from epa_tutor.portfolio import (
    COMPLETION_THRESHOLD, detected_requirements, display_title, document_progress,
    document_text, is_section_complete, new_document, rename_document, update_section,
)


def test_is_section_complete_threshold():
    assert is_section_complete("x" * COMPLETION_THRESHOLD) is False
    assert is_section_complete("x" * (COMPLETION_THRESHOLD + 1)) is True
    assert is_section_complete("") is False


def test_new_document_is_empty():
    doc = new_document(created_ms=1700000000000)
    assert doc.id == 1700000000000
    assert doc.title == ""
    assert doc.sections == {}
    assert doc.completed_sections == []
    assert doc.last_modified == 1700000000000


def test_new_document_id_stays_unique():
    doc = new_document(created_ms=100, existing_ids=[100, 150])
    assert doc.id == 151


def test_completion_flag_flips_both_ways():
    doc = new_document(created_ms=1)
    update_section(doc, "task", "x" * 51, modified_ms=2)
    assert "task" in doc.completed_sections
    update_section(doc, "task", "x" * 50, modified_ms=3)
    assert "task" not in doc.completed_sections
    assert doc.sections["task"] == "x" * 50


def test_update_section_refreshes_last_modified():
    doc = new_document(created_ms=1)
    update_section(doc, "intro", "short", modified_ms=99)
    assert doc.last_modified == 99


def test_update_section_does_not_duplicate_completion():
    doc = new_document(created_ms=1)
    update_section(doc, "intro", "y" * 60, modified_ms=2)
    update_section(doc, "intro", "z" * 70, modified_ms=3)
    assert doc.completed_sections == ["intro"]


def test_update_unknown_section_raises():
    doc = new_document(created_ms=1)
    with pytest.raises(KeyError):
        update_section(doc, "appendix", "text")


def test_rename_document():
    doc = new_document(created_ms=1)
    rename_document(doc, "Motor Fault", modified_ms=5)
    assert doc.title == "Motor Fault"
    assert doc.last_modified == 5
    assert display_title(doc) == "Motor Fault"


def test_display_title_untitled():
    assert display_title(PortfolioDocument(id=1)) == "Untitled Piece"


def test_document_text_and_detection():
    doc = PortfolioDocument(id=1, sections={"intro": "This covers K1.", "task": "And S12 too."})
    assert document_text(doc) == "This covers K1. And S12 too."
    codes = detected_requirements(doc)
    assert "K1" in codes
    assert "S12" in codes


def test_document_progress():
    doc = PortfolioDocument(id=1, completed_sections=["intro", "task"])
    assert document_progress(doc) == (2, 5)
