"""Import portfolio evidence from files in various formats."""
import json
import logging
from pathlib import Path

from epa_tutor.portfolio import update_section
from epa_tutor.store import ProgressStore
from epa_tutor.tagger import tag_evidence_ordered

logger = logging.getLogger(__name__)


def read_file_content(file_path: str) -> str:
    path = Path(file_path)
    suffix = path.suffix.lower()

    if suffix in (".txt", ".md"):
        return path.read_text()
    elif suffix == ".json":
        data = json.loads(path.read_text())
        return json.dumps(data, indent=2) if isinstance(data, dict) else str(data)
    elif suffix in (".yaml", ".yml"):
        import yaml
        data = yaml.safe_load(path.read_text())
        return str(data)
    elif suffix == ".pdf":
        from PyPDF2 import PdfReader
        reader = PdfReader(file_path)
        return "\n".join(page.extract_text() or "" for page in reader.pages)
    elif suffix == ".docx":
        from docx import Document
        doc = Document(file_path)
        return "\n".join(p.text for p in doc.paragraphs)
    elif suffix in (".html", ".htm"):
        from bs4 import BeautifulSoup
        html = path.read_text()
        return BeautifulSoup(html, "html.parser").get_text()
    else:
        # Try reading as plain text
        return path.read_text()


def import_file(store: ProgressStore, file_path: str, doc_id: int, section_id: str) -> dict:
    """Put a file's text into a portfolio section and tag the evidence it contains."""
    doc = store.get_document(doc_id)
    if doc is None:
        raise KeyError(f"no portfolio document {doc_id}")
    content = read_file_content(file_path).strip()
    update_section(doc, section_id, content)
    store.update_document(doc)
    codes = tag_evidence_ordered(content)
    logger.info("Imported %s into %s (%d chars, %d requirements)",
                Path(file_path).name, section_id, len(content), len(codes))
    return {"filename": Path(file_path).name, "section_id": section_id,
            "length": len(content), "requirements": codes}
