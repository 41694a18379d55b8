import io
from typing import Iterable, Optional, Tuple

import docx
import pytest
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from dotenv import load_dotenv

load_dotenv(override=False)


def docx_bytes(document) -> bytes:
    buf = io.BytesIO()
    document.save(buf)
    return buf.getvalue()


def set_numbering(paragraph, ilvl: int, num_id: int = 1) -> None:
    """Attach Word automatic numbering to a paragraph."""
    ppr = paragraph._p.get_or_add_pPr()
    num_pr = OxmlElement("w:numPr")
    lvl = OxmlElement("w:ilvl")
    lvl.set(qn("w:val"), str(ilvl))
    num = OxmlElement("w:numId")
    num.set(qn("w:val"), str(num_id))
    num_pr.append(lvl)
    num_pr.append(num)
    ppr.append(num_pr)


def build_docx(paragraphs: Iterable, table_rows: Optional[Iterable[Tuple[str, str]]] = None) -> bytes:
    """Paragraph specs are plain strings or (text, style) tuples; a table is appended last."""
    doc = docx.Document()
    for spec in paragraphs:
        if isinstance(spec, tuple):
            text, style = spec
            doc.add_paragraph(text, style=style)
        else:
            doc.add_paragraph(spec)
    if table_rows:
        rows = list(table_rows)
        table = doc.add_table(rows=len(rows), cols=2)
        for r, (left, right) in enumerate(rows):
            table.cell(r, 0).text = left
            table.cell(r, 1).text = right
    return docx_bytes(doc)


def all_texts(data: bytes) -> list:
    """Every paragraph text of a package, table cells included."""
    from memoire.documents.docx.package import iter_body_paragraphs, open_package

    return [bp.text for bp in iter_body_paragraphs(open_package(data))]


class DummyLLM:
    """Returns canned replies and records prompts."""

    def __init__(self, reply="", usage=None, exc=None, delay: float = 0.0):
        self.reply = reply
        self.usage = usage
        self.exc = exc
        self.delay = delay
        self.prompts = []

    def get_completion(self, prompt: str, json_output: bool = False):
        self.prompts.append(prompt)
        if self.delay:
            import time

            time.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        reply = self.reply(prompt) if callable(self.reply) else self.reply
        if self.usage is not None:
            return reply, self.usage
        return reply


@pytest.fixture
def memo_template() -> bytes:
    """Small technical-memo template used across the suite."""
    doc = docx.Document()
    doc.add_heading("Mémoire technique", level=0)
    doc.add_heading("ITEM 1 : Moyens humains", level=1)
    doc.add_paragraph("Avez-vous un collaborateur dédié à la sécurité ?")
    doc.add_paragraph("Si oui, précisez sa place dans l'organigramme :")
    doc.add_paragraph("Le présent cadre est limité à deux pages.")
    doc.add_heading("ITEM 2 : Matériel", level=1)
    doc.add_paragraph("Décrivez le matériel affecté au chantier")
    return docx_bytes(doc)
