"""
Open, walk and serialise DOCX packages.

Every component that talks about a paragraph index (detector, builder) goes
through :func:`iter_body_paragraphs`, so index N always names the same
``w:p`` element for a given package: body paragraphs in document order,
descending into table cells and content controls.
"""
from __future__ import annotations

import hashlib
import io
import zipfile
from dataclasses import dataclass
from typing import List, Optional

import docx
from docx.opc.exceptions import PackageNotFoundError
from docx.oxml.ns import qn
from docx.text.paragraph import Paragraph
from lxml import etree

from memoire.documents.models import TableCoordinates
from memoire.errors import StructureError

DOCUMENT_PART = "word/document.xml"
_OLE_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

W_P = qn("w:p")
W_TBL = qn("w:tbl")
W_TR = qn("w:tr")
W_TC = qn("w:tc")
W_SDT = qn("w:sdt")
W_SDT_CONTENT = qn("w:sdtContent")


@dataclass
class BodyParagraph:
    index: int
    paragraph: Paragraph
    table_coordinates: Optional[TableCoordinates] = None

    @property
    def text(self) -> str:
        return self.paragraph.text or ""


def package_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def check_package(data: bytes) -> None:
    """Raise StructureError unless ``data`` is a readable, unencrypted DOCX zip."""
    if not data:
        raise StructureError("Empty package")
    if data[:8] == _OLE_SIGNATURE:
        raise StructureError("Package is encrypted or in legacy binary format")
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            try:
                info = archive.getinfo(DOCUMENT_PART)
            except KeyError:
                raise StructureError(f"Invalid DOCX: no {DOCUMENT_PART} found") from None
            if info.flag_bits & 0x1:
                raise StructureError("Package body is encrypted")
            if info.file_size == 0:
                raise StructureError("Package body is empty")
    except zipfile.BadZipFile as exc:
        raise StructureError(f"Package is not a zip container: {exc}") from exc


def open_package(data: bytes) -> docx.document.Document:
    """Load ``data`` as a python-docx Document or raise StructureError."""
    check_package(data)
    try:
        document = docx.Document(io.BytesIO(data))
    except (PackageNotFoundError, KeyError, ValueError, zipfile.BadZipFile, etree.XMLSyntaxError) as exc:
        raise StructureError(f"Unreadable document body: {exc}") from exc
    if document.element.body is None:
        raise StructureError("Document has no body element")
    return document


def save_package(document: docx.document.Document) -> bytes:
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def iter_body_paragraphs(document: docx.document.Document) -> List[BodyParagraph]:
    """Return every body paragraph in document order with table coordinates."""
    paragraphs: List[BodyParagraph] = []
    table_counter = 0

    def walk(container, coords: Optional[TableCoordinates]) -> None:
        nonlocal table_counter
        for child in container.iterchildren():
            if child.tag == W_P:
                paragraphs.append(BodyParagraph(len(paragraphs), Paragraph(child, document), coords))
            elif child.tag == W_TBL:
                table_index = table_counter
                table_counter += 1
                for row_index, row in enumerate(child.iterchildren(W_TR)):
                    for cell_index, cell in enumerate(row.iterchildren(W_TC)):
                        walk(cell, TableCoordinates(table_index, row_index, cell_index))
            elif child.tag == W_SDT:
                content = child.find(W_SDT_CONTENT)
                if content is not None:
                    walk(content, coords)

    walk(document.element.body, None)
    return paragraphs


def render_plain_text(data: bytes) -> str:
    """Plain-text rendering used by the semantic pass: one line per non-blank paragraph."""
    document = open_package(data)
    lines = [bp.text.strip() for bp in iter_body_paragraphs(document)]
    return "\n".join(line for line in lines if line)
