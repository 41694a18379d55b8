"""Low-level paragraph edits: insertion, hidden placeholder styling, removal."""

from __future__ import annotations

import re
from typing import Optional

from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.text.paragraph import Paragraph

from memoire.documents.docx.package import W_P, W_TC

_CONTROL_CHARS_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")
_SUPPRESSED_TAGS = (qn("w:color"), qn("w:sz"), qn("w:szCs"))


def sanitize_text(text: str) -> str:
    """Drop characters XML 1.0 cannot carry; python-docx escapes the rest."""
    return _CONTROL_CHARS_RE.sub("", text or "")


def insert_paragraph_after(paragraph: Paragraph, text: str = "") -> Paragraph:
    """
    Insert a new paragraph XML immediately after the given paragraph.
    Returns a python-docx Paragraph wrapper for the new element.
    """
    new_p_elm = OxmlElement("w:p")
    paragraph._element.addnext(new_p_elm)
    new_p = Paragraph(new_p_elm, paragraph._parent)
    if text:
        new_p.add_run(text)
    return new_p


def _suppressed_rpr(font_half_points: str, color: str):
    rpr = OxmlElement("w:rPr")
    for tag, value in (("w:color", color), ("w:sz", font_half_points), ("w:szCs", font_half_points)):
        el = OxmlElement(tag)
        el.set(qn("w:val"), value)
        rpr.append(el)
    return rpr


def write_suppressed(paragraph: Paragraph, text: str, font_half_points: str, color: str) -> None:
    """Write ``text`` as a single run at ``font_half_points`` size in ``color``.

    The paragraph mark gets the same properties so the empty line collapses too.
    """
    ppr = paragraph._p.get_or_add_pPr()
    ppr.append(_suppressed_rpr(font_half_points, color))
    run = paragraph.add_run(text)
    run._r.insert(0, _suppressed_rpr(font_half_points, color))


def clear_suppressed_style(paragraph: Paragraph) -> None:
    """Remove colour/size overrides from the paragraph mark."""
    for rpr in paragraph._p.xpath("./w:pPr/w:rPr"):
        for child in list(rpr):
            if child.tag in _SUPPRESSED_TAGS:
                rpr.remove(child)
        if len(rpr) == 0:
            rpr.getparent().remove(rpr)


def clear_runs(paragraph: Paragraph) -> None:
    for child in list(paragraph._p):
        if child.tag != qn("w:pPr"):
            paragraph._p.remove(child)


def append_with_bold(paragraph: Paragraph, text: str, bold_state: bool = False) -> bool:
    """Append text to paragraph, interpreting **markers** as bold toggles."""
    if not text:
        return bold_state
    i = 0
    length = len(text)
    while i < length:
        if text.startswith("**", i):
            bold_state = not bold_state
            i += 2
            continue
        next_marker = text.find("**", i)
        if next_marker == -1:
            segment = text[i:]
            i = length
        else:
            segment = text[i:next_marker]
            i = next_marker
        if segment:
            run = paragraph.add_run(segment)
            if bold_state:
                run.bold = True
    return bold_state


def remove_paragraph(paragraph: Paragraph) -> None:
    """Detach the paragraph; the last paragraph of a table cell is emptied instead."""
    p = paragraph._p
    parent = p.getparent()
    if parent is None:
        return
    if parent.tag == W_TC and len(parent.findall(W_P)) == 1:
        clear_runs(paragraph)
        clear_suppressed_style(paragraph)
        return
    parent.remove(p)


def next_blank_cell_paragraph(paragraph: Paragraph) -> Optional[Paragraph]:
    """Last paragraph of the next cell in the row, when that cell holds no text."""
    tc = paragraph._p.getparent()
    if tc is None or tc.tag != W_TC:
        return None
    nxt = tc.getnext()
    while nxt is not None and nxt.tag != W_TC:
        nxt = nxt.getnext()
    if nxt is None or "".join(nxt.itertext()).strip():
        return None
    cell_paragraphs = nxt.findall(W_P)
    if not cell_paragraphs:
        new_p = OxmlElement("w:p")
        nxt.append(new_p)
        return Paragraph(new_p, paragraph._parent)
    return Paragraph(cell_paragraphs[-1], paragraph._parent)
