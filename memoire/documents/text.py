"""Text normalisation and cue lists shared by the detector, adapter and merger."""

from __future__ import annotations

import re
import unicodedata

# Introductory verbs / interrogatives opening a question (compared without accents).
QUESTION_KEYWORDS = (
    "decrire", "decrivez", "description",
    "preciser", "precisez", "precision",
    "indiquer", "indiquez",
    "expliquer", "expliquez", "explication",
    "detailler", "detaillez",
    "presenter", "presentez", "presentation",
    "fournir", "fournissez",
    "lister", "listez", "liste", "listes",
    "mentionner", "mentionnez",
    "joindre", "joignez",
    "justifier", "justifiez",
    "demontrer", "demontrez",
    "proposer", "proposez",
    "definir", "definissez",
    "identifier", "identifiez",
    "enumerer", "enumerez",
    "specifier", "specifiez",
    "comment", "quels", "quelles", "quel", "quelle",
    "combien", "pourquoi",
    "avez-vous", "disposez-vous", "pouvez-vous", "etes-vous",
    "procedez-vous", "acceptez-vous", "est-ce",
)

# Completion points typical of technical-memo templates.
MEMOIRE_CUE_PATTERNS = (
    re.compile(r"^\s*si\s*,?\s*oui\s*[,:]", re.I),
    re.compile(r"^\s*si\s*,?\s*non\s*[,:]", re.I),
    re.compile(r"^\s*dans\s+le\s+cas\s+o[uù]", re.I),
    re.compile(r"^\s*le\s+cas\s+[ée]ch[ée]ant", re.I),
    re.compile(r"^\s*autres?\s+pr[ée]cisions?", re.I),
    re.compile(r"^\s*pi[èe]ces?\s+jointes?", re.I),
    re.compile(r"^\s*listes?\s+des\s+pi[èe]ces", re.I),
    re.compile(r"^\s*documents?\s+[àa]\s+fournir", re.I),
)
CONDITIONAL_RE = re.compile(r"^\s*si\s*,?\s*(oui|non)\b", re.I)

YES_NO_PATTERNS = (
    re.compile(r"avez-vous", re.I),
    re.compile(r"disposez-vous", re.I),
    re.compile(r"pouvez-vous", re.I),
    re.compile(r"est-ce\s+que", re.I),
    re.compile(r"y\s+a-t-il", re.I),
    re.compile(r"proc[ée]dez-vous", re.I),
    re.compile(r"acceptez-vous", re.I),
    re.compile(r"[êe]tes-vous", re.I),
    re.compile(r"\w+-t-(elle|il)\b", re.I),
)

_ENUM_PREFIX_RE = re.compile(
    r"^\s*(?:"
    r"(?:\(?\d+(?:\.\d+)*\)?[.)]?)|"   # 1   1.1   2.3.4   (1)   1)
    r"(?:[A-Za-z][.)])|"               # a)   A)   a.   A.
    r"(?:\([A-Za-z0-9]+\))|"           # (a)  (A)  (i)  (1)
    r"(?:[-•●○◦▪])"                    # bullets
    r")\s+"
)


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: str) -> str:
    """Lower-case, unify quotes/dashes and collapse whitespace (incl. NBSP)."""
    t = (text or "").lower()
    t = re.sub(r"[‘’ʼ]", "'", t)
    t = re.sub(r"[“”«»]", '"', t)
    t = re.sub(r"[–—]", "-", t)
    return " ".join(t.split())


def normalize_for_matching(text: str) -> str:
    """Case-folded, accent-free, punctuation-free, whitespace-collapsed text."""
    t = strip_accents((text or "").casefold())
    t = re.sub(r"[^\w\s]", " ", t)
    return " ".join(t.split())


def strip_enum_prefix(text: str) -> str:
    """Remove a single leading enumeration token like '1.1 ', '(a) ', 'A) '."""
    return _ENUM_PREFIX_RE.sub("", text or "", count=1)


def first_word(text: str) -> str:
    words = strip_accents(normalize_text(text)).split(" ")
    return words[0].strip(".,;:!?()\"'") if words and words[0] else ""


def has_question_keyword(text: str) -> bool:
    plain = strip_accents(normalize_text(text))
    tokens = set(re.findall(r"[\w-]+", plain))
    return any(kw in tokens for kw in QUESTION_KEYWORDS)


def looks_like_question(text: str) -> bool:
    """Cheap question test used to confirm numbered lines and table cells."""
    t = (text or "").strip()
    if not t:
        return False
    if t.endswith("?") or t.endswith(":"):
        return True
    return has_question_keyword(t) or any(p.search(t) for p in MEMOIRE_CUE_PATTERNS)


def detect_question_type(text: str) -> str:
    return "YES_NO" if any(p.search(text or "") for p in YES_NO_PATTERNS) else "FREE_TEXT"
