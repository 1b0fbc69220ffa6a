# ==============================================================================
# DA PRICE INDEX - RULE-BASED LINE PARSER
# ==============================================================================
#
# The PDF text arrives as one line per table row, e.g.
#
#   A
#   1 RICE Well Milled 45.50
#   2 RICE Regular Milled n/a
#   LOWLAND VEGETABLES
#   ...
#   Note:
#   Prices are based on ...
#
# Each line is classified by an ordered list of rules; the scan threads the
# running category and the notes flag from one line to the next.
#
# ==============================================================================

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, replace
from io import BytesIO
from typing import Callable, Iterable, List, Optional, Tuple, Union

from pypdf import PdfReader

from models import CommodityRecord, ExtractionResult, ExtractionOutcome

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "UNKNOWN"
NOT_APPLICABLE = "n/a"


# ==============================================================================
# CATEGORY DEFINITIONS
# ==============================================================================

CATEGORY_LEXICON = OrderedDict([
    ("A", "IMPORTED COMMERCIAL RICE"),
    ("B", "LOCAL COMMERCIAL RICE"),
    ("C", "CORN PRODUCTS"),
    ("D", "FISH PRODUCTS"),
    ("E", "LIVESTOCK AND POULTRY PRODUCTS"),
    ("F", "LOWLAND VEGETABLES"),
    ("G", "HIGHLAND VEGETABLES"),
    ("H", "SPICES"),
    ("I", "FRUITS"),
    ("J", "OTHER BASIC COMMODITIES"),
])


def category_for_letter(letter: str) -> Optional[str]:
    """Exact lookup on a single letter, case-insensitive"""
    if len(letter) != 1:
        return None
    return CATEGORY_LEXICON.get(letter.upper())


def category_in_text(line: str) -> Optional[str]:
    """First lexicon name (in lexicon order) contained in the line"""
    upper_line = line.upper()
    for name in CATEGORY_LEXICON.values():
        if name in upper_line:
            return name
    return None


# ==============================================================================
# LINE CLASSIFICATION
# ==============================================================================

@dataclass(frozen=True)
class CategoryMarker:
    category: str

@dataclass(frozen=True)
class CategoryDescription:
    category: str

@dataclass(frozen=True)
class NotesBoundary:
    text: str = ""

@dataclass(frozen=True)
class Record:
    record: CommodityRecord

@dataclass(frozen=True)
class NoteLine:
    text: str

@dataclass(frozen=True)
class Noise:
    pass


LineKind = Union[CategoryMarker, CategoryDescription, NotesBoundary, Record, NoteLine, Noise]

NOTES_BOUNDARY = re.compile(r'^notes?\b[:.]?\s*', re.IGNORECASE)
ROW_NUMBER = re.compile(r'[0-9]+')
PURE_DIGITS = re.compile(r'[0-9]+')

# Tried in order; the first pattern that matches is final
PRICE_PATTERNS = [
    re.compile(r'(?:^|\s)((?:\d{1,3}(?:,\d{3})+|\d+)\.\d{1,2})$'),
    re.compile(r'(?:^|\s)(n/a)$', re.IGNORECASE),
    re.compile(r'(?:^|\s)(\d{1,3}(?:,\d{3})+|\d+)$'),
]

# Repeated page furniture inside the notes block
BOILERPLATE_PATTERNS = [
    re.compile(r'^page\s+\d+\s+of\s+\d+$', re.IGNORECASE),
    re.compile(r'^(?:annex|section)\s+[A-Z0-9IVX.\-]+:?$', re.IGNORECASE),
    re.compile(r'^department\s+of\s+agriculture$', re.IGNORECASE),
    re.compile(
        r'^(?:(?:prevailing|retail|price|prices|per|unit|\(?p/unit\)?|commodity|specification|no\.?)\s*)+$',
        re.IGNORECASE,
    ),
]


def clean_line(line: str) -> str:
    """
    Removes export artifacts: quoted cells ("RICE","Well Milled","45.50")
    and dollar-wrapped $n/a$ markers.
    """
    text = re.sub(r'"\s*,\s*"', ' ', line)
    text = text.replace('"', '')
    text = re.sub(r'\$?(n/a)\$?', r'\1', text, flags=re.IGNORECASE)
    return " ".join(text.split())


def is_boilerplate(line: str) -> bool:
    return any(pattern.search(line) for pattern in BOILERPLATE_PATTERNS)


def parse_record(line: str, current_category: Optional[str]) -> Optional[CommodityRecord]:
    """
    Parses '<number> <commodity> [specification...] <price>'.
    Returns None when the row number, price or commodity is missing.
    """
    tokens = line.split()
    if not tokens or not ROW_NUMBER.fullmatch(tokens[0]):
        return None

    rest = " ".join(tokens[1:])
    price_match = None
    for pattern in PRICE_PATTERNS:
        price_match = pattern.search(rest)
        if price_match:
            break
    if price_match is None:
        return None

    price = price_match.group(1)
    if price.lower() == NOT_APPLICABLE:
        price = NOT_APPLICABLE

    words = rest[:price_match.start()].split()
    if not words:
        return None

    return CommodityRecord(
        number=tokens[0],
        commodity=words[0],
        specification=" ".join(words[1:]) or NOT_APPLICABLE,
        price=price,
        category=current_category or UNKNOWN_CATEGORY,
    )


def classify_line(line: str, current_category: Optional[str] = None) -> LineKind:
    """Ordered rules, first match wins"""
    text = clean_line(line)
    if not text:
        return Noise()

    if len(text) == 1:
        letter_category = category_for_letter(text)
        if letter_category:
            return CategoryMarker(letter_category)

    described = category_in_text(text)
    if described:
        return CategoryDescription(described)

    boundary = NOTES_BOUNDARY.match(text)
    if boundary:
        return NotesBoundary(text[boundary.end():])

    record = parse_record(text, current_category)
    if record is None:
        return Noise()
    return Record(record)


# ==============================================================================
# DOCUMENT SCAN
# ==============================================================================

@dataclass(frozen=True)
class ScanState:
    current_category: Optional[str] = None
    in_notes: bool = False


def advance(state: ScanState, line: str) -> Tuple[ScanState, LineKind]:
    """One step of the scan: returns the next state and what the line was"""
    if state.in_notes:
        text = " ".join(line.split())
        if not text or is_boilerplate(text):
            return state, Noise()
        return state, NoteLine(text)

    kind = classify_line(line, state.current_category)
    if isinstance(kind, (CategoryMarker, CategoryDescription)):
        return replace(state, current_category=kind.category), kind
    if isinstance(kind, NotesBoundary):
        if is_boilerplate(kind.text):
            kind = NotesBoundary()
        return replace(state, in_notes=True), kind
    return state, kind


def scan_lines(lines: Iterable[str]) -> Tuple[List[CommodityRecord], List[str]]:
    state = ScanState()
    records = []
    notes = []
    for line in lines:
        state, kind = advance(state, line)
        if isinstance(kind, Record):
            records.append(kind.record)
        elif isinstance(kind, (NoteLine, NotesBoundary)) and kind.text:
            notes.append(kind.text)
    return records, notes


def _number_sort_key(record: CommodityRecord) -> Tuple[int, int]:
    # Non-numeric row numbers go after every numeric one
    if record.number and ROW_NUMBER.fullmatch(record.number):
        return 0, int(record.number)
    return 1, 0


def sort_records(records: Iterable[CommodityRecord]) -> List[CommodityRecord]:
    return sorted(records, key=_number_sort_key)


def dedupe_notes(notes: Iterable[str]) -> List[str]:
    kept = []
    for note in notes:
        text = note.strip()
        if text and not PURE_DIGITS.fullmatch(text):
            kept.append(text)
    return list(dict.fromkeys(kept))


def parse_text_to_json(raw_text: str) -> ExtractionResult:
    """
    Scans the extracted PDF text into sorted records and unique notes
    """
    if not raw_text or not raw_text.strip():
        return ExtractionResult.no_text()

    records, notes = scan_lines(raw_text.splitlines())
    return ExtractionResult(
        records=sort_records(records),
        notes=dedupe_notes(notes),
        outcome=ExtractionOutcome.PARSED,
    )


# ==============================================================================
# PDF EXTRACTION
# ==============================================================================

def extract_pdf_content(pdf_bytes: bytes) -> str:
    """Extracts raw text from PDF"""
    reader = PdfReader(BytesIO(pdf_bytes))
    text = ""
    for page in reader.pages:
        extracted = page.extract_text()
        if extracted:
            text += f"\n{extracted}\n"
    return text


def extract(
    pdf_bytes: bytes,
    text_extractor: Callable[[bytes], str] = extract_pdf_content,
) -> ExtractionResult:
    """
    PDF bytes -> records + notes. Any failure (unreadable PDF, extractor
    error) comes back as an empty result with outcome FAILED.
    """
    try:
        raw_text = text_extractor(pdf_bytes)
        if not raw_text or not raw_text.strip():
            return ExtractionResult.no_text()
        return parse_text_to_json(raw_text)
    except Exception as e:
        logger.warning("PDF extraction failed: %s", e)
        return ExtractionResult.failed(str(e))
