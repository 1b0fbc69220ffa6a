# ==============================================================================
# DATA MODELS
# ==============================================================================

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class LinkEntry(BaseModel):
    """One dated document listed on the price monitoring page"""
    date_label: str = Field(..., description="Link text as shown in the listing")
    date_key: Optional[str] = Field(None, description="Normalized YYYY-MM-DD date, if parseable")
    file_size: str = Field("", description="Display-only size column")
    url: str = Field(..., description="Absolute PDF location")


class CommodityRecord(BaseModel):
    """Individual commodity price line"""
    number: str = Field(..., description="Row number as printed")
    commodity: str = Field(..., description="First word of the description")
    specification: str = Field(..., description="Rest of the description or n/a")
    price: str = Field(..., description="Price exactly as printed, or n/a")
    category: str = Field(..., description="Category in effect, or UNKNOWN")


class ExtractionOutcome(str, Enum):
    PARSED = "parsed"
    NO_TEXT = "no_text"
    FAILED = "failed"


class ExtractionResult(BaseModel):
    """Parsed content of one document"""
    records: List[CommodityRecord] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    outcome: ExtractionOutcome = ExtractionOutcome.PARSED
    detail: Optional[str] = None

    @classmethod
    def failed(cls, detail: str) -> "ExtractionResult":
        return cls(outcome=ExtractionOutcome.FAILED, detail=detail)

    @classmethod
    def no_text(cls) -> "ExtractionResult":
        return cls(outcome=ExtractionOutcome.NO_TEXT)


class CatalogOutcome(str, Enum):
    FOUND = "found"
    NO_SECTION = "no_section"
    NO_TABLE = "no_table"
    FETCH_FAILED = "fetch_failed"
    PARSE_FAILED = "parse_failed"


class LinkCatalog(BaseModel):
    """Listing page entries plus how the listing was obtained"""
    entries: List[LinkEntry] = Field(default_factory=list)
    outcome: CatalogOutcome = CatalogOutcome.FOUND
    detail: Optional[str] = None


# ------------------------------------------------------------------------------
# getData outcomes
# ------------------------------------------------------------------------------

class DataFound(BaseModel):
    """Complete API response structure for one dated document"""
    date: str
    pdf_url: str
    records: List[CommodityRecord]
    notes: List[str]
    outcome: ExtractionOutcome = ExtractionOutcome.PARSED

    @classmethod
    def from_extraction(cls, date: str, pdf_url: str, result: ExtractionResult) -> "DataFound":
        return cls(
            date=date,
            pdf_url=pdf_url,
            records=result.records,
            notes=result.notes,
            outcome=result.outcome,
        )


class DocumentNotFound(BaseModel):
    date: str
    available_dates: List[str] = Field(default_factory=list, max_length=5)


class MalformedInput(BaseModel):
    date: Optional[str] = None
    message: str


class ManualExtractResponse(BaseModel):
    """Response for an uploaded PDF"""
    status: str
    filename: str
    records: List[CommodityRecord]
    notes: List[str]
    outcome: ExtractionOutcome
