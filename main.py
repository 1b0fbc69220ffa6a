# ==============================================================================
# DA PRICE INDEX SCRAPER - HTTP API
# ==============================================================================
#
# Endpoints:
#   GET  /                      health check
#   GET  /api/daily-links       dated PDF links from the price monitoring page
#   GET  /api/data?date=...     parsed records + notes for one date
#   GET  /proxy?endpoint=...    single entry point (daily_links | data)
#   POST /api/scrape-new-pdf    parsed records + notes for the newest PDF
#   POST /api/extract-manual    parse an uploaded PDF
#
# ==============================================================================

import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware

import scraper
from commodity_parser import extract
from config import get_settings
from models import DataFound, DocumentNotFound, LinkEntry, MalformedInput, ManualExtractResponse

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title="DA Price Index Scraper", version="8.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==============================================================================
# AUTHENTICATION
# ==============================================================================

def verify_api_key(authorization: Optional[str] = Header(None)) -> None:
    """Bearer token check; disabled when API_KEY is unset"""
    api_key = get_settings().api_key
    if not api_key:
        return
    if authorization != f"Bearer {api_key}":
        raise HTTPException(401, "Unauthorized")


# ==============================================================================
# RESPONSE MAPPING
# ==============================================================================

def _data_response(lookup) -> DataFound:
    if isinstance(lookup, MalformedInput):
        raise HTTPException(400, lookup.message)
    if isinstance(lookup, DocumentNotFound):
        raise HTTPException(404, {
            "error": "PDF not found",
            "date": lookup.date,
            "available_dates": lookup.available_dates,
        })
    return lookup


# ==============================================================================
# API ENDPOINTS
# ==============================================================================

@app.get("/api/daily-links", response_model=List[LinkEntry], dependencies=[Depends(verify_api_key)])
async def daily_links(limit: Optional[int] = Query(None, ge=0)):
    """Dated Daily Price Index PDFs, in page order"""
    return await scraper.list_links(limit=limit)


@app.get("/api/data", response_model=DataFound, dependencies=[Depends(verify_api_key)])
async def data_for_date(date: Optional[str] = None):
    """
    Parsed price records for one publication date

    Accepts 'September 2, 2025', '2025-09-02', '09/02/2025' and similar.
    400 for an unparseable date, 404 (with sample dates) when no PDF matches.
    """
    return _data_response(await scraper.get_data(date))


@app.get("/proxy", dependencies=[Depends(verify_api_key)])
async def proxy(
    endpoint: Optional[str] = None,
    date: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0),
):
    """Single entry point kept for existing frontends"""
    if endpoint == "daily_links":
        links = await scraper.list_links(limit=limit)
        return [link.model_dump() for link in links]

    if endpoint == "data":
        found = _data_response(await scraper.get_data(date))
        return found.model_dump(mode="json")

    raise HTTPException(400, "Invalid endpoint")


@app.post("/api/scrape-new-pdf", response_model=DataFound, dependencies=[Depends(verify_api_key)])
async def scrape_new_pdf_data():
    """
    Scrapes the newest Daily Price Index PDF from DA website

    Process:
    1. Fetches HTML from DA price monitoring page
    2. Builds the dated PDF list under 'Daily Price Index'
    3. Picks the newest date
    4. Downloads and parses that PDF
    """
    latest = await scraper.get_latest()
    if isinstance(latest, DocumentNotFound):
        raise HTTPException(404, "No dated Daily Price Index PDFs found.")
    return latest


@app.post("/api/extract-manual", response_model=ManualExtractResponse, dependencies=[Depends(verify_api_key)])
async def extract_manual_pdf(file: UploadFile = File(...)):
    """
    Manually upload and parse a DPI PDF file

    Useful for:
    - Processing archived PDFs
    - Testing with specific documents
    """
    if file.content_type != 'application/pdf':
        raise HTTPException(400, "File must be PDF")

    content = await file.read()
    result = extract(content)
    logger.info("Manual upload %s: %s, %d records", file.filename, result.outcome.value, len(result.records))

    return ManualExtractResponse(
        status="Success (Manual)",
        filename=file.filename or "upload.pdf",
        records=result.records,
        notes=result.notes,
        outcome=result.outcome,
    )


@app.get("/")
def root():
    """Health check endpoint"""
    return {"message": "DA Price Index Scraper is Running", "service": get_settings().service_name}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
