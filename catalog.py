# ==============================================================================
# LINK CATALOG - DATE NORMALIZATION & LISTING PAGE PARSER
# ==============================================================================
#
# The price monitoring page lists one PDF per publication day under a
# "Daily Price Index" heading:
#
#   <h3>Daily Price Index</h3>
#   <table>
#     <tr><td><a href="/wp-content/...pdf">September 2, 2025</a></td><td>512 KB</td></tr>
#     ...
#
# ==============================================================================

import logging
import re
from datetime import datetime
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from models import CatalogOutcome, LinkCatalog, LinkEntry

logger = logging.getLogger(__name__)

SECTION_TITLE = "daily price index"
HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

DATE_FORMATS = [
    "%Y-%m-%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%b. %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%B-%d-%Y",
    "%b-%d-%Y",
]


# ==============================================================================
# DATE NORMALIZER
# ==============================================================================

def normalize_date(text: Optional[str]) -> Optional[str]:
    """
    Canonicalizes a date label or query value to YYYY-MM-DD.
    Returns None when the text is not a real calendar date.
    """
    if not text:
        return None

    cleaned = " ".join(str(text).split())
    # "September 2 ,2025" -> "September 2, 2025"
    cleaned = re.sub(r"\s*,\s*", ", ", cleaned)

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    return None


# ==============================================================================
# LISTING PAGE PARSER
# ==============================================================================

def _find_section_heading(soup: BeautifulSoup):
    for heading in soup.find_all(HEADING_TAGS):
        if SECTION_TITLE in heading.get_text(" ", strip=True).lower():
            return heading
    return None


def _find_following_table(heading):
    for sibling in heading.find_next_siblings():
        if sibling.name == "table":
            return sibling
        # Block editors wrap tables: <figure class="wp-block-table"><table>
        nested = sibling.find("table")
        if nested is not None:
            return nested
    return None


def _resolve_url(href: str, base_url: str) -> str:
    if href.lower().startswith(("http://", "https://")):
        return href
    return urljoin(base_url, href)


def _row_to_entry(row, base_url: str) -> Optional[LinkEntry]:
    cells = row.find_all(["td", "th"])
    if len(cells) < 2:
        return None

    anchor = cells[0].find("a", href=True)
    if anchor is None:
        return None

    href = anchor["href"].strip()
    if not href.lower().endswith(".pdf"):
        return None

    date_label = anchor.get_text(" ", strip=True)
    return LinkEntry(
        date_label=date_label,
        date_key=normalize_date(date_label),
        file_size=cells[1].get_text(" ", strip=True),
        url=_resolve_url(href, base_url),
    )


def build_link_catalog(html: str, base_url: str) -> LinkCatalog:
    """
    Parses the listing page into LinkEntry rows, in table order.
    Never raises: missing section/table and parser errors come back as
    an empty catalog with the matching outcome.
    """
    try:
        soup = BeautifulSoup(html or "", "lxml")

        heading = _find_section_heading(soup)
        if heading is None:
            logger.info("No 'Daily Price Index' heading on listing page")
            return LinkCatalog(outcome=CatalogOutcome.NO_SECTION)

        table = _find_following_table(heading)
        if table is None:
            logger.info("No table after 'Daily Price Index' heading")
            return LinkCatalog(outcome=CatalogOutcome.NO_TABLE)

        entries = []
        for row in table.find_all("tr"):
            entry = _row_to_entry(row, base_url)
            if entry is not None:
                entries.append(entry)

        return LinkCatalog(entries=entries, outcome=CatalogOutcome.FOUND)

    except Exception as e:
        logger.warning("Listing page parse failed: %s", e)
        return LinkCatalog(outcome=CatalogOutcome.PARSE_FAILED, detail=str(e))


def parse_links(html: str, base_url: str) -> List[LinkEntry]:
    return build_link_catalog(html, base_url).entries
