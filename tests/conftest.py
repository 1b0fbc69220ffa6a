"""Shared fixtures for the scraper tests."""

from io import BytesIO

import httpx
import pytest
from pypdf import PdfWriter

from config import reset_settings_cache
from scraper import document_cache

BASE_URL = "https://www.da.gov.ph"
TARGET_URL = "https://www.da.gov.ph/price-monitoring/"

LISTING_HTML = """
<html><body>
  <h2>Price Monitoring</h2>
  <table><tr><td><a href="/wp-content/uploads/weekly.pdf">Weekly Average</a></td><td>1 MB</td></tr></table>
  <h3>Daily Price Index</h3>
  <p>Latest prevailing retail prices in Metro Manila markets.</p>
  <table>
    <tr><th>Date</th><th>Size</th></tr>
    <tr><td><a href="/wp-content/uploads/2025/09/September-2-2025-DPI-AFC.pdf">September 2, 2025</a></td><td>512 KB</td></tr>
    <tr><td><a href="https://www.da.gov.ph/wp-content/uploads/2025/09/September-1-2025-DPI-AFC.PDF">September 1, 2025</a></td><td>498 KB</td></tr>
    <tr><td><a href="/wp-content/uploads/2025/08/August-29-2025-DPI-AFC.docx">August 29, 2025</a></td><td>40 KB</td></tr>
    <tr><td><a href="/wp-content/uploads/2025/08/August-28-2025-DPI-AFC.pdf">August 28, 2025</a></td><td>505 KB</td></tr>
    <tr><td>August 27, 2025</td><td>n/a</td></tr>
  </table>
</body></html>
"""


def blank_pdf_bytes() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=612, height=792)
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Each test starts from default settings and an empty document cache."""
    monkeypatch.setenv("BASE_URL", BASE_URL)
    monkeypatch.setenv("TARGET_URL", TARGET_URL)
    monkeypatch.delenv("API_KEY", raising=False)
    monkeypatch.delenv("DOCUMENT_CACHE_TTL", raising=False)
    reset_settings_cache()
    document_cache.clear()
    yield
    reset_settings_cache()
    document_cache.clear()


@pytest.fixture
def listing_html():
    return LISTING_HTML


@pytest.fixture
def site():
    """
    Fake DA website: routes maps URL -> (status, body). Requests are recorded.
    """

    class FakeSite:
        def __init__(self):
            self.routes = {TARGET_URL: (200, LISTING_HTML)}
            self.requests = []

        def handler(self, request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            self.requests.append(url)
            if url not in self.routes:
                return httpx.Response(404, text="Not Found")
            status, body = self.routes[url]
            if isinstance(body, bytes):
                return httpx.Response(status, content=body)
            return httpx.Response(status, text=body)

        def client(self) -> httpx.AsyncClient:
            return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    return FakeSite()
