import pytest
from fastapi.testclient import TestClient

import main
import scraper
from config import reset_settings_cache
from conftest import TARGET_URL, blank_pdf_bytes

SEPT_2_URL = "https://www.da.gov.ph/wp-content/uploads/2025/09/September-2-2025-DPI-AFC.pdf"

RAW_TEXT = "B\n2 RICE Regular Milled 42.00\n1 RICE Well Milled 45.50\nNote:\nSource: DA-AMAS\n"


@pytest.fixture
def client(site, monkeypatch):
    monkeypatch.setattr(scraper, "build_client", lambda settings: site.client())
    return TestClient(main.app)


@pytest.fixture
def parsed_pdf(site, monkeypatch):
    """Serve the Sept 2 PDF and parse it as RAW_TEXT."""
    site.routes[SEPT_2_URL] = (200, b"%PDF")
    real_extract = scraper.extract
    monkeypatch.setattr(
        scraper, "extract",
        lambda content: real_extract(content, text_extractor=lambda _: RAW_TEXT),
    )


def test_health_endpoint(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["service"] == "da-price-scraper"


def test_daily_links(client):
    response = client.get("/api/daily-links", params={"limit": 2})

    assert response.status_code == 200
    body = response.json()
    assert [link["date_label"] for link in body] == ["September 2, 2025", "September 1, 2025"]
    assert body[0] == {
        "date_label": "September 2, 2025",
        "date_key": "2025-09-02",
        "file_size": "512 KB",
        "url": SEPT_2_URL,
    }


def test_daily_links_rejects_negative_limit(client):
    assert client.get("/api/daily-links", params={"limit": -1}).status_code == 422


def test_daily_links_when_site_is_down(client, site):
    site.routes[TARGET_URL] = (502, "bad gateway")
    response = client.get("/api/daily-links")
    assert response.status_code == 200
    assert response.json() == []


def test_data_for_date(client, parsed_pdf):
    response = client.get("/api/data", params={"date": "September 2, 2025"})

    assert response.status_code == 200
    body = response.json()
    assert body["date"] == "2025-09-02"
    assert body["pdf_url"] == SEPT_2_URL
    assert [r["number"] for r in body["records"]] == ["1", "2"]
    assert body["records"][0] == {
        "number": "1",
        "commodity": "RICE",
        "specification": "Well Milled",
        "price": "45.50",
        "category": "LOCAL COMMERCIAL RICE",
    }
    assert body["notes"] == ["Source: DA-AMAS"]


def test_data_invalid_date_is_400(client, site):
    response = client.get("/api/data", params={"date": "February 30, 2025"})
    assert response.status_code == 400
    assert site.requests == []


def test_data_missing_date_is_400(client):
    assert client.get("/api/data").status_code == 400


def test_data_not_found_is_404_with_samples(client):
    response = client.get("/api/data", params={"date": "2020-01-01"})

    assert response.status_code == 404
    detail = response.json()["detail"]
    assert detail["error"] == "PDF not found"
    assert detail["available_dates"][:2] == ["September 2, 2025", "September 1, 2025"]


def test_data_empty_pdf_text(client, site):
    site.routes[SEPT_2_URL] = (200, blank_pdf_bytes())

    response = client.get("/api/data", params={"date": "2025-09-02"})

    assert response.status_code == 200
    body = response.json()
    assert body["pdf_url"] == SEPT_2_URL
    assert body["records"] == [] and body["notes"] == []


def test_proxy_endpoints(client, parsed_pdf):
    links = client.get("/proxy", params={"endpoint": "daily_links"})
    assert links.status_code == 200
    assert len(links.json()) == 3

    data = client.get("/proxy", params={"endpoint": "data", "date": "2025-09-02"})
    assert data.status_code == 200
    assert data.json()["outcome"] == "parsed"

    assert client.get("/proxy", params={"endpoint": "other"}).status_code == 400


def test_api_key_required_when_configured(client, monkeypatch):
    monkeypatch.setenv("API_KEY", "secret")
    reset_settings_cache()

    assert client.get("/proxy", params={"endpoint": "daily_links"}).status_code == 401
    assert client.get(
        "/proxy",
        params={"endpoint": "daily_links"},
        headers={"Authorization": "Bearer wrong"},
    ).status_code == 401
    assert client.get(
        "/proxy",
        params={"endpoint": "daily_links"},
        headers={"Authorization": "Bearer secret"},
    ).status_code == 200
    # health check stays open
    assert client.get("/").status_code == 200


def test_scrape_new_pdf(client, parsed_pdf):
    response = client.post("/api/scrape-new-pdf")

    assert response.status_code == 200
    assert response.json()["date"] == "2025-09-02"


def test_scrape_new_pdf_without_links(client, site):
    site.routes[TARGET_URL] = (200, "<html></html>")
    assert client.post("/api/scrape-new-pdf").status_code == 404


def test_extract_manual_upload(client):
    response = client.post(
        "/api/extract-manual",
        files={"file": ("dpi.pdf", blank_pdf_bytes(), "application/pdf")},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["filename"] == "dpi.pdf"
    assert body["outcome"] == "no_text"


def test_extract_manual_rejects_non_pdf(client):
    response = client.post(
        "/api/extract-manual",
        files={"file": ("dpi.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 400
