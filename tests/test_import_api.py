import asyncio
from io import BytesIO

import pandas as pd

import refdata.api.dependencies as dependencies
import refdata.api.routers.imports as imports_router

EPS_CSV = b"Symbol,ReportDate,EPS\nAAPL,31/12/2023,3.45\nAAPL,31/12/2023,3.50\n,01/01/2024,1.00\n"


def _upload(client, path, content, file_name="upload.csv", content_type="text/csv"):
    return client.post(f"/api/{path}/import", files={"file": (file_name, content, content_type)})


def test_root_and_health(client):
    assert client.get("/").json()["message"] == "Reference Data API"
    health = client.get("/health").json()
    assert health["status"] == "healthy"


def test_eps_import_reports_counts_and_errors(client, add_stock):
    add_stock("AAPL")

    response = _upload(client, "eps-records", EPS_CSV)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["record_type"] == "eps"
    assert (body["total"], body["created"], body["updated"], body["failed"]) == (3, 1, 1, 1)
    assert body["imported"] == 2
    assert body["errors"][0]["row"] == 3
    assert body["errors"][0]["error_type"] == "missing_key"
    assert body["errors_truncated"] is False

    listing = client.get("/api/eps-records/symbol/AAPL").json()
    assert listing["data"][0]["eps"] == 3.5


def test_missing_file_is_rejected(client):
    response = client.post("/api/eps-records/import")

    assert response.status_code == 400
    assert response.json()["detail"] == "No file uploaded"


def test_unsupported_file_type_is_rejected(client):
    response = _upload(client, "stocks", b"hello", "notes.txt", "text/plain")

    assert response.status_code == 400
    assert "Unsupported file format" in response.json()["detail"]


def test_header_only_file_is_rejected(client):
    response = _upload(client, "currency-prices", b"symbol,date,close\n")

    assert response.status_code == 400
    assert "no data rows" in response.json()["detail"]


def test_file_with_no_valid_rows_lists_row_errors(client):
    response = _upload(client, "currency-prices", b"symbol,date,close\n,2024-01-01,1\n")

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["error_type"] == "no_valid_rows"
    assert detail["errors"][0]["row"] == 1


def test_oversized_upload_is_rejected(client, monkeypatch):
    monkeypatch.setattr(dependencies, "MAX_UPLOAD_BYTES", 16)

    response = _upload(client, "currency-prices", b"symbol,date,close\nUSDVND,2024-01-01,1\n")

    assert response.status_code == 413


def test_unexpected_failure_returns_500(client, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(imports_router, "run_file_import", explode)

    response = _upload(client, "currency-prices", b"symbol,date,close\nUSDVND,2024-01-01,1\n")

    assert response.status_code == 500


def test_excel_upload_with_extension_only(client):
    buffer = BytesIO()
    pd.DataFrame({"Symbol": ["USDVND"], "Date": ["15/01/2024"], "Close": ["24.350,5"]}).to_excel(
        buffer, index=False, engine="openpyxl"
    )

    response = _upload(client, "currency-prices", buffer.getvalue(), "prices.xlsx", "application/octet-stream")

    assert response.status_code == 200
    assert response.json()["created"] == 1
    price = client.get("/api/currency-prices").json()["data"][0]
    assert price["date"] == "2024-01-15"
    assert price["close"] == 24350.5


def test_stock_qindex_import_pins_stock_from_path(client, add_stock):
    stock = add_stock("AAA")
    add_stock("BBB")

    response = client.post(
        f"/api/stock-qindices/stock/{stock.id}/import",
        files={"file": ("q.csv", b"symbol,date,open\nBBB,2024-01-15,10\n", "text/csv")},
    )

    assert response.status_code == 200
    assert response.json()["created"] == 1
    rows = client.get(f"/api/stock-qindices/stock/{stock.id}").json()["data"]
    assert rows[0]["stock_id"] == str(stock.id)


def test_stock_qindex_import_for_unknown_stock_is_404(client):
    response = client.post(
        "/api/stock-qindices/stock/999/import",
        files={"file": ("q.csv", b"date,open\n2024-01-15,10\n", "text/csv")},
    )

    assert response.status_code == 404


def test_stock_qindex_json_bulk_upserts(client, add_stock):
    stock = add_stock("AAA")
    payload = {
        "qIndices": [
            {"date": "2024-01-15", "open": "10.5", "band_up": 12},
            {"date": "2024-01-16", "open": 11},
        ]
    }

    first = client.post(f"/api/stock-qindices/stock/{stock.id}/bulk", json=payload)
    second = client.post(f"/api/stock-qindices/stock/{stock.id}/bulk", json=payload)

    assert first.status_code == 200
    assert (first.json()["created"], first.json()["updated"]) == (2, 0)
    assert (second.json()["created"], second.json()["updated"]) == (0, 2)


def test_stock_qindex_json_bulk_requires_rows(client, add_stock):
    stock = add_stock("AAA")

    response = client.post(f"/api/stock-qindices/stock/{stock.id}/bulk", json={"qIndices": []})

    assert response.status_code == 422


def test_stock_check_runs_off_the_event_loop(client, add_stock, monkeypatch):
    stock = add_stock("AAA")
    loop_seen = []
    original = imports_router._require_stock

    def recording_require_stock(db, stock_id):
        try:
            asyncio.get_running_loop()
            loop_seen.append(True)
        except RuntimeError:
            loop_seen.append(False)
        original(db, stock_id)

    monkeypatch.setattr(imports_router, "_require_stock", recording_require_stock)

    response = client.post(f"/api/stock-qindices/stock/{stock.id}/bulk", json={"qIndices": [{"date": "2024-01-15"}]})

    assert response.status_code == 200
    assert loop_seen == [False]
