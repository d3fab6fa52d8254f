def _seed_eps(client, add_stock):
    add_stock("AAA")
    add_stock("BBB")
    csv_content = (
        b"symbol,report_date,eps,eps_nganh\n"
        b"AAA,31/12/2021,1.0,5.0\n"
        b"AAA,31/12/2022,2.0,5.5\n"
        b"AAA,31/12/2023,3.0,6.0\n"
        b"BBB,31/12/2023,4.0,6.0\n"
    )
    response = client.post("/api/eps-records/import", files={"file": ("eps.csv", csv_content, "text/csv")})
    assert response.status_code == 200


def _record_id(client, symbol, report_date):
    rows = client.get(f"/api/eps-records/symbol/{symbol}", params={"limit": 100}).json()["data"]
    return next(row["id"] for row in rows if row["report_date"] == report_date)


def test_list_is_paginated_and_sorted_newest_first(client, add_stock):
    _seed_eps(client, add_stock)

    body = client.get("/api/eps-records", params={"page": 2, "limit": 3}).json()

    assert body["pagination"] == {
        "total_items": 4,
        "item_count": 1,
        "items_per_page": 3,
        "total_pages": 2,
        "current_page": 2,
    }
    assert body["data"][0]["report_date"] == "2021-12-31"


def test_list_filters_by_symbol_and_sorts_on_whitelisted_columns(client, add_stock):
    _seed_eps(client, add_stock)

    body = client.get("/api/eps-records", params={"symbol": "aaa", "sort_by": "eps", "sort_order": "asc"}).json()

    assert [row["eps"] for row in body["data"]] == [1.0, 2.0, 3.0]
    assert all(isinstance(row["id"], str) for row in body["data"])


def test_list_rejects_unknown_sort_column(client):
    response = client.get("/api/eps-records", params={"sort_by": "password"})

    assert response.status_code == 400


def test_list_filters_by_date_range(client, add_stock):
    _seed_eps(client, add_stock)

    body = client.get(
        "/api/eps-records/symbol/AAA", params={"date_from": "2022-01-01", "date_to": "2022-12-31"}
    ).json()

    assert [row["report_date"] for row in body["data"]] == ["2022-12-31"]


def test_symbol_listing_for_unknown_stock_is_404(client):
    assert client.get("/api/eps-records/symbol/NOPE").status_code == 404


def test_stock_lookup_by_symbol(client, add_stock):
    add_stock("VNM", name="Vinamilk", exchange="HOSE")

    body = client.get("/api/stocks/symbol/vnm").json()

    assert body["name"] == "Vinamilk"
    assert client.get("/api/stocks/symbol/NOPE").status_code == 404


def test_get_record_by_id(client, add_stock):
    _seed_eps(client, add_stock)
    record_id = _record_id(client, "BBB", "2023-12-31")

    body = client.get(f"/api/eps-records/{record_id}").json()

    assert body["symbol"] == "BBB"
    assert client.get("/api/eps-records/999999").status_code == 404


def test_patch_leaves_absent_fields_and_clears_explicit_nulls(client, add_stock):
    _seed_eps(client, add_stock)
    record_id = _record_id(client, "AAA", "2023-12-31")

    response = client.patch(f"/api/eps-records/{record_id}", json={"eps": 3.3, "eps_rate": None})
    assert response.status_code == 200
    assert response.json()["eps"] == 3.3
    assert response.json()["eps_nganh"] == 6.0

    response = client.patch(f"/api/eps-records/{record_id}", json={"eps_nganh": None})
    assert response.json()["eps_nganh"] is None
    assert response.json()["eps"] == 3.3


def test_patch_with_empty_body_is_rejected(client, add_stock):
    _seed_eps(client, add_stock)
    record_id = _record_id(client, "AAA", "2023-12-31")

    assert client.patch(f"/api/eps-records/{record_id}", json={}).status_code == 400


def test_patch_onto_existing_natural_key_conflicts(client, add_stock):
    _seed_eps(client, add_stock)
    record_id = _record_id(client, "AAA", "2022-12-31")

    response = client.patch(f"/api/eps-records/{record_id}", json={"report_date": "2023-12-31"})

    assert response.status_code == 409


def test_patch_to_unknown_stock_is_404(client, add_stock):
    _seed_eps(client, add_stock)
    record_id = _record_id(client, "AAA", "2022-12-31")

    response = client.patch(f"/api/eps-records/{record_id}", json={"symbol": "ZZZ"})

    assert response.status_code == 404


def test_patch_rejects_unknown_fields(client, add_stock):
    _seed_eps(client, add_stock)
    record_id = _record_id(client, "AAA", "2022-12-31")

    assert client.patch(f"/api/eps-records/{record_id}", json={"roe": 1}).status_code == 422


def test_delete_record(client, add_stock):
    _seed_eps(client, add_stock)
    record_id = _record_id(client, "BBB", "2023-12-31")

    assert client.delete(f"/api/eps-records/{record_id}").status_code == 204
    assert client.get(f"/api/eps-records/{record_id}").status_code == 404
    assert client.delete(f"/api/eps-records/{record_id}").status_code == 404


def test_qindex_listing_for_unknown_stock_is_404(client):
    assert client.get("/api/stock-qindices/stock/12345").status_code == 404


def test_create_record_returns_201(client, add_stock):
    add_stock("AAA")

    response = client.post("/api/eps-records", json={"symbol": " aaa ", "report_date": "2023-12-31", "eps": 3.5})

    assert response.status_code == 201
    body = response.json()
    assert body["symbol"] == "AAA"
    assert body["eps"] == 3.5
    assert client.get(f"/api/eps-records/{body['id']}").status_code == 200


def test_create_with_existing_natural_key_conflicts(client, add_stock):
    _seed_eps(client, add_stock)

    response = client.post("/api/eps-records", json={"symbol": "AAA", "report_date": "2023-12-31", "eps": 9})

    assert response.status_code == 409
    assert client.get("/api/eps-records/symbol/AAA").json()["pagination"]["total_items"] == 3


def test_create_for_unknown_stock_is_404_when_parent_is_required(client):
    response = client.post("/api/pe-records", json={"symbol": "ZZZ", "report_date": "2023-12-31", "pe": 10})

    assert response.status_code == 404
    assert client.get("/api/stocks/symbol/ZZZ").status_code == 404


def test_create_auto_creates_parent_stock(client):
    response = client.post("/api/roa-roe-records", json={"symbol": "NEW", "report_date": "2023-12-31", "roe": 12})

    assert response.status_code == 201
    stock = client.get("/api/stocks/symbol/NEW").json()
    assert stock["name"] == "NEW"


def test_create_requires_natural_key(client, add_stock):
    add_stock("AAA")

    assert client.post("/api/eps-records", json={"symbol": "AAA", "eps": 1}).status_code == 422
    assert client.post("/api/stocks", json={"symbol": "BBB"}).status_code == 422


def test_create_qindex_checks_stock_id(client, add_stock):
    stock = add_stock("AAA")

    created = client.post("/api/stock-qindices", json={"stock_id": stock.id, "date": "2024-01-15", "qv1": 0.5})
    missing = client.post("/api/stock-qindices", json={"stock_id": 999, "date": "2024-01-15"})

    assert created.status_code == 201
    assert created.json()["stock_id"] == str(stock.id)
    assert missing.status_code == 404


def test_search_stocks_matches_symbol_or_name(client, add_stock):
    add_stock("VNM", name="Vinamilk")
    add_stock("VIC", name="Vingroup")
    add_stock("FPT", name="FPT Corporation")

    by_name = client.get("/api/stocks/search", params={"keyword": "vin"}).json()
    by_symbol = client.get("/api/stocks/search", params={"q": "fp"}).json()

    assert [row["symbol"] for row in by_name["data"]] == ["VIC", "VNM"]
    assert by_name["pagination"]["total_items"] == 2
    assert [row["symbol"] for row in by_symbol["data"]] == ["FPT"]


def test_search_stocks_requires_keyword(client):
    assert client.get("/api/stocks/search").status_code == 400
    assert client.get("/api/stocks/search", params={"keyword": "  "}).status_code == 400
