from __future__ import annotations

from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path
import json

import httpx
import pytest

import factory_entry.storage as storage_module
from factory_entry import create_app
from factory_entry.config import Settings


def _configure_endpoint(client, url: str = "https://hooks.example.com/entry") -> None:
    response = client.post("/api/settings", json={"endpoint": url})
    assert response.status_code == 200


def _upload(client, data: bytes, filename: str, **fields):
    form = {"file": (BytesIO(data), filename)}
    form.update(fields)
    return client.post(
        "/api/admin/update-products", data=form, content_type="multipart/form-data"
    )


def test_settings_get_creates_default(client, data_dir: Path) -> None:
    response = client.get("/api/settings")

    assert response.status_code == 200
    assert response.get_json() == {"endpoint": ""}
    assert (data_dir / "settings.json").exists()


def test_settings_round_trip(client) -> None:
    saved = client.post("/api/settings", json={"endpoint": "https://hooks.example.com/x"})
    assert saved.status_code == 200
    assert saved.get_json() == {
        "message": "Settings saved successfully",
        "settings": {"endpoint": "https://hooks.example.com/x"},
    }

    assert client.get("/api/settings").get_json() == {"endpoint": "https://hooks.example.com/x"}


@pytest.mark.parametrize("body", [{"endpoint": 5}, {"endpoint": None}, {}, ["x"]])
def test_settings_rejects_invalid_endpoint(client, body) -> None:
    response = client.post("/api/settings", json=body)

    assert response.status_code == 400
    assert response.get_json()["message"] == "Invalid endpoint format"


def test_settings_read_failure_is_500(client, data_dir: Path) -> None:
    (data_dir / "settings.json").write_text("[broken", encoding="utf-8")

    response = client.get("/api/settings")

    assert response.status_code == 500
    assert response.get_json()["message"] == "Failed to read settings"


def test_unsupported_method(client) -> None:
    response = client.put("/api/settings", json={"endpoint": "x"})

    assert response.status_code == 405
    assert response.get_json() == {"message": "Method PUT Not Allowed"}
    assert "POST" in response.headers["Allow"]
    assert "GET" in response.headers["Allow"]

    assert client.get("/api/submit-entry").status_code == 405
    assert client.delete("/api/rm-inventory").status_code == 405
    assert client.get("/api/admin/update-products").status_code == 405


def test_products_requires_type(client) -> None:
    response = client.get("/api/products")

    assert response.status_code == 400
    assert response.get_json()["message"] == "Missing or invalid type parameter"


def test_products_unknown_type_and_missing_file(client) -> None:
    assert client.get("/api/products?type=returns").get_json() == []
    assert client.get("/api/products?type=receipt").get_json() == []


def test_upload_then_list_products(client, make_xls) -> None:
    data = make_xls({"Sheet1": [["Widget"], ["Gadget"], [""], ["Widget"]]})

    response = _upload(client, data, "products.xls", type="receipt", sheetName="Sheet1", columnRef="A")

    assert response.status_code == 200
    assert response.get_json() == {
        "message": "Product list updated successfully",
        "count": 3,
        "firstFew": ["Widget", "Gadget", "Widget"],
    }
    assert client.get("/api/products?type=receipt").get_json() == ["Widget", "Gadget", "Widget"]
    assert client.get("/api/products?type=issuance").get_json() == ["Widget", "Gadget", "Widget"]
    assert client.get("/api/products?type=production").get_json() == []


def test_upload_xlsx_for_dc_entry(client, make_xlsx) -> None:
    rows = [["Code", "Name"]] + [[f"P{i}", f"Product {i}"] for i in range(1, 6)]
    data = make_xlsx({"Finished": rows})

    response = _upload(client, data, "fg.xlsx", type="dc-entry", sheetName="Finished", columnRef="b")

    payload = response.get_json()
    assert response.status_code == 200
    assert payload["count"] == 6
    assert payload["firstFew"] == ["Name", "Product 1", "Product 2"]
    assert client.get("/api/products?type=production").get_json()[-1] == "Product 5"


@pytest.mark.parametrize("missing", ["type", "sheetName", "columnRef"])
def test_upload_missing_fields(client, make_xls, missing: str) -> None:
    fields = {"type": "receipt", "sheetName": "Sheet1", "columnRef": "A"}
    fields.pop(missing)

    response = _upload(client, make_xls({"Sheet1": [["x"]]}), "p.xls", **fields)

    assert response.status_code == 400
    assert response.get_json()["message"] == "Missing required fields"


def test_upload_without_file(client) -> None:
    response = client.post(
        "/api/admin/update-products",
        data={"type": "receipt", "sheetName": "Sheet1", "columnRef": "A"},
        content_type="multipart/form-data",
    )

    assert response.status_code == 400


def test_upload_errors(client, make_xls, data_dir: Path) -> None:
    data = make_xls({"Sheet1": [["Widget"]]})

    bad_type = _upload(client, data, "p.xls", type="returns", sheetName="Sheet1", columnRef="A")
    assert bad_type.status_code == 400
    assert bad_type.get_json()["message"] == "Invalid type"

    bad_sheet = _upload(client, data, "p.xls", type="receipt", sheetName="Products", columnRef="A")
    assert bad_sheet.status_code == 400
    assert bad_sheet.get_json()["message"] == 'Sheet "Products" not found'

    bad_column = _upload(client, data, "p.xls", type="receipt", sheetName="Sheet1", columnRef="?")
    assert bad_column.status_code == 400
    assert bad_column.get_json()["message"] == "Invalid column reference: ?"

    broken = _upload(client, b"not a workbook", "p.xlsx", type="receipt", sheetName="Sheet1", columnRef="A")
    assert broken.status_code == 500
    assert broken.get_json()["message"] == "Internal server error"
    assert broken.get_json()["error"]

    assert not (data_dir / "products-receipt.json").exists()


def test_inventory_empty(client) -> None:
    assert client.get("/api/rm-inventory").get_json() == {"lastUpdated": None, "items": []}


def test_inventory_post_then_get(client, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        storage_module, "_now", lambda: datetime(2026, 10, 18, 9, 5, tzinfo=timezone.utc)
    )
    items = [
        {"MATERIAL GROUP": "Resins", "SKU Code": "RM-001", "Closing Stock": 120},
        {"MATERIAL GROUP": "Pigments", "SKU Code": "RM-002", "Closing Stock": 10},
    ]

    response = client.post("/api/rm-inventory", json=items)

    assert response.status_code == 200
    assert response.get_json() == {
        "message": "Inventory updated successfully",
        "lastUpdated": "18 Oct 2026 14:05",
        "itemCount": 2,
    }
    assert client.get("/api/rm-inventory").get_json() == {
        "lastUpdated": "18 Oct 2026 14:05",
        "items": items,
    }

    monkeypatch.setattr(
        storage_module, "_now", lambda: datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc)
    )
    replaced = client.post(
        "/api/rm-inventory", json={"lastUpdated": "ignored", "items": items[:1]}
    )
    assert replaced.get_json()["lastUpdated"] == "18 Oct 2026 15:00"
    assert client.get("/api/rm-inventory").get_json() == {
        "lastUpdated": "18 Oct 2026 15:00",
        "items": items[:1],
    }


@pytest.mark.parametrize("body", [{"items": "nope"}, {"sku": 1}, "text", 3])
def test_inventory_rejects_non_array(client, body) -> None:
    response = client.post("/api/rm-inventory", json=body)

    assert response.status_code == 400
    assert response.get_json()["message"] == "Payload must be an array of inventory items"


def test_inventory_body_limit(tmp_path: Path) -> None:
    settings = Settings(data_dir=tmp_path, environment="test", max_upload_bytes=64)
    client = create_app(settings).test_client()

    response = client.post("/api/rm-inventory", json=[{"SKU Code": "x" * 200}])

    assert response.status_code == 413
    assert "64" in response.get_json()["message"]


def test_submit_without_settings_makes_no_call(client, remote) -> None:
    response = client.post("/api/submit-entry", json={"header": {"formType": "receipt"}})

    assert response.status_code == 400
    assert response.get_json()["message"] == "Configuration error: Settings file not found."
    assert remote.requests == []


def test_submit_with_empty_endpoint_makes_no_call(client, remote) -> None:
    client.get("/api/settings")

    response = client.post("/api/submit-entry", json={"items": []})

    assert response.status_code == 400
    assert "No API endpoint configured" in response.get_json()["message"]
    assert remote.requests == []


def test_submit_forwards_payload_verbatim(client, remote) -> None:
    _configure_endpoint(client)
    payload = {
        "header": {"formType": "issuance", "user": "Ahmed", "date": "18-10-2026"},
        "items": [{"productName": "Resin", "quantity": "4", "notes": ""}],
    }

    response = client.post("/api/submit-entry", json=payload)

    assert response.status_code == 200
    assert response.get_json() == {"success": True, "data": {"received": True}}
    assert len(remote.requests) == 1
    sent = remote.requests[0]
    assert sent.method == "POST"
    assert str(sent.url) == "https://hooks.example.com/entry"
    assert sent.headers["content-type"] == "application/json"
    assert json.loads(sent.content) == payload


def test_submit_ignores_non_json_reply(client, remote) -> None:
    _configure_endpoint(client)
    remote.body = b"Accepted"

    response = client.post("/api/submit-entry", json={"a": 1})

    assert response.status_code == 200
    assert response.get_json() == {"success": True, "data": {}}


def test_submit_surfaces_remote_status(client, remote) -> None:
    _configure_endpoint(client)
    remote.status_code = 503
    remote.body = b"maintenance"

    response = client.post("/api/submit-entry", json={"a": 1})

    assert response.status_code == 500
    message = response.get_json()["message"]
    assert "503" in message
    assert "maintenance" in message
    assert len(remote.requests) == 1


def test_submit_transport_failure(client, remote) -> None:
    _configure_endpoint(client)
    remote.error = httpx.ConnectError("connection refused")

    response = client.post("/api/submit-entry", json={"a": 1})

    assert response.status_code == 500
    assert "connection refused" in response.get_json()["message"]
    assert len(remote.requests) == 1


def test_submit_requires_json_body(client, remote) -> None:
    _configure_endpoint(client)

    response = client.post("/api/submit-entry", data="user=x")

    assert response.status_code == 400
    assert remote.requests == []


def test_submit_with_unparseable_endpoint(client, remote) -> None:
    _configure_endpoint(client, "http://example.com:abc/hook")

    response = client.post("/api/submit-entry", json={"a": 1})

    assert response.status_code == 500
    assert response.is_json
    assert response.get_json()["message"].startswith("External API Error:")
    assert remote.requests == []


def test_submit_forwards_json_null(client, remote) -> None:
    _configure_endpoint(client)

    response = client.post("/api/submit-entry", data="null", content_type="application/json")

    assert response.status_code == 200
    assert len(remote.requests) == 1
    assert remote.requests[0].content == b"null"


def test_submit_rejects_malformed_json(client, remote) -> None:
    _configure_endpoint(client)

    response = client.post("/api/submit-entry", data="{oops", content_type="application/json")

    assert response.status_code == 400
    assert response.get_json()["message"] == "Request body is not valid JSON"
    assert remote.requests == []
