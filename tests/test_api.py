"""
Tests for the editor HTTP surface, preview and PDF export.
"""

import pytest
from fastapi.testclient import TestClient

import main
from main import ExportError, app, get_workspace
from state import Workspace
from storage import FileMedium, KeyValueStore


@pytest.fixture
def workspace(tmp_path):
    return Workspace(KeyValueStore(FileMedium(tmp_path)))


@pytest.fixture
def client(workspace):
    app.dependency_overrides[get_workspace] = lambda: workspace
    yield TestClient(app)
    app.dependency_overrides.clear()


def fill_draft(client, client_name="Acme Corp", quantity=2, rate=100):
    client.patch("/draft", json={"clientName": client_name})
    return client.patch("/draft/items/0", json={"quantity": quantity, "rate": rate})


class TestDraft:
    def test_state(self, client):
        response = client.get("/state")

        assert response.status_code == 200
        data = response.json()
        assert data["profile"]["companyName"] == "Your Company"
        assert data["draft"]["totals"]["total"] == 0

    def test_edit_recomputes_totals(self, client):
        client.patch("/draft", json={"taxRate": "10", "discount": 3, "shipping": "2"})
        client.patch("/draft/items/0", json={"quantity": 2, "rate": 10})
        response = client.post("/draft/items", json={"description": "Bolt", "quantity": 1, "rate": 5})

        data = response.json()
        assert data["totals"] == {"subtotal": 25, "vat": 2.5, "total": 24.5}
        assert data["formatted"]["total"] == "$24.50"

    def test_bad_item_index(self, client):
        assert client.patch("/draft/items/7", json={"quantity": 1}).status_code == 404
        assert client.delete("/draft/items/7").status_code == 404

    def test_null_fields_are_ignored(self, client):
        fill_draft(client)

        response = client.patch("/draft", json={"clientName": None, "items": None, "paymentStatus": None})
        assert response.status_code == 200
        assert response.json()["invoice"]["clientName"] == "Acme Corp"
        assert response.json()["totals"]["total"] == 200

        response = client.patch("/draft/items/0", json={"description": None, "quantity": 3})
        assert response.status_code == 200
        assert response.json()["totals"]["subtotal"] == 300

    def test_remove_item(self, client):
        client.post("/draft/items")
        response = client.delete("/draft/items/0")
        assert len(response.json()["invoice"]["items"]) == 1

    def test_new_draft(self, client):
        old_no = client.get("/draft").json()["invoice"]["invoiceNo"]
        fill_draft(client)

        data = client.post("/draft/new").json()
        assert data["invoice"]["invoiceNo"] != old_no
        assert data["invoice"]["clientName"] == ""


class TestProfile:
    def test_profile_update_reconciles_draft(self, client):
        client.patch("/draft", json={"companyAddress": "Old Addr"})

        data = client.put("/profile", json={"companyName": "Northwind", "companyAddress": ""}).json()
        assert data["draft"]["invoice"]["companyAddress"] == "Old Addr"
        assert data["draft"]["invoice"]["companyName"] == "Northwind"

        data = client.put("/profile", json={"companyAddress": "New Addr"}).json()
        assert data["draft"]["invoice"]["companyAddress"] == "New Addr"
        assert client.get("/profile").json()["companyAddress"] == "New Addr"

    def test_currency_change(self, client):
        data = client.put("/currency", json={"currency": "eur"}).json()
        assert data["invoice"]["currency"] == "EUR"

    def test_logo_upload(self, client):
        response = client.post("/profile/logo", files={"logo": ("logo.png", b"\x89PNG\r\n", "image/png")})

        assert response.status_code == 200
        assert response.json()["logoUrl"].startswith("data:image/png;base64,")
        assert client.get("/draft").json()["invoice"]["logoUrl"].startswith("data:image/png")

    def test_logo_must_be_image(self, client):
        response = client.post("/profile/logo", files={"logo": ("notes.txt", b"hello", "text/plain")})
        assert response.status_code == 415


class TestInvoices:
    def test_save_and_search(self, client):
        fill_draft(client)
        saved = client.post("/invoices")

        assert saved.status_code == 200
        assert saved.json()["total"] == 200
        assert saved.json()["clientName"] == "Acme Corp"

        assert len(client.get("/invoices").json()) == 1
        assert [r["clientName"] for r in client.get("/invoices", params={"q": "acme"}).json()] == ["Acme Corp"]
        assert client.get("/invoices", params={"q": "globex"}).json() == []

    def test_save_twice_keeps_one(self, client):
        fill_draft(client)
        client.post("/invoices")
        client.patch("/draft", json={"clientName": "Acme Corporation"})
        client.post("/invoices")

        records = client.get("/invoices").json()
        assert len(records) == 1
        assert records[0]["clientName"] == "Acme Corporation"

    def test_open_saved_invoice(self, client):
        fill_draft(client)
        invoice_no = client.post("/invoices").json()["invoiceNo"]
        client.post("/draft/new")

        opened = client.post(f"/invoices/{invoice_no}/open")
        assert opened.status_code == 200
        assert opened.json()["invoice"]["clientName"] == "Acme Corp"
        assert opened.json()["totals"]["total"] == 200
        assert client.get("/draft").json()["invoice"]["invoiceNo"] == invoice_no

    def test_read_saved_invoice_leaves_draft_alone(self, client):
        fill_draft(client)
        invoice_no = client.post("/invoices").json()["invoiceNo"]
        draft_no = client.post("/draft/new").json()["invoice"]["invoiceNo"]

        record = client.get(f"/invoices/{invoice_no}")
        assert record.status_code == 200
        assert record.json()["invoice"]["clientName"] == "Acme Corp"
        assert record.json()["totals"]["total"] == 200
        assert client.get("/draft").json()["invoice"]["invoiceNo"] == draft_no

    def test_open_missing_invoice(self, client):
        assert client.get("/invoices/INV-404").status_code == 404
        assert client.post("/invoices/INV-404/open").status_code == 404

    def test_delete(self, client):
        fill_draft(client)
        invoice_no = client.post("/invoices").json()["invoiceNo"]

        assert client.delete(f"/invoices/{invoice_no}").status_code == 204
        assert client.get("/invoices").json() == []
        assert client.delete("/invoices/INV-404").status_code == 204


class TestExport:
    def test_preview_html(self, client):
        fill_draft(client)
        response = client.post("/invoice-preview")

        assert response.status_code == 200
        assert "Acme Corp" in response.text
        assert "$200.00" in response.text

    def test_pdf_download(self, client):
        fill_draft(client)
        response = client.post("/generate-invoice")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")

    def test_pdf_failure_keeps_draft(self, client, monkeypatch):
        fill_draft(client)

        def broken(html_content):
            raise ExportError("renderer crashed")

        monkeypatch.setattr(main, "generate_pdf", broken)
        response = client.post("/generate-invoice")

        assert response.status_code == 500
        assert "Could not export" in response.json()["detail"]
        assert client.get("/draft").json()["invoice"]["clientName"] == "Acme Corp"

    def test_pdf_filename_with_non_ascii_invoice_no(self, client):
        fill_draft(client)
        client.patch("/draft", json={"invoiceNo": 'INV-€1; "x"'})

        response = client.post("/generate-invoice")

        assert response.status_code == 200
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="INV-_1___x_.pdf"')
        assert "filename*=UTF-8''INV-%E2%82%AC1%3B%20%22x%22.pdf" in disposition
