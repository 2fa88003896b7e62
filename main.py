from fastapi import FastAPI, UploadFile, File, HTTPException, Request, Depends, BackgroundTasks
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse, HTMLResponse
from jinja2 import Environment, FileSystemLoader, select_autoescape
from typing import List, Optional
from pathlib import Path
from io import BytesIO
import base64
import logging
import re
import threading
from urllib.parse import quote
from xhtml2pdf import pisa

import config
import state as transitions
from calc import format_money, invoice_totals, line_amount
from remote import push_invoice, remove_invoice, remote_from_env
from schemas import (
    CompanyProfile,
    CurrencyUpdate,
    DraftUpdate,
    DraftView,
    FormattedTotals,
    Invoice,
    InvoiceSummary,
    ItemUpdate,
    LineItem,
    StateView,
)
from state import InvoiceNotFound, Workspace
from storage import FileMedium, KeyValueStore
import repository

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html"]),
)


class ExportError(RuntimeError):
    pass


def generate_pdf(html_content: str) -> bytes:
    pdf_buffer = BytesIO()

    try:
        result = pisa.CreatePDF(
            src=html_content,
            dest=pdf_buffer,
            encoding="utf-8"
        )
    except Exception as e:
        raise ExportError(f"Failed to generate PDF: {e}") from e

    if result.err:
        raise ExportError("Failed to generate PDF")

    return pdf_buffer.getvalue()


def content_disposition(filename: str) -> str:
    """Attachment header safe for any invoice number (RFC 6266 / 5987)."""
    ascii_name = re.sub(r'[^A-Za-z0-9._-]', "_", filename)
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename, safe='')}"


def render_invoice_html(invoice: Invoice) -> str:
    totals = invoice_totals(invoice)

    def money(amount):
        return format_money(amount, invoice.currency)

    template = templates.get_template("invoice.html")
    return template.render(
        invoice=invoice,
        lines=[
            {"item": item, "rate": money(item.rate), "amount": money(line_amount(item))}
            for item in invoice.items
        ],
        subtotal=money(totals.subtotal),
        vat=money(totals.vat),
        discount=money(invoice.discount),
        shipping=money(invoice.shipping),
        total=money(totals.total),
    )


def draft_view(invoice: Invoice) -> DraftView:
    totals = invoice_totals(invoice)
    return DraftView(
        invoice=invoice,
        totals=totals,
        formatted=FormattedTotals(
            subtotal=format_money(totals.subtotal, invoice.currency),
            vat=format_money(totals.vat, invoice.currency),
            total=format_money(totals.total, invoice.currency),
        ),
    )


def invoice_summary(invoice: Invoice) -> InvoiceSummary:
    total = invoice_totals(invoice).total
    return InvoiceSummary(
        invoiceNo=invoice.invoiceNo,
        clientName=invoice.clientName,
        invoiceDate=invoice.invoiceDate,
        dueDate=invoice.dueDate,
        paymentStatus=invoice.paymentStatus,
        currency=invoice.currency,
        total=total,
        totalFormatted=format_money(total, invoice.currency),
    )


# -------------------------------
# Workspace wiring
# -------------------------------

_workspace: Optional[Workspace] = None
_workspace_lock = threading.Lock()


def get_workspace() -> Workspace:
    global _workspace
    with _workspace_lock:
        if _workspace is None:
            store = KeyValueStore(FileMedium(Path(config.DATA_DIR)))
            _workspace = Workspace(store, remote_from_env())
    return _workspace


app = FastAPI(title="Invoice Builder")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("%s %s", request.method, request.url)
    response = await call_next(request)
    logger.info("Status code: %s", response.status_code)
    return response


@app.get("/state", response_model=StateView)
def get_state(ws: Workspace = Depends(get_workspace)):
    current = ws.state
    return StateView(profile=current.profile, currency=current.currency, draft=draft_view(current.draft))


# -------------------------------
# Profile & currency
# -------------------------------

@app.get("/profile", response_model=CompanyProfile)
def get_profile(ws: Workspace = Depends(get_workspace)):
    return ws.state.profile


@app.put("/profile", response_model=StateView)
def put_profile(profile: CompanyProfile, ws: Workspace = Depends(get_workspace)):
    current = ws.apply(transitions.update_profile, profile)
    return StateView(profile=current.profile, currency=current.currency, draft=draft_view(current.draft))


@app.post("/profile/logo", response_model=CompanyProfile)
async def upload_logo(logo: UploadFile = File(...), ws: Workspace = Depends(get_workspace)):
    content_type = logo.content_type or ""
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=415, detail="Logo must be an image")

    data = await logo.read()
    logo_url = f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"
    return ws.apply(transitions.set_logo, logo_url).profile


@app.put("/currency", response_model=DraftView)
def put_currency(payload: CurrencyUpdate, ws: Workspace = Depends(get_workspace)):
    return draft_view(ws.apply(transitions.set_currency, payload.currency).draft)


# -------------------------------
# Draft
# -------------------------------

@app.get("/draft", response_model=DraftView)
def get_draft(ws: Workspace = Depends(get_workspace)):
    return draft_view(ws.state.draft)


@app.patch("/draft", response_model=DraftView)
def patch_draft(changes: DraftUpdate, ws: Workspace = Depends(get_workspace)):
    edits = changes.model_dump(exclude_unset=True, exclude_none=True)
    return draft_view(ws.apply(transitions.update_draft, edits).draft)


@app.post("/draft/new", response_model=DraftView)
def start_new_draft(ws: Workspace = Depends(get_workspace)):
    return draft_view(ws.apply(transitions.new_draft).draft)


@app.post("/draft/items", response_model=DraftView)
def post_item(item: Optional[LineItem] = None, ws: Workspace = Depends(get_workspace)):
    return draft_view(ws.apply(transitions.add_item, item).draft)


@app.patch("/draft/items/{index}", response_model=DraftView)
def patch_item(index: int, changes: ItemUpdate, ws: Workspace = Depends(get_workspace)):
    try:
        current = ws.apply(transitions.update_item, index, changes.model_dump(exclude_unset=True, exclude_none=True))
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return draft_view(current.draft)


@app.delete("/draft/items/{index}", response_model=DraftView)
def delete_item(index: int, ws: Workspace = Depends(get_workspace)):
    try:
        current = ws.apply(transitions.remove_item, index)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return draft_view(current.draft)


# -------------------------------
# Saved invoices
# -------------------------------

@app.get("/invoices", response_model=List[InvoiceSummary])
def list_invoices(q: str = "", ws: Workspace = Depends(get_workspace)):
    return [invoice_summary(invoice) for invoice in repository.search(ws.state.collection, q)]


@app.post("/invoices", response_model=InvoiceSummary)
def save_invoice(background_tasks: BackgroundTasks, ws: Workspace = Depends(get_workspace)):
    current = ws.apply(transitions.save_draft)
    saved = current.collection[0]
    logger.info("Saved invoice %s", saved.invoiceNo)
    background_tasks.add_task(push_invoice, ws.remote, saved)
    return invoice_summary(saved)


@app.get("/invoices/{invoice_no}", response_model=DraftView)
def get_invoice(invoice_no: str, ws: Workspace = Depends(get_workspace)):
    record = repository.find_by_key(ws.state.collection, invoice_no)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Invoice {invoice_no} not found")
    return draft_view(record)


@app.post("/invoices/{invoice_no}/open", response_model=DraftView)
def open_invoice(invoice_no: str, ws: Workspace = Depends(get_workspace)):
    try:
        current = ws.apply(transitions.open_invoice, invoice_no)
    except InvoiceNotFound:
        raise HTTPException(status_code=404, detail=f"Invoice {invoice_no} not found")
    return draft_view(current.draft)


@app.delete("/invoices/{invoice_no}", status_code=204)
def delete_invoice(invoice_no: str, background_tasks: BackgroundTasks, ws: Workspace = Depends(get_workspace)):
    ws.apply(transitions.delete_invoice, invoice_no)
    background_tasks.add_task(remove_invoice, ws.remote, invoice_no)


# -------------------------------
# Preview & export
# -------------------------------

@app.post("/invoice-preview", response_class=HTMLResponse)
async def invoice_preview(ws: Workspace = Depends(get_workspace)):
    return render_invoice_html(ws.state.draft)


@app.post("/generate-invoice")
async def generate_invoice(ws: Workspace = Depends(get_workspace)):
    invoice = ws.state.draft
    html_content = render_invoice_html(invoice)
    try:
        pdf = generate_pdf(html_content)
    except ExportError as e:
        logger.error("PDF export of %s failed: %s", invoice.invoiceNo, e)
        raise HTTPException(status_code=500, detail="Could not export the invoice to PDF. Your invoice is unchanged, please try again.")

    return StreamingResponse(
        BytesIO(pdf),
        media_type="application/pdf",
        headers={
            "Content-Disposition": content_disposition(f"{invoice.invoiceNo or 'invoice'}.pdf")
        }
    )
