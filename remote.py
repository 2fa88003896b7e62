import logging
from dataclasses import dataclass

import requests

import config
from calc import invoice_totals

logger = logging.getLogger(__name__)

TABLE = "invoices"


@dataclass(frozen=True)
class SupabaseRemote:
    url: str
    key: str
    timeout: float = 10

    @property
    def table_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1/{TABLE}"

    @property
    def headers(self) -> dict:
        return {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
        }


@dataclass(frozen=True)
class Unconfigured:
    """No remote service; everything stays in the local store."""


Remote = SupabaseRemote | Unconfigured


def remote_from_env() -> Remote:
    if config.SUPABASE_URL and config.SUPABASE_ANON_KEY:
        logger.info("Remote sync enabled: %s", config.SUPABASE_URL)
        return SupabaseRemote(config.SUPABASE_URL, config.SUPABASE_ANON_KEY, config.REMOTE_TIMEOUT)
    logger.info("Remote sync not configured, using local store only")
    return Unconfigured()


def invoice_row(invoice) -> dict:
    return {
        "invoice_no": invoice.invoiceNo,
        "client_name": invoice.clientName,
        "payment_status": invoice.paymentStatus.value,
        "invoice_date": invoice.invoiceDate or None,
        "due_date": invoice.dueDate or None,
        "currency": invoice.currency,
        "total": invoice_totals(invoice).total,
        "data": invoice.model_dump(mode="json"),
    }


def push_invoice(remote: Remote, invoice) -> bool:
    """Upsert one saved invoice remotely. Failures are logged, never raised."""
    if isinstance(remote, Unconfigured):
        return False
    try:
        response = requests.post(
            remote.table_url,
            headers={**remote.headers, "Prefer": "resolution=merge-duplicates"},
            json=invoice_row(invoice),
            timeout=remote.timeout,
        )
    except requests.RequestException as e:
        logger.warning("Remote push of %s failed: %s", invoice.invoiceNo, e)
        return False

    if not response.ok:
        logger.warning("Remote push of %s rejected (%s): %s",
                       invoice.invoiceNo, response.status_code, response.text)
        return False
    return True


def remove_invoice(remote: Remote, invoice_no: str) -> bool:
    if isinstance(remote, Unconfigured):
        return False
    try:
        response = requests.delete(
            remote.table_url,
            headers=remote.headers,
            params={"invoice_no": f"eq.{invoice_no}"},
            timeout=remote.timeout,
        )
    except requests.RequestException as e:
        logger.warning("Remote delete of %s failed: %s", invoice_no, e)
        return False

    if not response.ok:
        logger.warning("Remote delete of %s rejected (%s): %s",
                       invoice_no, response.status_code, response.text)
        return False
    return True
