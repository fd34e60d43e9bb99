import os
import json
import yaml
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import Environment, FileSystemLoader

from matter_billing.config import BillingAppConfig, setup_logging, config as default_config
from matter_billing.modules.models import Invoice, InvoiceFinancials, Payment, TimesheetSummary
from matter_billing.services.api_client import BillingApiClient
from matter_billing.services.export_service import ExportService
from matter_billing.services.financials_service import FinancialsService
from matter_billing.services.view_model_service import ViewModelService

logger = logging.getLogger(__name__)


class DecimalEncoder(json.JSONEncoder):
    def default(self, o):
        if isinstance(o, Decimal): return float(o)
        if hasattr(o, 'model_dump'): return o.model_dump()
        return super(DecimalEncoder, self).default(o)


def sanitize_context_for_export(context):
    return json.loads(json.dumps(context, cls=DecimalEncoder))


def load_snapshot(path: Union[str, os.PathLike]) -> Dict[str, Any]:
    """Reads an offline snapshot: YAML/JSON with invoice, summary, splits and payments keys."""
    with open(path, 'r') as f:
        raw = yaml.safe_load(f) or {}
    if "invoice" not in raw:
        raise ValueError(f"Snapshot {path} has no 'invoice' section")
    return {
        "invoice": Invoice.model_validate(raw["invoice"]),
        "summary": TimesheetSummary.model_validate(raw.get("summary") or {}),
        "splits": [Invoice.model_validate(s) for s in raw.get("splits") or []],
        "payments": [Payment.model_validate(p) for p in raw.get("payments") or []],
    }


class InvoiceController:
    """Orchestrates fetch -> compute -> render across the service layers."""

    def __init__(self, config: BillingAppConfig, api_client: Optional[BillingApiClient] = None):
        self.config = config
        self.api_client = api_client
        self.financials_service = FinancialsService(config, api_client)
        self.view_model_service = ViewModelService(config)
        self.export_service = ExportService(config.business_rules.currency.default_currency)
        self.env = Environment(
            loader=FileSystemLoader(str(config.templates_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def from_api(self, invoice_id: int):
        """Returns (financials, summary) for a live invoice."""
        if self.api_client is None:
            raise ValueError("No API client configured")
        invoice, summary, splits, payments = self.financials_service.fetch(invoice_id)
        financials = self.financials_service.calculate(invoice, summary, splits, payments)
        return financials, summary

    def from_snapshot(self, path: Union[str, os.PathLike]):
        snap = load_snapshot(path)
        financials = self.financials_service.calculate(
            snap["invoice"], snap["summary"], snap["splits"], snap["payments"]
        )
        return financials, snap["summary"]

    def render(self, financials: InvoiceFinancials, summary: Optional[TimesheetSummary] = None) -> str:
        entries = summary.timesheet_entries if summary else []
        context = self.view_model_service.build_context(financials, entries)
        return self.env.get_template("summary.txt.j2").render(context)

    def write_sidecar(self, financials: InvoiceFinancials, summary: Optional[TimesheetSummary] = None) -> Path:
        """Dumps the computed context next to other outputs as YAML, for audit."""
        entries = summary.timesheet_entries if summary else []
        context = self.view_model_service.build_context(financials, entries)
        context["raw_totals"] = financials.totals.model_dump()
        os.makedirs(self.config.output_dir, exist_ok=True)
        safe_id = str(financials.invoice.invoice_number or financials.invoice.id).replace('/', '_')
        out_path = self.config.output_dir / f"{safe_id}.yaml"
        with open(out_path, 'w') as f:
            yaml.dump(sanitize_context_for_export(context), f, sort_keys=False, allow_unicode=True)
        logger.info(f"Wrote {out_path}")
        return out_path

    def export(self, summary: TimesheetSummary, kind: str, fmt: str) -> str:
        entries = summary.timesheet_entries if kind == "timesheets" else summary.expense_entries
        return self.export_service.export(kind, fmt, entries)


def build_controller(config: Optional[BillingAppConfig] = None, offline: bool = False) -> InvoiceController:
    config = config or default_config
    setup_logging(config)
    client = None if offline else BillingApiClient.from_config(config)
    return InvoiceController(config, client)
