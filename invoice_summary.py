#!/usr/bin/env -S uv run --script

import sys
import argparse
import questionary
from matter_billing.invoice_controller import build_controller
from matter_billing.modules.errors import ApiError
from matter_billing.services.edit_session import TimesheetEditSession


def fetch_with_retry(controller, invoice_id):
    while True:
        try:
            return controller.from_api(invoice_id)
        except ApiError as e:
            print(f"Could not load invoice {invoice_id}: {e}")
            if not questionary.confirm("Retry?", default=True).ask():
                return None


def describe_row(key, row):
    marker = "" if isinstance(key, int) else "  [no id, local only]"
    return f"{row.lawyer_name} ({row.date or '--'}) {row.hours}h @ {row.hourly_rate}{marker}"


def handle_edit(controller, financials, summary):
    """Interactive billed-hours / rate editing for a draft invoice."""
    invoice = financials.invoice
    if not invoice.is_draft:
        print(f"Invoice {invoice.invoice_number or invoice.id} is {invoice.status.value}; only drafts can be edited.")
        return financials, summary
    if controller.api_client is None:
        print("Editing needs a live invoice, not a snapshot.")
        return financials, summary

    session = TimesheetEditSession.for_invoice(financials, summary, controller.api_client)
    rows = session.rows

    while True:
        choices = [questionary.Choice(describe_row(k, r), value=k) for k, r in rows.items()]
        choices.append(questionary.Choice("Done", value="__done__"))
        key = questionary.select("Edit which entry?", choices=choices).ask()
        if key is None or key == "__done__":
            break

        row = rows[key]
        hours = questionary.text("Billed hours:", default=str(row.hours)).ask()
        rate = questionary.text("Hourly rate:", default=str(row.hourly_rate)).ask()
        try:
            if hours: session.set_billed_hours(key, hours)
            if rate: session.set_hourly_rate(key, rate)
        except ValueError as e:
            print(f"Ignored: {e}")

    if not session.pending:
        return financials, summary

    for row in session.preview_rows():
        print(f"  {row.lawyer_name:<24} {row.hours:>8}h  {row.converted_fees:.2f}")

    if not questionary.confirm(f"Save {len(session.pending)} change(s)?").ask():
        session.discard()
        return financials, summary

    results = session.save_all()
    failed = [k for k, ok in results.items() if not ok]
    print(f"Saved {len(results) - len(failed)} change(s), {len(failed)} failed.")
    for issue in session.issues:
        print(f"  - {issue}")

    # Recompute from the backend so totals reflect what was persisted
    refreshed = fetch_with_retry(controller, invoice.id)
    return refreshed if refreshed else (financials, summary)


def process(controller, financials, summary, args):
    if args.edit:
        financials, summary = handle_edit(controller, financials, summary)
    if args.export:
        print(controller.export(summary, args.export, args.format))
    else:
        print(controller.render(financials, summary))
    if args.sidecar:
        path = controller.write_sidecar(financials, summary)
        print(f"Wrote sidecar: {path}")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Show invoice financials: fees, expenses, totals and partner shares.")
    parser.add_argument("invoice_ids", nargs="*", type=int, help="Invoice ids to load from the billing backend")
    parser.add_argument("--snapshot", action="append", default=[], help="Offline YAML snapshot(s) to compute from")
    parser.add_argument("--export", choices=["timesheets", "expenses"], help="Print an export table instead of the summary")
    parser.add_argument("--format", choices=["csv", "tsv", "plain"], default="csv", help="Export format")
    parser.add_argument("--sidecar", action="store_true", help="Write the computed context as YAML into output/")
    parser.add_argument("--edit", action="store_true", help="Edit billed hours and rates of a draft invoice")

    args = parser.parse_args()

    if not args.invoice_ids and not args.snapshot:
        parser.print_help()
        sys.exit(1)

    if args.export == "expenses" and args.format == "plain":
        parser.error("plain format is only available for timesheets")

    controller = build_controller(offline=not args.invoice_ids)

    count = 0
    for path in args.snapshot:
        financials, summary = controller.from_snapshot(path)
        if process(controller, financials, summary, args):
            count += 1

    for invoice_id in args.invoice_ids:
        loaded = fetch_with_retry(controller, invoice_id)
        if loaded is None:
            continue
        if process(controller, *loaded, args):
            count += 1

    if controller.api_client is not None:
        controller.api_client.close()

    print(f"\nSummary: Processed {count} invoice(s).")
