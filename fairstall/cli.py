# Flask CLI commands for backups and event reports.
#
# Run from the project root (FLASK_APP=fairstall:create_app):
# - flask store export-backup backup.json
#   Write the catalog, cart and sales ledger as a JSON backup.
# - flask store import-backup backup.json
#   Replace the catalog, cart and sales ledger from a JSON backup.
# - flask events list
#   List events, oldest first; the current one is marked with *.
# - flask events rollup EVENT_ID
#   Print the grouped item lines and gross total of one event.
# - flask events export-csv EVENT_ID sales.csv
#   Write the event's sales as CSV rows.

import click
from flask import current_app
from flask.cli import with_appcontext

from fairstall.exporters import build_rows_for_event, display_zone, to_csv
from fairstall.records import RecordNotFound
from fairstall.rollup import compute_rollup, sales_in_window
from fairstall.state import get_state
from fairstall.storage import StorageError


def _state():
    try:
        return get_state()
    except StorageError as e:
        raise click.ClickException(str(e))


def _event(state, event_id):
    try:
        return state.events.require_event(event_id)
    except RecordNotFound as e:
        raise click.ClickException(str(e))


@click.group('store')
def store_group():
    """Catalog and sales ledger backups."""


@store_group.command('export-backup')
@click.argument('path', type=click.Path(dir_okay=False, writable=True))
@with_appcontext
def export_backup(path):
    """Write a JSON backup of the store to PATH."""
    state = _state()
    with state.lock:
        text = state.sales.export_json()
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(text)
    click.echo(f"PASS Backup written to {path}")


@store_group.command('import-backup')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_backup(path):
    """Replace the store with the JSON backup in PATH."""
    with open(path, encoding="utf-8") as fh:
        text = fh.read()

    state = _state()
    try:
        with state.lock:
            ok = state.sales.import_json(text)
    except StorageError as e:
        raise click.ClickException(f"Backup read but not saved: {e}")
    if not ok:
        raise click.ClickException("Import failed (bad JSON)")
    click.echo(f"PASS Imported {len(state.sales.product_types)} product types, {len(state.sales.sales)} sales")


@click.group('events')
def events_group():
    """Event inspection and reports."""


@events_group.command('list')
@with_appcontext
def list_events():
    """List all events."""
    state = _state()
    current = state.events.current_event
    if not state.events.events:
        click.echo("No events yet.")
        return

    for evt in state.events.events:
        marker = "*" if current and current.id == evt.id else " "
        status = "open" if evt.is_active else "ended"
        click.echo(f"{marker} {evt.id}  {evt.name}  [{status}]  {evt.date or '-'}  {evt.location or '-'}")


@events_group.command('rollup')
@click.argument('event_id')
@with_appcontext
def rollup(event_id):
    """Print the rollup of EVENT_ID."""
    state = _state()
    with state.lock:
        evt = _event(state, event_id)
        snapshot = compute_rollup(evt, state.sales.sales)
        fabric_names = state.sales.fabric_names()

    click.echo(f"{evt.name} ({len(snapshot.lines)} line(s))")
    for line in snapshot.lines:
        fabric = fabric_names.get(line.fabric_id or "", "")
        label = f"{line.name} / {fabric}" if fabric else line.name
        click.echo(f"  {line.qty:>4} x {label:<40} {line.unit_price:>8.2f} {line.revenue:>10.2f}")
    click.echo(f"Gross: {snapshot.gross:.2f}")


@events_group.command('export-csv')
@click.argument('event_id')
@click.argument('path', type=click.Path(dir_okay=False, writable=True))
@with_appcontext
def export_csv(event_id, path):
    """Write the sales of EVENT_ID to PATH as CSV."""
    state = _state()
    with state.lock:
        evt = _event(state, event_id)
        rows = build_rows_for_event(
            evt,
            sales_in_window(evt, state.sales.sales),
            state.sales.fabric_names(),
            display_zone(current_app.config.get("DISPLAY_TIMEZONE")),
        )

    with open(path, "w", encoding="utf-8", newline="") as fh:
        fh.write(to_csv(rows))
    click.echo(f"PASS {len(rows)} row(s) written to {path}")


def register_commands(app):
    app.cli.add_command(store_group)
    app.cli.add_command(events_group)
