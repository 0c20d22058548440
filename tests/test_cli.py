"""Flask CLI commands, run with the app's CLI runner."""

import json

from conftest import at


def test_backup_export_and_import(app, state, tmp_path):
    runner = app.test_cli_runner()
    state.sales.add_series("Florals")
    path = tmp_path / "backup.json"

    result = runner.invoke(args=["store", "export-backup", str(path)])
    assert result.exit_code == 0, result.output
    assert json.loads(path.read_text(encoding="utf-8"))["series"][0]["name"] == "Florals"

    state.sales.remove_series(state.sales.series[0].id)
    result = runner.invoke(args=["store", "import-backup", str(path)])
    assert result.exit_code == 0, result.output
    assert [s.name for s in state.sales.series] == ["Florals"]


def test_import_bad_backup(app, tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{nope", encoding="utf-8")
    result = app.test_cli_runner().invoke(args=["store", "import-backup", str(path)])
    assert result.exit_code != 0
    assert "Import failed" in result.output


def test_events_list_rollup_and_csv(app, state, tmp_path):
    evt = state.events.start_event("Spring Market", now=at("10:00"))
    state.sales.add_cart_line("pt-sticker", qty=2)
    state.sales.create_sale_from_cart(now=at("10:05"))
    runner = app.test_cli_runner()

    result = runner.invoke(args=["events", "list"])
    assert result.exit_code == 0
    assert f"* {evt.id}  Spring Market  [open]" in result.output

    result = runner.invoke(args=["events", "rollup", evt.id])
    assert result.exit_code == 0, result.output
    assert "Gross: 6.00" in result.output

    path = tmp_path / "sales.csv"
    result = runner.invoke(args=["events", "export-csv", evt.id, str(path)])
    assert result.exit_code == 0, result.output
    assert path.read_text(encoding="utf-8").count("\n") == 2


def test_rollup_unknown_event(app):
    result = app.test_cli_runner().invoke(args=["events", "rollup", "evt-nope"])
    assert result.exit_code != 0
    assert "event not found" in result.output
