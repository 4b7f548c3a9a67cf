import json
import sys

import pandas as pd

from client_integrity import import_clients as ic
from client_integrity.errors import StorePersistenceError
from client_integrity.models import ClientRecord, Relationship
from client_integrity.reconciler import ImportReconciler
from client_integrity.store import InMemoryClientStore, JsonClientStore


class FailingWriteStore(InMemoryClientStore):
    def upsert_all(self, records):
        raise StorePersistenceError("disk full")


def _sequential_ids():
    counter = iter(range(1, 1000))

    def next_id(taken):
        candidate = f"id-{next(counter)}"
        while candidate in taken:
            candidate = f"id-{next(counter)}"
        return candidate

    return next_id


def test_end_to_end_scenario():
    rows = [
        {"First": "A", "Last": "B", "Email": "a@b.com"},
        {"First": "A", "Last": "B", "Email": "a@b.com"},
        {"Name": "C D"},
    ]
    report = ImportReconciler().reconcile(rows, [])
    assert report.added_count == 2
    assert report.skipped_count == 1
    assert len(report.merged_store) == 2
    second = report.merged_store[1]
    assert (second.first_name, second.last_name) == ("C", "D")
    assert report.diagnostics == ["Row 3: Skipped duplicate of row 2 (matched on: email, name)"]


def test_new_records_get_fresh_ids_and_empty_collections():
    existing = [ClientRecord(id="id-1", first_name="Old", last_name="Client")]
    reconciler = ImportReconciler(id_factory=_sequential_ids())
    report = reconciler.reconcile([{"Name": "New Person"}], existing)
    added = report.added[0]
    assert added.id == "id-2"
    assert added.relationships == []
    assert added.documents == []
    assert added.sessions == 0
    assert report.merged_store[0] is existing[0]


def test_first_occurrence_in_file_wins():
    rows = [
        {"First Name": "Ann", "Last Name": "Lee", "Email": "ann1@example.com"},
        {"First Name": "ann", "Last Name": "LEE", "Email": "other@example.com"},
    ]
    report = ImportReconciler().reconcile(rows, [])
    assert (report.added_count, report.skipped_count) == (1, 1)
    assert report.added[0].email == "ann1@example.com"
    assert report.rows[1].skipped_reason == "duplicate of row 2 (matched on: name)"


def test_existing_store_checked_before_batch():
    existing = [ClientRecord(id="c1", first_name="Ann", last_name="Lee")]
    report = ImportReconciler().reconcile([{"Name": "Ann Lee"}], existing)
    assert report.added_count == 0
    assert report.diagnostics == [
        "Row 2: Skipped duplicate of existing client 'Ann Lee' (matched on: name)"
    ]


def test_skipped_rows_do_not_block_later_rows():
    existing = [ClientRecord(id="c1", first_name="Ann", last_name="Lee", email="x@example.com")]
    rows = [
        {"First": "Zed", "Last": "Ray", "Email": "x@example.com"},
        {"First": "Zed", "Last": "Ray", "Email": "zed@example.com"},
    ]
    report = ImportReconciler().reconcile(rows, existing)
    assert (report.added_count, report.skipped_count) == (1, 1)
    assert report.added[0].email == "zed@example.com"


def test_reimport_is_idempotent():
    rows = [
        {"First": "Ann", "Last": "Lee", "Email": "ann@example.com"},
        {"First": "Bob", "Last": "Ray"},
        {"Email": "cat.ng@example.com", "DOB": "03/04/2001"},
    ]
    store = InMemoryClientStore()
    first = ic.import_into_store(store, rows)
    assert (first.added_count, first.skipped_count) == (3, 0)
    second = ic.import_into_store(store, rows)
    assert (second.added_count, second.skipped_count) == (0, 3)
    assert len(store.list()) == 3


def test_warnings_do_not_reject_rows():
    rows = [{"First": "Ann", "Last": "Lee", "Email": "bad", "Phone": "x@y.com", "DOB": "soon"}]
    report = ImportReconciler().reconcile(rows, [])
    assert report.added_count == 1
    assert report.added[0].email == ""
    assert report.added[0].phone == ""
    assert report.added[0].date_of_birth == ""
    assert len(report.diagnostics) == 3


def test_non_row_input_is_fatal():
    report = ImportReconciler().reconcile("not rows", [])
    assert report.fatal
    assert (report.added_count, report.skipped_count) == (0, 0)
    assert len(report.diagnostics) == 1

    mixed = ImportReconciler().reconcile([{"Name": "Ann"}, ["bad"]], [])
    assert mixed.fatal
    assert mixed.rows == []


def test_persistence_failure_changes_nothing():
    existing = ClientRecord(id="c1", first_name="Old", last_name="Client")
    store = FailingWriteStore([existing])
    report = ic.import_into_store(store, [{"Name": "New Person"}])
    assert report.fatal
    assert report.added_count == 0
    assert report.diagnostics == ["Failed to save imported clients: disk full"]
    assert [c.id for c in store.list()] == ["c1"]


def test_dry_run_does_not_write():
    store = InMemoryClientStore()
    report = ic.import_into_store(store, [{"Name": "Ann Lee"}], dry_run=True)
    assert report.added_count == 1
    assert store.list() == []


def test_import_file_reports_unparseable_file(tmp_path):
    broken = tmp_path / "clients.xlsx"
    broken.write_text("this is not a workbook", encoding="utf-8")
    store = JsonClientStore(tmp_path / "clients.json")
    report = ic.import_file(str(broken), store)
    assert report.fatal
    assert report.diagnostics[0].startswith("Failed to parse file")
    assert not (tmp_path / "clients.json").exists()


def test_import_file_keeps_existing_relationships(tmp_path):
    store_path = tmp_path / "clients.json"
    store = JsonClientStore(store_path)
    store.upsert_all(
        [
            ClientRecord(
                id="c1",
                first_name="Ann",
                last_name="Lee",
                relationships=[Relationship(related_client_id="c2", type="Mum")],
                extra={"archived": False},
            ),
            ClientRecord(id="c2", first_name="Bea", last_name="Lee"),
        ]
    )
    sheet = tmp_path / "clients.csv"
    pd.DataFrame(
        [
            {"Name": "Ann Lee", "Email": "", "Phone": ""},
            {"Name": "Cal Lee", "Email": "cal@example.com", "Phone": "555 0101"},
        ]
    ).to_csv(sheet, index=False)

    report = ic.import_file(str(sheet), store)
    assert (report.added_count, report.skipped_count) == (1, 1)

    saved = {c.id: c for c in store.list()}
    assert len(saved) == 3
    assert saved["c1"].relationships == [Relationship(related_client_id="c2", type="Mum")]
    assert saved["c1"].extra == {"archived": False}
    payload = json.loads(store_path.read_text(encoding="utf-8"))
    assert payload[0]["relationships"] == [{"relatedClientId": "c2", "type": "Mum"}]


def test_main_writes_report(tmp_path, monkeypatch, capsys):
    sheet = tmp_path / "clients.csv"
    pd.DataFrame(
        [
            {"Name": "John", "Email": "Doe", "Phone": "john@x.com"},
            {"Name": "Jane Roe", "Email": "jane@x.com", "Phone": "01234 567890"},
        ]
    ).to_csv(sheet, index=False)
    store_path = tmp_path / "clients.json"
    out_dir = tmp_path / "out"

    monkeypatch.setattr(
        sys,
        "argv",
        [
            "client-import",
            "--rows-file",
            str(sheet),
            "--store",
            str(store_path),
            "--out-dir",
            str(out_dir),
        ],
    )
    assert ic.main() == 0

    printed = json.loads(capsys.readouterr().out)
    assert printed["addedCount"] == 2
    assert printed["fatal"] is False
    assert (out_dir / "import_report.json").exists()
    assert (out_dir / "row_confidence.csv").exists()
    names = sorted(c.full_name for c in JsonClientStore(store_path).list())
    assert names == ["Jane Roe", "John Doe"]


def test_main_fails_on_unreadable_file(tmp_path, monkeypatch, capsys):
    broken = tmp_path / "clients.xlsx"
    broken.write_text("garbage", encoding="utf-8")
    monkeypatch.setattr(
        sys,
        "argv",
        ["client-import", "--rows-file", str(broken), "--store", str(tmp_path / "c.json")],
    )
    assert ic.main() == 1
    assert json.loads(capsys.readouterr().out)["fatal"] is True


def test_main_audits_duplicates(tmp_path, monkeypatch, capsys):
    store_path = tmp_path / "clients.json"
    JsonClientStore(store_path).upsert_all(
        [
            ClientRecord(id="1", first_name="Ann", last_name="Lee"),
            ClientRecord(id="2", first_name="ANN", last_name="lee"),
        ]
    )
    monkeypatch.setattr(
        sys, "argv", ["client-import", "--store", str(store_path), "--audit-duplicates"]
    )
    assert ic.main() == 0
    groups = json.loads(capsys.readouterr().out)
    assert groups[0]["keep"]["id"] == "1"
    assert [d["id"] for d in groups[0]["duplicates"]] == ["2"]


def test_diagnostics_follow_row_order():
    rows = [
        {"First": "Ann", "Last": "Lee"},
        {"First": "Ann", "Last": "Lee"},
        {"First": "Bob", "Last": "Ray", "Email": "bad"},
    ]
    report = ImportReconciler().reconcile(rows, [])
    assert report.diagnostics == [
        "Row 3: Skipped duplicate of row 2 (matched on: name)",
        "Row 4: Invalid email format 'bad'",
    ]


def test_skip_follows_the_row_warnings():
    rows = [
        {"First": "Ann", "Last": "Lee"},
        {"First": "Ann", "Last": "Lee", "Phone": "call me"},
    ]
    report = ImportReconciler().reconcile(rows, [])
    assert report.diagnostics == [
        "Row 3: Invalid phone format 'call me'",
        "Row 3: Skipped duplicate of row 2 (matched on: name)",
    ]
