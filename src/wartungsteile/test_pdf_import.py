from datetime import date

import httpx
import pytest

from wartungsteile.cache import MACHINES
from wartungsteile.conftest import extraction, json_body, make_pdf, record
from wartungsteile.machines import MachineService
from wartungsteile.pdf_files import NOT_A_PDF, UNREADABLE_PDF, inspect_pdf
from wartungsteile.pdf_import import ImportWizard, Step


@pytest.fixture
def wizard(client, queries, sleeps):
    return ImportWizard(client, MachineService(client, queries), queries, sleep=sleeps, today=lambda: date(2025, 6, 13))


async def _review(backend, wizard, *records):
    backend.on("POST", "/Pdf/extract-machines", extraction(*records))
    assert wizard.select_file("auftrag.pdf", make_pdf(), "application/pdf")
    assert await wizard.process() is Step.REVIEW


def test_inspect_pdf_reads_pages_and_preview():
    pdf = inspect_pdf("auftrag.pdf", make_pdf(), "application/pdf")
    assert pdf.page_count == 1
    assert "M-100" in pdf.preview


def test_only_pdfs_are_accepted(wizard):
    assert not wizard.select_file("notes.txt", b"hello", "text/plain")
    assert wizard.errors == [NOT_A_PDF]
    assert not wizard.select_file("kaputt.pdf", b"not a pdf at all", "application/pdf")
    assert wizard.errors == [UNREADABLE_PDF]
    assert wizard.file is None


@pytest.mark.anyio
async def test_import_creates_new_machine_and_skips_duplicate(backend, wizard, queries):
    backend.on("POST", "/Machines", "m-1")
    backend.on("PUT", "/Machines/m-1/magazine", 204)
    await _review(
        backend,
        wizard,
        record("M-100", magazineType="LM 1200", materialBarLength=3200, feedChannel="K20"),
        record("M-101", exists=True),
    )

    assert wizard.selected == {"M-100"}
    assert b'name="pdfFile"' in backend.calls_to("POST", "/Pdf/extract-machines")[0].content

    result = await wizard.create_selected()

    assert wizard.step is Step.COMPLETE
    assert result.successfully_created == 1 and result.failed == 0
    posts = backend.calls_to("POST", "/Machines")
    assert len(posts) == 1
    assert json_body(posts[0]) == {"machineNumber": "M-100", "type": "LM 1200", "installationDate": "2025-06-13"}
    assert json_body(backend.calls_to("PUT", "/Machines/m-1/magazine")[0])["materialBarLength"] == 3200
    assert queries.invalidations.count(MACHINES) == 1


@pytest.mark.anyio
async def test_invalid_and_duplicate_records_cannot_be_selected(backend, wizard):
    await _review(backend, wizard, record("M-1"), record("M-2", valid=False), record("M-3", exists=True))

    assert not wizard.toggle("M-2")
    assert not wizard.toggle("M-3")
    assert wizard.selected == {"M-1"}

    wizard.clear_selection()
    assert wizard.toggle("M-1")
    wizard.select_all_valid()
    assert wizard.selected == {"M-1"}


@pytest.mark.anyio
async def test_failures_do_not_stop_the_batch(backend, wizard, sleeps):
    conflict = httpx.Response(409, json={"message": "Maschine existiert bereits"})
    backend.on("POST", "/Machines", "m-1", conflict, "m-3")
    await _review(backend, wizard, record("M-1"), record("M-2"), record("M-3"))

    result = await wizard.create_selected()

    assert [r.success for r in result.results] == [True, False, True]
    assert result.results[1].error == "Maschine existiert bereits"
    assert result.summary == "2 Maschinen erfolgreich erstellt, 1 Fehler"
    assert sleeps.delays == [0.2, 0.2]
    assert wizard.progress.percentage == 100


@pytest.mark.anyio
async def test_unexpected_error_in_one_record_does_not_stop_the_batch(backend, wizard, queries):
    backend.on("POST", "/Machines", "m-1", ValueError("kaputt"), "m-3")
    await _review(backend, wizard, record("M-1"), record("M-2"), record("M-3"))

    result = await wizard.create_selected()

    assert wizard.step is Step.COMPLETE
    assert [r.success for r in result.results] == [True, False, True]
    assert result.results[1].error == "kaputt"
    assert len(backend.calls_to("POST", "/Machines")) == 3
    assert queries.invalidations.count(MACHINES) == 1


@pytest.mark.anyio
async def test_loop_failure_returns_to_review(backend, wizard, queries, monkeypatch):
    backend.on("POST", "/Machines", "m-1")
    await _review(backend, wizard, record("M-1"), record("M-2"))

    async def broken_sleep(delay):
        raise RuntimeError("kaputt")

    monkeypatch.setattr(wizard, "_sleep", broken_sleep)

    assert await wizard.create_selected() is None
    assert wizard.step is Step.REVIEW
    assert wizard.errors == ["Batch-Erstellung fehlgeschlagen: kaputt"]
    assert len(backend.calls_to("POST", "/Machines")) == 1
    assert queries.invalidations.count(MACHINES) == 1


@pytest.mark.anyio
async def test_empty_extraction_goes_back_to_upload(backend, wizard):
    backend.on("POST", "/Pdf/extract-machines", extraction())
    wizard.select_file("auftrag.pdf", make_pdf(), "application/pdf")

    assert await wizard.process() is Step.UPLOAD
    assert wizard.errors == ["Keine Maschinen in der PDF gefunden."]


@pytest.mark.anyio
async def test_processing_errors(backend, wizard):
    backend.on(
        "POST",
        "/Pdf/extract-machines",
        httpx.Response(400, json={"success": False, "metadata": {"error": "Kein Text erkannt"}}),
        500,
    )
    wizard.select_file("auftrag.pdf", make_pdf(), "application/pdf")

    await wizard.process()
    assert wizard.errors == ["Verarbeitungsfehler: Kein Text erkannt"]

    await wizard.process()
    assert wizard.errors == ["Keine Verbindung zum Server. Bitte prüfen Sie Ihre Internetverbindung."]
    assert wizard.step is Step.UPLOAD


@pytest.mark.anyio
async def test_reset_starts_over(backend, wizard):
    await _review(backend, wizard, record("M-1"))
    wizard.reset()
    state = wizard.to_dict()
    assert state["step"] == "upload"
    assert state["extraction"] is None and state["selected"] == []
