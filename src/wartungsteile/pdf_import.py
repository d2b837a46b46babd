"""Multi-machine PDF import wizard.

Steps::

    upload -> processing -> review -> batch-creating -> complete
       ^          |           |  ^          |
       +----------+           |  +----------+   (failure)
       +----------------------+                 (reset)

The backend extracts the machine records from the work-order PDF. The wizard
lets the user pick the records to create and then creates them one after the
other, each record with its own outcome, so a failing record never stops the
rest of the batch.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from wartungsteile import cache, config
from wartungsteile.client import BackendClient
from wartungsteile.errors import ApiError, ClientValidationError
from wartungsteile.machines import MachineService
from wartungsteile.models import BatchCreateItem, BatchCreateResult, ExtractedMachine, ExtractionResult
from wartungsteile.pdf_files import PdfFile, inspect_pdf

logger = logging.getLogger(__name__)


class Step(str, enum.Enum):
    UPLOAD = "upload"
    PROCESSING = "processing"
    REVIEW = "review"
    BATCH_CREATING = "batch-creating"
    COMPLETE = "complete"


@dataclass
class BatchProgress:
    current: int = 0
    total: int = 0
    status: str = ""

    @property
    def percentage(self) -> int:
        return int(self.current * 100 / self.total) if self.total else 0

    def to_dict(self) -> Dict[str, Any]:
        return {"current": self.current, "total": self.total, "status": self.status, "percentage": self.percentage}


def _processing_error(ex: ApiError) -> str:
    if ex.is_client_error:
        reason = None
        if isinstance(ex.payload, dict):
            reason = (ex.payload.get("metadata") or {}).get("error")
        return f"Verarbeitungsfehler: {reason or ex.detail or ex.message}"
    return config.ERROR_MESSAGES["network"]


class ImportWizard:
    """State of one import run for one user session.

    Parameters
    ----------
    client:
        Backend transport, used for the extraction and the magazine updates.
    machines:
        Creates the machine records.
    queries:
        The machines list is invalidated once a batch completes.
    delay, sleep:
        Pause between two records of a batch and the coroutine used for it.
    """

    def __init__(
        self,
        client: BackendClient,
        machines: MachineService,
        queries: cache.QueryCache,
        delay: float = config.BATCH_CREATE_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.client = client
        self.machines = machines
        self.queries = queries
        self.delay = delay
        self._sleep = sleep
        self._today = today
        self.reset()

    def reset(self) -> None:
        """Back to an empty upload step ("Neue PDF verarbeiten")."""
        self.step = Step.UPLOAD
        self.file: Optional[PdfFile] = None
        self.result: Optional[ExtractionResult] = None
        self.selected: Set[str] = set()
        self.errors: List[str] = []
        self.progress = BatchProgress()
        self.batch_result: Optional[BatchCreateResult] = None

    # upload

    def select_file(self, name: str, content: bytes, content_type: str) -> bool:
        if self.step != Step.UPLOAD:
            self.reset()
        try:
            self.file = inspect_pdf(name, content, content_type)
        except ClientValidationError as ex:
            self.file = None
            self.errors = list(ex.errors)
            return False
        self.errors = []
        logger.info("PDF %s selected (%d pages, %d bytes)", name, self.file.page_count, self.file.size)
        return True

    # processing

    async def process(self) -> Step:
        if self.step != Step.UPLOAD or self.file is None:
            self.errors = ["Bitte wählen Sie eine PDF-Datei aus."]
            return self.step

        self.step = Step.PROCESSING
        self.errors = []
        try:
            data = await self.client.post(
                "/Pdf/extract-machines",
                files={"pdfFile": self.file.multipart()},
                timeout=config.UPLOAD_TIMEOUT_SECONDS,
            )
        except ApiError as ex:
            logger.warning("Extraction of %s failed: %s", self.file.name, ex)
            self.errors = [_processing_error(ex)]
            self.step = Step.UPLOAD
            return self.step

        result = ExtractionResult.from_api(data if isinstance(data, dict) else {})
        if not result.success or not result.extracted_machines:
            self.errors = ["Keine Maschinen in der PDF gefunden."]
            self.step = Step.UPLOAD
            return self.step

        self.result = result
        self.select_all_valid()
        self.step = Step.REVIEW
        logger.info(
            "Extracted %d machines from %s, %d preselected",
            len(result.extracted_machines),
            self.file.name,
            len(self.selected),
        )
        return self.step

    # review

    def _record(self, machine_number: str) -> Optional[ExtractedMachine]:
        if self.result is None:
            return None
        for machine in self.result.extracted_machines:
            if machine.machine_number == machine_number:
                return machine
        return None

    def toggle(self, machine_number: str) -> bool:
        """Flip the selection of one record; returns whether it is selected now.

        Invalid and duplicate records cannot be selected.
        """
        record = self._record(machine_number)
        if self.step != Step.REVIEW or record is None or not record.selectable:
            return False
        if machine_number in self.selected:
            self.selected.discard(machine_number)
            return False
        self.selected.add(machine_number)
        return True

    def select_all_valid(self) -> None:
        if self.result is None:
            return
        self.selected = {m.machine_number for m in self.result.extracted_machines if m.selectable}

    def clear_selection(self) -> None:
        self.selected = set()

    def selected_machines(self) -> List[ExtractedMachine]:
        if self.result is None:
            return []
        return [m for m in self.result.extracted_machines if m.machine_number in self.selected]

    # batch-creating

    async def _create_one(self, machine: ExtractedMachine, installation_date: str) -> BatchCreateItem:
        try:
            machine_id = await self.machines.create_raw(machine.create_payload(installation_date))
            if machine.has_magazine_data:
                await self.client.put(f"/Machines/{machine_id}/magazine", json=machine.magazine_payload())
        except ApiError as ex:
            logger.warning("Creating machine %s failed: %s", machine.machine_number, ex)
            return self._failed(machine, ex.detail or ex.message)
        except Exception as ex:
            logger.exception("Creating machine %s failed unexpectedly", machine.machine_number)
            return self._failed(machine, str(ex) or config.ERROR_MESSAGES["unknown"])
        return BatchCreateItem(
            machine_number=machine.machine_number,
            success=True,
            machine_id=machine_id,
            processed_at=datetime.now(timezone.utc).isoformat(),
        )

    @staticmethod
    def _failed(machine: ExtractedMachine, error: str) -> BatchCreateItem:
        return BatchCreateItem(
            machine_number=machine.machine_number,
            success=False,
            error=error,
            processed_at=datetime.now(timezone.utc).isoformat(),
        )

    async def create_selected(self) -> Optional[BatchCreateResult]:
        """Create the selected machines one after another.

        A failing record is reported in its item and the batch goes on. Only a
        failure of the loop itself returns to the review step.
        """
        machines = self.selected_machines()
        if self.step != Step.REVIEW or not machines:
            return None

        self.step = Step.BATCH_CREATING
        self.errors = []
        self.progress = BatchProgress(0, len(machines), "Starte Batch-Erstellung...")
        installation_date = self._today().isoformat()
        t0 = time.perf_counter()
        results: List[BatchCreateItem] = []
        try:
            for i, machine in enumerate(machines):
                self.progress = BatchProgress(i + 1, len(machines), f"Erstelle Maschine {machine.machine_number}...")
                results.append(await self._create_one(machine, installation_date))
                if i < len(machines) - 1:
                    await self._sleep(self.delay)
        except Exception as ex:
            logger.exception("Batch creation aborted after %d of %d machines", len(results), len(machines))
            if any(r.success for r in results):
                self.queries.invalidate(cache.MACHINES)
            self.errors = [f"Batch-Erstellung fehlgeschlagen: {ex}"]
            self.step = Step.REVIEW
            return None

        succeeded = sum(1 for r in results if r.success)
        self.batch_result = BatchCreateResult(
            total_machines=len(machines),
            successfully_created=succeeded,
            failed=len(results) - succeeded,
            results=results,
            processing_time=time.perf_counter() - t0,
        )
        self.step = Step.COMPLETE
        self.queries.invalidate(cache.MACHINES)
        logger.info("Batch creation finished: %s", self.batch_result.summary)
        return self.batch_result

    def to_dict(self) -> Dict[str, Any]:
        result = self.result
        return {
            "step": self.step.value,
            "file": None
            if self.file is None
            else {"name": self.file.name, "size": self.file.size, "pageCount": self.file.page_count},
            "errors": list(self.errors),
            "extraction": None
            if result is None
            else {
                "totalMachinesFound": result.total_machines_found,
                "validMachines": result.valid_machines,
                "duplicateMachines": result.duplicate_machines,
                "ocrEngine": result.ocr_engine,
                "machines": [m.to_dict() for m in result.extracted_machines],
            },
            "selected": sorted(self.selected),
            "progress": self.progress.to_dict(),
            "batchResult": None if self.batch_result is None else self.batch_result.to_dict(),
        }
