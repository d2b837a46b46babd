"""Machine endpoints: list, detail, CRUD, status, maintenance and magazine."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from wartungsteile import cache, config
from wartungsteile.client import BackendClient
from wartungsteile.errors import ClientValidationError, NotFoundError
from wartungsteile.models import (
    Machine,
    MachineDetail,
    MachineStatus,
    MagazineCompleteness,
    magazine_completeness,
    validate_magazine_properties,
)

logger = logging.getLogger(__name__)


def validate_machine(data: Dict[str, Any]) -> List[str]:
    """Form checks for the create and edit pages.

    >>> validate_machine({"number": "M-100", "type": "LM 1200"})
    []
    >>> validate_machine({"number": "M 100", "type": ""})
    ['Maschinennummer darf nur Buchstaben, Ziffern, "-" und "_" enthalten.', 'Maschinentyp ist erforderlich.']
    """
    errors: List[str] = []
    number = (data.get("number") or "").strip()
    if not number:
        errors.append("Maschinennummer ist erforderlich.")
    elif len(number) > config.MACHINE_NUMBER_MAX_LENGTH:
        errors.append(f"Maschinennummer darf höchstens {config.MACHINE_NUMBER_MAX_LENGTH} Zeichen lang sein.")
    elif not config.MACHINE_NUMBER_PATTERN.match(number):
        errors.append('Maschinennummer darf nur Buchstaben, Ziffern, "-" und "_" enthalten.')

    machine_type = (data.get("type") or "").strip()
    if not machine_type:
        errors.append("Maschinentyp ist erforderlich.")
    elif len(machine_type) > config.MACHINE_TYPE_MAX_LENGTH:
        errors.append(f"Maschinentyp darf höchstens {config.MACHINE_TYPE_MAX_LENGTH} Zeichen lang sein.")

    hours = data.get("operatingHours")
    if hours is not None:
        try:
            hours_value = float(hours)
        except (TypeError, ValueError):
            errors.append("Betriebsstunden müssen eine Zahl sein.")
        else:
            if not 0 <= hours_value <= config.OPERATING_HOURS_MAX:
                errors.append(f"Betriebsstunden müssen zwischen 0 und {config.OPERATING_HOURS_MAX} liegen.")
    return errors


class MachineService:
    def __init__(self, client: BackendClient, queries: cache.QueryCache) -> None:
        self.client = client
        self.queries = queries

    # Reads

    async def list(self, force: bool = False) -> List[Machine]:
        async def load() -> List[Machine]:
            return [Machine.from_api(m) for m in await self.client.get("/Machines") or []]

        return await self.queries.fetch(cache.MACHINES, load, force=force)

    async def get(self, machine_id: str) -> MachineDetail:
        async def load() -> MachineDetail:
            return MachineDetail.from_api(await self.client.get(f"/Machines/id/{machine_id}"))

        return await self.queries.fetch(("machine", machine_id), load)

    async def get_by_number(self, number: str) -> Machine:
        number = number.strip()

        async def load() -> Machine:
            return Machine.from_api(await self.client.get(f"/Machines/{number}"))

        return await self.queries.fetch(("machine", "by-number", number), load)

    # Mutations

    def _invalidate(self, machine_id: Optional[str] = None) -> None:
        self.queries.invalidate(cache.MACHINES)
        if machine_id:
            self.queries.invalidate(("machine", machine_id))
            self.queries.invalidate(("machine", "by-number"))

    async def create(self, data: Dict[str, Any], invalidate: bool = True) -> str:
        """Create a machine and return the id the backend assigned."""
        errors = validate_machine(data)
        if errors:
            raise ClientValidationError(errors)
        machine_id = await self.client.post("/Machines", json=data)
        if invalidate:
            self._invalidate()
        return str(machine_id)

    async def create_raw(self, payload: Dict[str, Any]) -> str:
        """POST ``payload`` as is; used by the PDF import, which validates server-side."""
        return str(await self.client.post("/Machines", json=payload))

    async def update(self, machine_id: str, data: Dict[str, Any]) -> None:
        errors = validate_machine(data)
        if errors:
            raise ClientValidationError(errors)
        await self.client.put(f"/Machines/{machine_id}", json=data)
        self._invalidate(machine_id)

    async def delete(self, machine_id: str) -> None:
        await self.client.delete(f"/Machines/{machine_id}")
        self._invalidate(machine_id)

    async def update_operating_hours(self, machine_id: str, hours: int) -> None:
        if not 0 <= hours <= config.OPERATING_HOURS_MAX:
            raise ClientValidationError(
                [f"Betriebsstunden müssen zwischen 0 und {config.OPERATING_HOURS_MAX} liegen."]
            )
        await self.client.put(
            f"/Machines/{machine_id}/operatinghours",
            json={"machineId": machine_id, "newOperatingHours": hours},
        )
        self._invalidate(machine_id)

    async def update_status(self, machine_id: str, status: Any) -> MachineStatus:
        new_status = MachineStatus.parse(status)
        await self.client.put(
            f"/Machines/{machine_id}/status",
            json={"machineId": machine_id, "newStatus": new_status.value},
        )
        self._invalidate(machine_id)
        return new_status

    async def perform_maintenance(self, machine_id: str, data: Dict[str, Any]) -> str:
        record_id = await self.client.post(f"/Machines/{machine_id}/maintenance", json=data)
        self._invalidate(machine_id)
        return str(record_id)

    # Magazine properties

    async def update_magazine(self, machine_id: str, properties: Dict[str, Any], invalidate: bool = True) -> Dict[str, Any]:
        validation = validate_magazine_properties(properties)
        if not validation.is_valid:
            raise ClientValidationError(validation.errors)
        for warning in validation.warnings:
            logger.info("Magazine properties of %s: %s", machine_id, warning)
        data = await self.client.put(f"/Machines/{machine_id}/magazine", json=properties)
        if invalidate:
            self._invalidate(machine_id)
        completeness = data.get("completeness") if isinstance(data, dict) else None
        return {"success": True, "completeness": completeness, "warnings": validation.warnings}

    async def update_magazine_from_pdf(self, machine_id: str, extracted: Dict[str, Any]) -> Dict[str, Any]:
        data = await self.client.post(f"/Machines/{machine_id}/magazine/from-pdf", json=extracted)
        self._invalidate(machine_id)
        data = data if isinstance(data, dict) else {}
        return {
            "success": True,
            "fieldsSet": data.get("fieldsSet", 0),
            "completeness": data.get("completeness"),
        }

    async def magazine_completeness(self, machine_id: str) -> MagazineCompleteness:
        """Completeness from the backend, computed locally when the endpoint is missing."""
        try:
            data = await self.client.get(f"/Machines/{machine_id}/magazine/completeness")
        except NotFoundError:
            logger.info("Completeness endpoint unavailable, computing client-side")
            detail = await self.get(machine_id)
            return magazine_completeness(detail.magazine)
        return MagazineCompleteness.from_api(data)
