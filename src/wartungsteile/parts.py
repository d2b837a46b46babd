"""Maintenance part endpoints.

Categories travel as string names. Older backends only accept the integer
code and answer 400 mentioning ``category``; create and update then retry
exactly once with the code.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List

from wartungsteile import cache, config
from wartungsteile.client import BackendClient
from wartungsteile.errors import ClientValidationError, ValidationError
from wartungsteile.models import MaintenancePart, MaintenancePartsList, PartCategory

logger = logging.getLogger(__name__)


def validate_part(data: Dict[str, Any]) -> List[str]:
    """Form checks for the part create and edit pages."""
    errors: List[str] = []
    part_number = (data.get("partNumber") or "").strip()
    if not part_number:
        errors.append("Teilenummer ist erforderlich.")
    elif len(part_number) > config.PART_NUMBER_MAX_LENGTH:
        errors.append(f"Teilenummer darf höchstens {config.PART_NUMBER_MAX_LENGTH} Zeichen lang sein.")
    elif not config.PART_NUMBER_PATTERN.match(part_number):
        errors.append("Teilenummer enthält ungültige Zeichen.")

    name = (data.get("name") or "").strip()
    if not name:
        errors.append("Name ist erforderlich.")
    elif len(name) > config.PART_NAME_MAX_LENGTH:
        errors.append(f"Name darf höchstens {config.PART_NAME_MAX_LENGTH} Zeichen lang sein.")

    price = data.get("price")
    try:
        price_value = float(price)
    except (TypeError, ValueError):
        errors.append("Preis muss eine Zahl sein.")
    else:
        if not config.PRICE_MIN <= price_value <= config.PRICE_MAX:
            errors.append("Preis muss zwischen 0,01 € und 999.999,99 € liegen.")

    stock = data.get("stockQuantity", 0)
    try:
        stock_value = int(stock)
    except (TypeError, ValueError):
        errors.append("Lagerbestand muss eine ganze Zahl sein.")
    else:
        if not 0 <= stock_value <= config.STOCK_MAX:
            errors.append(f"Lagerbestand muss zwischen 0 und {config.STOCK_MAX} liegen.")
    return errors


def _mentions_category(error: ValidationError) -> bool:
    payload = error.payload
    if isinstance(payload, (dict, list)):
        payload = repr(payload)
    return isinstance(payload, str) and "category" in payload.lower()


class PartService:
    def __init__(self, client: BackendClient, queries: cache.QueryCache) -> None:
        self.client = client
        self.queries = queries

    async def list(self, force: bool = False) -> List[MaintenancePart]:
        async def load() -> List[MaintenancePart]:
            return [MaintenancePart.from_api(p) for p in await self.client.get("/MaintenanceParts") or []]

        return await self.queries.fetch(cache.PARTS, load, force=force)

    async def get(self, part_id: str) -> MaintenancePart:
        async def load() -> MaintenancePart:
            return MaintenancePart.from_api(await self.client.get(f"/MaintenanceParts/id/{part_id}"))

        return await self.queries.fetch(("part", part_id), load)

    async def get_by_part_number(self, part_number: str) -> MaintenancePart:
        async def load() -> MaintenancePart:
            return MaintenancePart.from_api(await self.client.get(f"/MaintenanceParts/partnumber/{part_number}"))

        return await self.queries.fetch(("part", "by-number", part_number), load)

    async def parts_list_for_machine(self, machine_number: str) -> MaintenancePartsList:
        async def load() -> MaintenancePartsList:
            return MaintenancePartsList.from_api(
                await self.client.get(f"/MaintenancePartsList/machine/{machine_number}")
            )

        return await self.queries.fetch(("parts-list", machine_number), load)

    async def _send_with_category_fallback(
        self, send: Callable[[Dict[str, Any]], Awaitable[Any]], data: Dict[str, Any]
    ) -> Any:
        category = PartCategory.parse(data.get("category"))
        body = dict(data, category=category.value)
        try:
            return await send(body)
        except ValidationError as ex:
            if ex.status_code != 400 or not _mentions_category(ex):
                raise
            logger.warning("Backend rejected category %r, retrying with code %d", category.value, category.code)
            return await send(dict(body, category=category.code))

    async def create(self, data: Dict[str, Any]) -> str:
        errors = validate_part(data)
        if errors:
            raise ClientValidationError(errors)

        async def send(body: Dict[str, Any]) -> Any:
            return await self.client.post("/MaintenanceParts", json=body)

        part_id = await self._send_with_category_fallback(send, data)
        self.queries.invalidate(cache.PARTS)
        return str(part_id)

    async def update(self, part_id: str, data: Dict[str, Any]) -> None:
        errors = validate_part(data)
        if errors:
            raise ClientValidationError(errors)

        async def send(body: Dict[str, Any]) -> Any:
            return await self.client.put(f"/MaintenanceParts/{part_id}", json=body)

        await self._send_with_category_fallback(send, data)
        self.queries.invalidate(cache.PARTS)
        self.queries.invalidate(("part", part_id))

    async def delete(self, part_id: str) -> None:
        await self.client.delete(f"/MaintenanceParts/{part_id}")
        self.queries.invalidate(cache.PARTS)
        self.queries.invalidate(("part", part_id))
