"""Machine/part compatibility endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from wartungsteile import cache
from wartungsteile.client import BackendClient
from wartungsteile.models import CompatiblePart, MachinePartCompatibility

BASE = "/MachinePartCompatibility"
COMPATIBILITY = ("compatibility",)


class CompatibilityService:
    def __init__(self, client: BackendClient, queries: cache.QueryCache) -> None:
        self.client = client
        self.queries = queries

    async def get(self, compatibility_id: str) -> MachinePartCompatibility:
        async def load() -> MachinePartCompatibility:
            return MachinePartCompatibility.from_api(await self.client.get(f"{BASE}/{compatibility_id}"))

        return await self.queries.fetch(COMPATIBILITY + (compatibility_id,), load)

    async def for_machine(self, machine_number: str) -> List[CompatiblePart]:
        async def load() -> List[CompatiblePart]:
            return [CompatiblePart.from_api(p) for p in await self.client.get(f"{BASE}/machine/{machine_number}") or []]

        return await self.queries.fetch(COMPATIBILITY + ("machine", machine_number), load)

    async def search(
        self,
        series: Optional[str] = None,
        year_code: Optional[str] = None,
        model_code: Optional[str] = None,
    ) -> List[CompatiblePart]:
        """Compatible parts by series, year code and/or model code."""
        params = {"series": series or None, "yearCode": year_code or None, "modelCode": model_code or None}

        async def load() -> List[CompatiblePart]:
            return [CompatiblePart.from_api(p) for p in await self.client.get(f"{BASE}/search", params=params) or []]

        return await self.queries.fetch(COMPATIBILITY + ("search", series, year_code, model_code), load)

    async def create(self, data: Dict[str, Any]) -> str:
        compatibility_id = await self.client.post(BASE, json=data)
        self.queries.invalidate(COMPATIBILITY)
        return str(compatibility_id)

    async def update(self, compatibility_id: str, data: Dict[str, Any]) -> None:
        await self.client.put(f"{BASE}/{compatibility_id}", json=data)
        self.queries.invalidate(COMPATIBILITY)

    async def delete(self, compatibility_id: str) -> None:
        await self.client.delete(f"{BASE}/{compatibility_id}")
        self.queries.invalidate(COMPATIBILITY)
