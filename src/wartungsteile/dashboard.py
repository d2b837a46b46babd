"""Dashboard figures.

The backend computes the dashboard in ``/dashboard/*``. Older backends lack
these endpoints; the summary is then built here from the machines and parts
lists, which every backend has.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

import pandas as pd

from wartungsteile import cache
from wartungsteile.client import BackendClient
from wartungsteile.errors import NotFoundError, ServerError
from wartungsteile.machines import MachineService
from wartungsteile.models import Machine, MachineStatus, MaintenancePart
from wartungsteile.parts import PartService

logger = logging.getLogger(__name__)

DASHBOARD = ("dashboard",)
STOCK_LABELS = {"inStock": "Auf Lager", "lowStock": "Niedriger Bestand", "outOfStock": "Nicht vorrätig"}


def summarize(machines: Iterable[Machine], parts: Iterable[MaintenancePart]) -> Dict[str, Any]:
    """Dashboard metrics from the plain lists, same shape as ``/dashboard/metrics``."""
    machines = list(machines)
    parts = list(parts)
    by_status = {status: 0 for status in MachineStatus}
    for machine in machines:
        by_status[machine.status] += 1
    low = sum(1 for p in parts if p.stock_status == "lowStock")
    out = sum(1 for p in parts if p.stock_status == "outOfStock")
    return {
        "machines": {
            "total": len(machines),
            "active": by_status[MachineStatus.ACTIVE],
            "inMaintenance": by_status[MachineStatus.IN_MAINTENANCE],
            "outOfService": by_status[MachineStatus.OUT_OF_SERVICE],
            "maintenanceDue": 0,
            "criticalAlerts": by_status[MachineStatus.OUT_OF_SERVICE],
        },
        "parts": {
            "total": len(parts),
            "lowStock": low,
            "outOfStock": out,
            "totalValue": round(sum(p.price * p.stock_quantity for p in parts), 2),
            "reorderRequired": low + out,
        },
        "maintenance": {
            "completedThisMonth": 0,
            "scheduledThisWeek": 0,
            "averageDowntime": 0,
            "costThisMonth": 0,
        },
        "recentActivities": [],
        "lastUpdated": datetime.now(timezone.utc).isoformat(),
    }


# -----------------------------
# Chart data
# -----------------------------

def status_frame(metrics: Dict[str, Any]) -> pd.DataFrame:
    counts = metrics.get("machines") or {}
    rows = [
        (MachineStatus.ACTIVE.label, counts.get("active", 0)),
        (MachineStatus.IN_MAINTENANCE.label, counts.get("inMaintenance", 0)),
        (MachineStatus.OUT_OF_SERVICE.label, counts.get("outOfService", 0)),
    ]
    return pd.DataFrame(rows, columns=["Status", "Maschinen"]).set_index("Status")


def stock_frame(metrics: Dict[str, Any]) -> pd.DataFrame:
    parts = metrics.get("parts") or {}
    total = parts.get("total", 0)
    low = parts.get("lowStock", 0)
    out = parts.get("outOfStock", 0)
    rows = [
        (STOCK_LABELS["inStock"], max(0, total - low - out)),
        (STOCK_LABELS["lowStock"], low),
        (STOCK_LABELS["outOfStock"], out),
    ]
    return pd.DataFrame(rows, columns=["Bestand", "Teile"]).set_index("Bestand")


def trend_frame(trends: Dict[str, Any]) -> pd.DataFrame:
    """Monthly maintenance count and cost, indexed by ``YYYY-MM``."""
    rows = trends.get("monthlyTrends") or []
    if not rows:
        return pd.DataFrame(columns=["Wartungen", "Kosten", "Ersetzte Teile"])
    df = pd.DataFrame(rows)
    df["Monat"] = df["year"].astype(int).astype(str) + "-" + df["month"].astype(int).map("{:02d}".format)
    df = df.rename(
        columns={"maintenanceCount": "Wartungen", "totalCost": "Kosten", "partsReplaced": "Ersetzte Teile"}
    )
    return df.set_index("Monat").sort_index()[["Wartungen", "Kosten", "Ersetzte Teile"]]


def due_frame(due: List[Dict[str, Any]]) -> pd.DataFrame:
    columns = ["machineNumber", "machineType", "priority", "daysOverdue", "hoursOverdue", "reason"]
    return pd.DataFrame(due, columns=columns)


class DashboardService:
    def __init__(
        self,
        client: BackendClient,
        queries: cache.QueryCache,
        machines: MachineService,
        parts: PartService,
    ) -> None:
        self.client = client
        self.queries = queries
        self.machines = machines
        self.parts = parts

    async def metrics(self) -> Dict[str, Any]:
        """Backend metrics, or the summary of the lists when unavailable.

        The result carries ``source``: ``backend`` or ``fallback``.
        """
        async def load() -> Dict[str, Any]:
            return await self.client.get("/dashboard/metrics")

        try:
            data = await self.queries.fetch(DASHBOARD + ("metrics",), load)
        except (NotFoundError, ServerError) as ex:
            logger.info("Dashboard metrics unavailable (%s), summarizing lists", ex)
            data = summarize(await self.machines.list(), await self.parts.list())
            return dict(data, source="fallback")
        return dict(data or {}, source="backend")

    async def trends(self, months: int = 6) -> Dict[str, Any]:
        async def load() -> Dict[str, Any]:
            return await self.client.get("/dashboard/trends", params={"months": months})

        try:
            return await self.queries.fetch(DASHBOARD + ("trends", months), load) or {}
        except (NotFoundError, ServerError) as ex:
            logger.info("Maintenance trends unavailable: %s", ex)
            return {"monthlyTrends": [], "totalMaintenances": 0, "totalCost": 0, "averageDowntime": 0}

    async def maintenance_due(self) -> List[Dict[str, Any]]:
        async def load() -> List[Dict[str, Any]]:
            return await self.client.get("/dashboard/maintenance-due") or []

        try:
            return await self.queries.fetch(DASHBOARD + ("maintenance-due",), load)
        except (NotFoundError, ServerError) as ex:
            logger.info("Maintenance-due list unavailable: %s", ex)
            return []
