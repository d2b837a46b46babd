import pytest

from wartungsteile.dashboard import DashboardService, due_frame, status_frame, stock_frame, summarize, trend_frame
from wartungsteile.machines import MachineService
from wartungsteile.models import Machine, MaintenancePart
from wartungsteile.parts import PartService


@pytest.fixture
def dashboard(client, queries):
    return DashboardService(client, queries, MachineService(client, queries), PartService(client, queries))


def test_summarize_counts_status_and_stock():
    machines = [
        Machine.from_api({"id": "1", "number": "M-1", "status": "Active"}),
        Machine.from_api({"id": "2", "number": "M-2", "status": "OutOfService"}),
    ]
    parts = [
        MaintenancePart.from_api({"id": "p1", "price": 10, "stockQuantity": 0}),
        MaintenancePart.from_api({"id": "p2", "price": 2.5, "stockQuantity": 2}),
        MaintenancePart.from_api({"id": "p3", "price": 1, "stockQuantity": 40}),
    ]

    metrics = summarize(machines, parts)

    assert metrics["machines"]["total"] == 2
    assert metrics["machines"]["criticalAlerts"] == 1
    assert metrics["parts"]["reorderRequired"] == 2
    assert metrics["parts"]["totalValue"] == 45.0
    assert stock_frame(metrics)["Teile"].tolist() == [1, 1, 1]
    assert status_frame(metrics).loc["Außer Betrieb", "Maschinen"] == 1


def test_trend_frame_is_sorted_by_month():
    df = trend_frame(
        {
            "monthlyTrends": [
                {"year": 2025, "month": 2, "maintenanceCount": 4, "totalCost": 800.0, "partsReplaced": 9},
                {"year": 2024, "month": 12, "maintenanceCount": 1, "totalCost": 120.0, "partsReplaced": 2},
            ]
        }
    )
    assert df.index.tolist() == ["2024-12", "2025-02"]
    assert df["Wartungen"].tolist() == [1, 4]


def test_empty_frames_keep_their_columns():
    assert trend_frame({}).empty
    assert list(due_frame([]).columns) == ["machineNumber", "machineType", "priority", "daysOverdue", "hoursOverdue", "reason"]


@pytest.mark.anyio
async def test_backend_metrics_are_used_when_available(backend, dashboard):
    backend.on("GET", "/dashboard/metrics", {"machines": {"total": 12}})
    metrics = await dashboard.metrics()
    assert metrics["source"] == "backend"
    assert metrics["machines"]["total"] == 12


@pytest.mark.anyio
async def test_missing_dashboard_api_falls_back_to_lists(backend, dashboard):
    backend.on("GET", "/dashboard/metrics", 404)
    backend.on("GET", "/Machines", [{"id": "1", "number": "M-1", "status": "InMaintenance"}])
    backend.on("GET", "/MaintenanceParts", [{"id": "p1", "price": 5, "stockQuantity": 3}])

    metrics = await dashboard.metrics()

    assert metrics["source"] == "fallback"
    assert metrics["machines"]["inMaintenance"] == 1
    assert metrics["parts"]["lowStock"] == 1


@pytest.mark.anyio
async def test_trends_and_due_list_degrade_to_empty(backend, dashboard):
    backend.on("GET", "/dashboard/trends", 404)
    assert (await dashboard.trends(12))["monthlyTrends"] == []
    assert await dashboard.maintenance_due() == []
