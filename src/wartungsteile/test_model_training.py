import httpx
import pytest

from wartungsteile.errors import ClientValidationError
from wartungsteile.model_training import ModelTrainingService

PDF = b"%PDF-1.7 training sample"


def _files(n):
    return [(f"auftrag-{i}.pdf", PDF, "application/pdf") for i in range(n)]


@pytest.fixture
def training(client):
    return ModelTrainingService(client)


@pytest.mark.anyio
async def test_needs_at_least_five_documents(backend, training):
    with pytest.raises(ClientValidationError) as info:
        await training.train("modell", _files(4))
    assert info.value.errors == ["Mindestens 5 Trainingsdokumente erforderlich"]
    assert backend.calls == []


@pytest.mark.anyio
async def test_successful_training(backend, training):
    backend.on("POST", "/ModelTraining/train", {"success": True, "modelId": "mdl-7", "modelName": "werkstatt-modell-1"})

    outcome = await training.train("Werkstatt Modell #1", _files(5), [("labels.json", b"{}", "application/json")])

    assert outcome.success
    assert outcome.message == "Training erfolgreich! Model: werkstatt-modell-1 (ID: mdl-7)"
    body = backend.calls[0].content
    assert body.count(b'name="trainingFiles"') == 5
    assert body.count(b'name="labelFiles"') == 1
    assert b"werkstatt-modell-1" in body


@pytest.mark.anyio
async def test_backend_reported_errors_are_joined(backend, training):
    backend.on("POST", "/ModelTraining/train", {"success": False, "errors": ["Zu wenig Felder", "Label fehlt"]})

    outcome = await training.train("m", _files(5))

    assert not outcome.success
    assert outcome.message == "Zu wenig Felder, Label fehlt"


@pytest.mark.anyio
async def test_payload_too_large(backend, training):
    backend.on("POST", "/ModelTraining/train", 413)
    outcome = await training.train("m", _files(60))
    assert outcome.message == "Die Dateien sind zu groß. Bitte reduzieren Sie die Anzahl der PDFs."


@pytest.mark.anyio
async def test_upload_timeout(backend, training):
    backend.on("POST", "/ModelTraining/train", httpx.ReadTimeout("slow"))
    outcome = await training.train("m", _files(5))
    assert outcome.message == "Zeitüberschreitung beim Upload. Bitte versuchen Sie es mit weniger Dateien."


@pytest.mark.anyio
async def test_missing_training_api(backend, training):
    backend.on("GET", "/ModelTraining/models", 404)
    catalog = await training.list_models()
    assert not catalog.available
    assert catalog.to_dict()["custom"] == []


@pytest.mark.anyio
async def test_models_are_split_into_custom_and_prebuilt(backend, training):
    backend.on(
        "GET",
        "/ModelTraining/models",
        [{"modelId": "prebuilt-layout", "modelName": ""}, {"modelId": "mdl-7", "modelName": "werkstatt"}],
    )

    catalog = await training.list_models()

    assert [m.display_name for m in catalog.prebuilt] == ["layout"]
    assert [m.display_name for m in catalog.custom] == ["werkstatt"]
