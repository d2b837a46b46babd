"""Custom OCR model training for the PDF extraction.

Training is a single long multipart upload; the backend does the work. The
front end only checks the document count, cleans the model name and turns
the typical upload failures into readable German messages.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from wartungsteile import config
from wartungsteile.client import BackendClient
from wartungsteile.errors import ApiError, ClientValidationError, NetworkError, NotFoundError
from wartungsteile.models import TrainedModel

logger = logging.getLogger(__name__)

# (file name, content, content type)
UploadFile = Tuple[str, bytes, str]


def sanitize_model_name(name: Optional[str], today: Optional[date] = None) -> str:
    """Model names the backend accepts: lower-case ``[a-z0-9-]``.

    >>> sanitize_model_name("Werkstatt Modell #1")
    'werkstatt-modell-1'
    >>> sanitize_model_name("--A__B--")
    'a-b'
    >>> sanitize_model_name("", today=date(2025, 6, 13))
    'werkstatt-model-2025-06-13'
    """
    if not name or not name.strip():
        name = f"werkstatt-model-{(today or date.today()).isoformat()}"
    cleaned = re.sub(r"[^a-z0-9-]", "-", name.lower())
    cleaned = re.sub(r"-+", "-", cleaned)
    return cleaned.strip("-")


def training_error_message(ex: ApiError) -> str:
    """German message for a failed training upload."""
    if ex.status_code == 413:
        return "Die Dateien sind zu groß. Bitte reduzieren Sie die Anzahl der PDFs."
    if ex.status_code == 400:
        return ex.detail or "Ungültige Trainingsdaten."
    if isinstance(ex, NetworkError) and ex.timed_out:
        return "Zeitüberschreitung beim Upload. Bitte versuchen Sie es mit weniger Dateien."
    return ex.detail or "Training fehlgeschlagen."


@dataclass
class ModelCatalog:
    custom: List[TrainedModel] = field(default_factory=list)
    prebuilt: List[TrainedModel] = field(default_factory=list)
    available: bool = True

    def to_dict(self) -> Dict[str, Any]:
        def row(m: TrainedModel) -> Dict[str, Any]:
            return {
                "modelId": m.model_id,
                "modelName": m.model_name,
                "displayName": m.display_name,
                "createdAt": m.created_at,
                "status": m.status,
                "accuracy": m.accuracy,
            }

        return {
            "available": self.available,
            "custom": [row(m) for m in self.custom],
            "prebuilt": [row(m) for m in self.prebuilt],
        }


@dataclass
class TrainingOutcome:
    success: bool
    model_name: str
    model_id: Optional[str] = None
    message: str = ""
    many_documents: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "modelName": self.model_name,
            "modelId": self.model_id,
            "message": self.message,
            "manyDocuments": self.many_documents,
        }


class ModelTrainingService:
    def __init__(self, client: BackendClient) -> None:
        self.client = client

    async def list_models(self) -> ModelCatalog:
        """Custom and prebuilt models; a 404 means the training API is not deployed."""
        try:
            data = await self.client.get("/ModelTraining/models")
        except NotFoundError:
            logger.info("Model training endpoint not available")
            return ModelCatalog(available=False)
        models = [TrainedModel.from_api(m) for m in data or []]
        return ModelCatalog(
            custom=[m for m in models if not m.is_prebuilt],
            prebuilt=[m for m in models if m.is_prebuilt],
        )

    async def train(
        self,
        model_name: Optional[str],
        training_files: Sequence[UploadFile],
        label_files: Sequence[UploadFile] = (),
    ) -> TrainingOutcome:
        if len(training_files) < config.MIN_TRAINING_DOCUMENTS:
            raise ClientValidationError(
                [f"Mindestens {config.MIN_TRAINING_DOCUMENTS} Trainingsdokumente erforderlich"]
            )
        name = sanitize_model_name(model_name)
        many = len(training_files) > config.RECOMMENDED_MAX_TRAINING_DOCUMENTS
        if many:
            logger.info("Training with %d documents, this can take several minutes", len(training_files))

        files = [("trainingFiles", f) for f in training_files]
        files += [("labelFiles", f) for f in label_files]
        try:
            data = await self.client.post(
                "/ModelTraining/train",
                data={"modelName": name},
                files=files,
                timeout=config.UPLOAD_TIMEOUT_SECONDS,
            )
        except ApiError as ex:
            logger.warning("Training of %s failed: %s", name, ex)
            return TrainingOutcome(success=False, model_name=name, message=training_error_message(ex))

        data = data if isinstance(data, dict) else {}
        if data.get("success") is False:
            errors = data.get("errors") or []
            return TrainingOutcome(
                success=False,
                model_name=name,
                message=", ".join(errors) or "Training fehlgeschlagen.",
            )
        model_id = data.get("modelId") or data.get("ModelId")
        trained_name = data.get("modelName") or data.get("ModelName") or "Unbekannt"
        if model_id:
            message = f"Training erfolgreich! Model: {trained_name} (ID: {model_id})"
        else:
            message = "Training abgeschlossen. Prüfe die Modellliste für Details."
        return TrainingOutcome(
            success=True, model_name=name, model_id=model_id, message=message, many_documents=many
        )

    async def delete(self, model_id: str) -> None:
        await self.client.delete(f"/ModelTraining/models/{model_id}")
