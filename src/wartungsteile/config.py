"""Runtime configuration for the Wartungsteile front end.

Every value can be overridden with an environment variable, e.g.
``WARTUNG_BACKEND_URL=https://wartung.example.org/api``. The defaults match a
backend running locally on port 5000.
"""

from __future__ import annotations

import os
import re


# -----------------------------
# Backend connection
# -----------------------------

BACKEND_URL_DEFAULT = "http://localhost:5000/api"
BACKEND_URL = os.environ.get("WARTUNG_BACKEND_URL", BACKEND_URL_DEFAULT).rstrip("/")

API_KEY = os.environ.get("WARTUNG_API_KEY", "dev-key-123456")
API_KEY_HEADER = "X-API-Key"

# Generous enough for list endpoints, bounded so the UI never hangs forever.
TIMEOUT_SECONDS = float(os.environ.get("WARTUNG_TIMEOUT_SECONDS", "15"))
CONNECT_TIMEOUT_SECONDS = float(os.environ.get("WARTUNG_CONNECT_TIMEOUT_SECONDS", "5"))
# Multipart uploads (PDF extraction, model training) can take minutes.
UPLOAD_TIMEOUT_SECONDS = float(os.environ.get("WARTUNG_UPLOAD_TIMEOUT_SECONDS", "600"))

FRONTEND_HOST = os.environ.get("FRONTEND_HOST", "0.0.0.0")
FRONTEND_PORT = int(os.environ.get("FRONTEND_PORT", "7860"))
SESSION_COOKIE = "wartung_session"
# Browser sessions unused for this long are dropped with their HTTP client.
SESSION_IDLE_SECONDS = float(os.environ.get("WARTUNG_SESSION_IDLE_SECONDS", str(8 * 60 * 60)))


# -----------------------------
# Timers and polling
# -----------------------------

SESSION_CHECK_INTERVAL_SECONDS = 30.0
SESSION_WARNING_SECONDS = 5 * 60

BATCH_CREATE_DELAY_SECONDS = 0.2
ACTIVE_BACKUP_POLL_SECONDS = 2.0
BACKUP_PROGRESS_POLL_SECONDS = 0.5

QUERY_STALE_SECONDS = 60.0
READ_RETRIES = 2
RETRY_BASE_DELAY_SECONDS = 1.0


# -----------------------------
# Form validation limits
# -----------------------------

MACHINE_NUMBER_MAX_LENGTH = 50
MACHINE_NUMBER_PATTERN = re.compile(r"^[A-Z0-9\-_]+$", re.IGNORECASE)
MACHINE_TYPE_MAX_LENGTH = 100
OPERATING_HOURS_MAX = 100_000

PART_NUMBER_MAX_LENGTH = 50
PART_NUMBER_PATTERN = re.compile(r"^[A-Z0-9\-_\s]+$", re.IGNORECASE)
PART_NAME_MAX_LENGTH = 200
PRICE_MIN = 0.01
PRICE_MAX = 999_999.99
STOCK_MAX = 999_999

MATERIAL_BAR_LENGTH_MAX = 10_000  # mm
PRODUCTION_WEEK_PATTERN = re.compile(r"^\d{1,2}/\d{4}$")
CUSTOMER_NUMBER_WARN_LENGTH = 20

LOW_STOCK_THRESHOLD = 3
OUT_OF_STOCK_THRESHOLD = 0

MAGAZINE_COMPLETION_BASIC = 30
MAGAZINE_COMPLETION_GOOD = 60
MAGAZINE_COMPLETION_EXCELLENT = 90

MIN_TRAINING_DOCUMENTS = 5
RECOMMENDED_MAX_TRAINING_DOCUMENTS = 50


# -----------------------------
# User-facing messages (German UI)
# -----------------------------

ERROR_MESSAGES = {
    "network": "Keine Verbindung zum Server. Bitte prüfen Sie Ihre Internetverbindung.",
    "timeout": "Die Anfrage dauerte zu lange. Bitte versuchen Sie es erneut.",
    "server": "Ein Serverfehler ist aufgetreten. Bitte versuchen Sie es später erneut.",
    "unavailable": "Der Service ist momentan nicht verfügbar. Bitte versuchen Sie es später erneut.",
    "not_found": "Die angeforderte Ressource wurde nicht gefunden.",
    "validation": "Die eingegebenen Daten sind ungültig. Bitte überprüfen Sie Ihre Eingaben.",
    "unprocessable": "Die Daten konnten nicht verarbeitet werden. Bitte prüfen Sie Ihre Eingaben.",
    "unauthenticated": "Sie sind nicht angemeldet. Bitte melden Sie sich an.",
    "forbidden": "Sie haben keine Berechtigung für diese Aktion.",
    "conflict": "Es besteht ein Konflikt mit dem aktuellen Status. Bitte laden Sie die Seite neu.",
    "unknown": "Ein unerwarteter Fehler ist aufgetreten. Bitte versuchen Sie es erneut.",
    "session_expired": "Ihre Sitzung ist abgelaufen. Bitte melden Sie sich erneut an.",
}

SUCCESS_MESSAGES = {
    "machine_created": "Maschine erfolgreich erstellt!",
    "machine_updated": "Maschine erfolgreich aktualisiert!",
    "machine_deleted": "Maschine erfolgreich gelöscht!",
    "part_created": "Wartungsteil erfolgreich erstellt!",
    "part_updated": "Wartungsteil erfolgreich aktualisiert!",
    "part_deleted": "Wartungsteil erfolgreich gelöscht!",
    "maintenance_completed": "Wartung erfolgreich durchgeführt!",
    "magazine_updated": "Magazin-Eigenschaften erfolgreich aktualisiert!",
}
