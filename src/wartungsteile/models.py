"""Client-side copies of backend resources.

The backend owns every entity; these dataclasses are transient,
non-authoritative views. Each ``from_api`` classmethod is the one place where
a payload shape is normalized (camelCase keys, int-or-string categories,
missing optional fields).
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from wartungsteile import config


# -----------------------------
# Formatting helpers
# -----------------------------

def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as sent by the backend (``Z`` suffix allowed)."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # .NET sends up to 7 fractional digits; fromisoformat accepts at most 6.
    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        while rest and rest[0].isdigit():
            digits, rest = digits + rest[0], rest[1:]
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def format_datetime_de(value: Optional[str], with_time: bool = True, default: str = "Nie") -> str:
    """Render an ISO timestamp the way ``toLocaleString('de-DE')`` does.

    >>> format_datetime_de("2025-06-13T19:07:19Z")
    '13.06.2025, 19:07:19'
    >>> format_datetime_de("2025-06-13", with_time=False)
    '13.06.2025'
    >>> format_datetime_de(None)
    'Nie'
    """
    parsed = parse_iso(value)
    if parsed is None:
        return default
    if with_time:
        return parsed.strftime("%d.%m.%Y, %H:%M:%S")
    return parsed.strftime("%d.%m.%Y")


def format_file_size(size_bytes: float) -> str:
    """Human-readable size with two decimals.

    >>> format_file_size(1536)
    '1.50 KB'
    >>> format_file_size(-1)
    'N/A'
    """
    if size_bytes < 0:
        return "N/A"
    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(size_bytes)
    unit = 0
    while size >= 1024 and unit < len(units) - 1:
        size /= 1024
        unit += 1
    return f"{size:.2f} {units[unit]}"


def _filled(value: Any) -> bool:
    return value is not None and value != ""


# -----------------------------
# Machines
# -----------------------------

class MachineStatus(str, enum.Enum):
    ACTIVE = "Active"
    IN_MAINTENANCE = "InMaintenance"
    OUT_OF_SERVICE = "OutOfService"

    @property
    def label(self) -> str:
        return {
            MachineStatus.ACTIVE: "Aktiv",
            MachineStatus.IN_MAINTENANCE: "In Wartung",
            MachineStatus.OUT_OF_SERVICE: "Außer Betrieb",
        }[self]

    @classmethod
    def parse(cls, value: Any) -> "MachineStatus":
        if isinstance(value, int) and 0 <= value < len(cls):
            return list(cls)[value]
        for member in cls:
            if str(value).lower() == member.value.lower():
                return member
        return cls.ACTIVE


BASIC_MAGAZINE_FIELDS = (
    "magazineType",
    "materialBarLength",
    "hasSynchronizationDevice",
    "feedChannel",
    "feedRod",
)

EXTENDED_MAGAZINE_FIELDS = (
    # Kunde
    "customerName", "customerNumber", "customerProcess",
    # Produktion
    "productionWeek", "buildVariant", "operatingVoltage",
    # Farben
    "baseColor", "coverColor", "switchCabinetColor", "controlPanelColor",
    # Dokumentation
    "documentationLanguage", "documentationCount",
    # Drehmaschine
    "latheManufacturer", "latheType", "latheNumber", "spindleHeight", "spindleDiameter",
    # Elektrik
    "magazineNumber", "positionNumber", "controlPanel", "apm", "eprom", "circuitDiagram", "drawingList",
    # Artikel
    "articleNumber",
)

MAGAZINE_FIELDS = BASIC_MAGAZINE_FIELDS + EXTENDED_MAGAZINE_FIELDS

# Fields whose presence means the magazine endpoint has to be called.
MAGAZINE_TRIGGER_FIELDS = ("magazineType", "materialBarLength", "feedChannel")
MAGAZINE_REQUIRED_FIELDS = ("magazineType", "materialBarLength", "feedChannel")
MAGAZINE_EXTENDED_MARKERS = ("customerName", "customerNumber", "latheManufacturer", "articleNumber")


@dataclass
class MagazineCompleteness:
    completeness: int
    total_fields: int
    filled_fields: int
    missing_fields: List[str]
    has_basic_data: bool
    has_extended_data: bool

    @property
    def level(self) -> str:
        if self.completeness < config.MAGAZINE_COMPLETION_BASIC:
            return "poor"
        if self.completeness < config.MAGAZINE_COMPLETION_GOOD:
            return "basic"
        if self.completeness < config.MAGAZINE_COMPLETION_EXCELLENT:
            return "good"
        return "excellent"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MagazineCompleteness":
        return cls(
            completeness=int(data.get("completeness") or 0),
            total_fields=int(data.get("totalFields") or 0),
            filled_fields=int(data.get("filledFields") or 0),
            missing_fields=list(data.get("missingFields") or []),
            has_basic_data=bool(data.get("hasBasicData")),
            has_extended_data=bool(data.get("hasExtendedData")),
        )


def magazine_completeness(properties: Dict[str, Any]) -> MagazineCompleteness:
    """Completeness of the magazine properties found in ``properties``.

    >>> magazine_completeness({"magazineType": "LM 1200"}).filled_fields
    1
    """
    filled = [name for name in MAGAZINE_FIELDS if _filled(properties.get(name))]
    missing = [name for name in MAGAZINE_FIELDS if not _filled(properties.get(name))]
    return MagazineCompleteness(
        completeness=round(len(filled) / len(MAGAZINE_FIELDS) * 100),
        total_fields=len(MAGAZINE_FIELDS),
        filled_fields=len(filled),
        missing_fields=missing,
        has_basic_data=any(_filled(properties.get(n)) for n in MAGAZINE_REQUIRED_FIELDS),
        has_extended_data=any(_filled(properties.get(n)) for n in MAGAZINE_EXTENDED_MARKERS),
    )


@dataclass
class MagazineValidation:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_magazine_properties(properties: Dict[str, Any]) -> MagazineValidation:
    """Check magazine properties before sending them.

    Errors block the request; warnings are only shown.
    """
    result = MagazineValidation()
    bar_length = properties.get("materialBarLength")
    if bar_length is not None and not 0 <= bar_length <= config.MATERIAL_BAR_LENGTH_MAX:
        result.errors.append("Materialstangenlänge muss zwischen 0 und 10.000 mm liegen")

    week = properties.get("productionWeek")
    if week and not config.PRODUCTION_WEEK_PATTERN.match(week):
        result.warnings.append('Produktionswoche sollte im Format "KW/Jahr" sein (z.B. "49/2018")')

    customer_number = properties.get("customerNumber")
    if customer_number and len(customer_number) > config.CUSTOMER_NUMBER_WARN_LENGTH:
        result.warnings.append("Kundennummer ist ungewöhnlich lang")

    if properties.get("customerName") and not customer_number:
        result.warnings.append("Kundenname ohne Kundennummer angegeben")
    return result


@dataclass
class Machine:
    id: str
    number: str
    type: str
    operating_hours: int = 0
    installation_date: Optional[str] = None
    status: MachineStatus = MachineStatus.ACTIVE
    maintenance_count: int = 0
    last_maintenance_date: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Machine":
        return cls(
            id=str(data.get("id", "")),
            number=data.get("number") or data.get("machineNumber") or "",
            type=data.get("type") or "",
            operating_hours=int(data.get("operatingHours") or 0),
            installation_date=data.get("installationDate"),
            status=MachineStatus.parse(data.get("status") or "Active"),
            maintenance_count=int(data.get("maintenanceCount") or 0),
            last_maintenance_date=data.get("lastMaintenanceDate"),
        )

    def to_api(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "type": self.type,
            "operatingHours": self.operating_hours,
            "installationDate": self.installation_date,
            "status": self.status.value,
            "maintenanceCount": self.maintenance_count,
            "lastMaintenanceDate": self.last_maintenance_date,
        }


@dataclass
class ReplacedPart:
    part_id: str
    part_number: str
    part_name: str
    quantity: int
    machine_operating_hours_at_replacement: int
    replacement_year: int

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ReplacedPart":
        return cls(
            part_id=str(data.get("partId", "")),
            part_number=data.get("partNumber") or "",
            part_name=data.get("partName") or "",
            quantity=int(data.get("quantity") or 0),
            machine_operating_hours_at_replacement=int(data.get("machineOperatingHoursAtReplacement") or 0),
            replacement_year=int(data.get("replacementYear") or 0),
        )


@dataclass
class MaintenanceRecord:
    id: str
    technician_id: str
    maintenance_type: str
    performed_at: Optional[str]
    comments: str
    replaced_parts: List[ReplacedPart] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MaintenanceRecord":
        return cls(
            id=str(data.get("id", "")),
            technician_id=str(data.get("technicianId") or ""),
            maintenance_type=data.get("maintenanceType") or "",
            performed_at=data.get("performedAt"),
            comments=data.get("comments") or "",
            replaced_parts=[ReplacedPart.from_api(p) for p in data.get("replacedParts") or []],
        )


@dataclass
class MachineDetail(Machine):
    magazine: Dict[str, Any] = field(default_factory=dict)
    maintenance_records: List[MaintenanceRecord] = field(default_factory=list)
    magazine_last_updated: Optional[str] = None
    magazine_updated_by: Optional[str] = None
    magazine_notes: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MachineDetail":
        base = Machine.from_api(data)
        return cls(
            **asdict(base),
            magazine={name: data.get(name) for name in MAGAZINE_FIELDS if name in data},
            maintenance_records=[MaintenanceRecord.from_api(r) for r in data.get("maintenanceRecords") or []],
            magazine_last_updated=data.get("magazinePropertiesLastUpdated"),
            magazine_updated_by=data.get("magazinePropertiesUpdatedBy"),
            magazine_notes=data.get("magazinePropertiesNotes"),
        )

    def completeness(self) -> MagazineCompleteness:
        return magazine_completeness(self.magazine)

    def magazine_display(self) -> Dict[str, Dict[str, str]]:
        """Grouped, German-labelled magazine properties for detail views."""
        m = self.magazine
        missing = "Nicht angegeben"

        def text(name: str) -> str:
            value = m.get(name)
            return str(value) if _filled(value) else missing

        bar = m.get("materialBarLength")
        return {
            "basic": {
                "Magazin-Typ": text("magazineType"),
                "Materialstangenlänge": f"{bar} mm" if bar else missing,
                "Synchroneinrichtung": "Ja" if m.get("hasSynchronizationDevice") else "Nein",
                "Zuführkanal": text("feedChannel"),
                "Vorschubstange": text("feedRod"),
            },
            "customer": {
                "Kunde": text("customerName"),
                "Kundennummer": text("customerNumber"),
                "Kundenprozess": text("customerProcess"),
            },
            "production": {
                "Produktionswoche": text("productionWeek"),
                "Bauvariante": text("buildVariant"),
                "Betriebsspannung": text("operatingVoltage"),
            },
            "colors": {
                "Grundfarbe": text("baseColor"),
                "Abdeckungsfarbe": text("coverColor"),
                "Schaltschrankfarbe": text("switchCabinetColor"),
                "Bedienfeld-Farbe": text("controlPanelColor"),
            },
            "documentation": {
                "Dokumentationssprache": text("documentationLanguage"),
                "Anzahl Dokumentation": text("documentationCount"),
            },
            "lathe": {
                "Drehmaschinen-Hersteller": text("latheManufacturer"),
                "Drehmaschinentyp": text("latheType"),
                "Drehmaschinen-Nummer": text("latheNumber"),
                "Spindelhöhe": text("spindleHeight"),
                "Spindeldurchmesser": text("spindleDiameter"),
            },
            "electrical": {
                "Magazin-Nummer": text("magazineNumber"),
                "Positionsnummer": text("positionNumber"),
                "Bedienfeld": text("controlPanel"),
                "APM": text("apm"),
                "EPROM": text("eprom"),
                "Schaltplan": text("circuitDiagram"),
                "Zeichnungsliste": text("drawingList"),
            },
            "article": {"Artikelnummer": text("articleNumber")},
            "metadata": {
                "Letzte Aktualisierung": format_datetime_de(self.magazine_last_updated),
                "Aktualisiert von": self.magazine_updated_by or "Unbekannt",
                "Notizen": self.magazine_notes or "Keine",
            },
        }


# -----------------------------
# Parts
# -----------------------------

class PartCategory(str, enum.Enum):
    WEAR_PART = "WearPart"
    SPARE_PART = "SparePart"
    CONSUMABLE_PART = "ConsumablePart"
    TOOL_PART = "ToolPart"

    @property
    def code(self) -> int:
        """Integer code understood by older backend versions."""
        return list(PartCategory).index(self)

    @property
    def label(self) -> str:
        return {
            PartCategory.WEAR_PART: "Verschleißteil",
            PartCategory.SPARE_PART: "Ersatzteil",
            PartCategory.CONSUMABLE_PART: "Verbrauchsmaterial",
            PartCategory.TOOL_PART: "Werkzeugteil",
        }[self]

    @classmethod
    def parse(cls, value: Any) -> "PartCategory":
        """Accept string names or integer codes; anything else is a wear part.

        >>> PartCategory.parse(2)
        <PartCategory.CONSUMABLE_PART: 'ConsumablePart'>
        >>> PartCategory.parse("SparePart").code
        1
        """
        if isinstance(value, PartCategory):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            members = list(cls)
            return members[value] if 0 <= value < len(members) else cls.WEAR_PART
        if isinstance(value, str):
            if value.isdigit():
                return cls.parse(int(value))
            for member in cls:
                if value.lower() == member.value.lower():
                    return member
        return cls.WEAR_PART


def stock_status(quantity: int) -> str:
    """``outOfStock``, ``lowStock`` or ``inStock``.

    >>> [stock_status(q) for q in (0, 3, 4)]
    ['outOfStock', 'lowStock', 'inStock']
    """
    if quantity <= config.OUT_OF_STOCK_THRESHOLD:
        return "outOfStock"
    if quantity <= config.LOW_STOCK_THRESHOLD:
        return "lowStock"
    return "inStock"


@dataclass
class MaintenancePart:
    id: str
    part_number: str
    name: str
    category: PartCategory = PartCategory.WEAR_PART
    price: float = 0.0
    stock_quantity: int = 0
    description: Optional[str] = None
    manufacturer: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MaintenancePart":
        return cls(
            id=str(data.get("id", "")),
            part_number=data.get("partNumber") or "",
            name=data.get("name") or "",
            category=PartCategory.parse(data.get("category")),
            price=float(data.get("price") or 0),
            stock_quantity=int(data.get("stockQuantity") or 0),
            description=data.get("description"),
            manufacturer=data.get("manufacturer"),
        )

    @property
    def stock_status(self) -> str:
        return stock_status(self.stock_quantity)

    def to_api(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "partNumber": self.part_number,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "price": self.price,
            "manufacturer": self.manufacturer,
            "stockQuantity": self.stock_quantity,
        }


@dataclass
class MaintenancePartItem:
    part_id: str
    part_number: str
    name: str
    category: PartCategory
    price: float
    recommended_quantity: int
    maintenance_interval_years: int
    is_overdue: bool
    last_replacement_year: Optional[int] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MaintenancePartItem":
        return cls(
            part_id=str(data.get("partId", "")),
            part_number=data.get("partNumber") or "",
            name=data.get("name") or "",
            category=PartCategory.parse(data.get("category")),
            price=float(data.get("price") or 0),
            recommended_quantity=int(data.get("recommendedQuantity") or 0),
            maintenance_interval_years=int(data.get("maintenanceIntervalYears") or 0),
            is_overdue=bool(data.get("isOverdue")),
            last_replacement_year=data.get("lastReplacementYear"),
        )


@dataclass
class MaintenancePartsList:
    machine_id: str
    machine_number: str
    machine_type: str
    machine_production_year: int
    required_parts: List[MaintenancePartItem]
    recommended_parts: List[MaintenancePartItem]

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MaintenancePartsList":
        return cls(
            machine_id=str(data.get("machineId", "")),
            machine_number=data.get("machineNumber") or "",
            machine_type=data.get("machineType") or "",
            machine_production_year=int(data.get("machineProductionYear") or 0),
            required_parts=[MaintenancePartItem.from_api(p) for p in data.get("requiredParts") or []],
            recommended_parts=[MaintenancePartItem.from_api(p) for p in data.get("recommendedParts") or []],
        )

    @property
    def overdue_parts(self) -> List[MaintenancePartItem]:
        return [p for p in self.required_parts + self.recommended_parts if p.is_overdue]


# -----------------------------
# Compatibility
# -----------------------------

@dataclass
class MachinePartCompatibility:
    id: str
    series: str
    year_code: str
    model_code: str
    part_id: str
    part_number: str
    part_name: str
    is_required: bool
    recommended_quantity: int
    maintenance_interval_years: int

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MachinePartCompatibility":
        return cls(
            id=str(data.get("id", "")),
            series=data.get("series") or "",
            year_code=data.get("yearCode") or "",
            model_code=data.get("modelCode") or "",
            part_id=str(data.get("partId", "")),
            part_number=data.get("partNumber") or "",
            part_name=data.get("partName") or "",
            is_required=bool(data.get("isRequired")),
            recommended_quantity=int(data.get("recommendedQuantity") or 0),
            maintenance_interval_years=int(data.get("maintenanceIntervalYears") or 0),
        )


@dataclass
class CompatiblePart:
    part_id: str
    part_number: str
    name: str
    description: str
    category: PartCategory
    price: float
    compatibility_id: str
    is_required: bool
    recommended_quantity: int
    maintenance_interval_years: int

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "CompatiblePart":
        return cls(
            part_id=str(data.get("partId", "")),
            part_number=data.get("partNumber") or "",
            name=data.get("name") or "",
            description=data.get("description") or "",
            category=PartCategory.parse(data.get("category")),
            price=float(data.get("price") or 0),
            compatibility_id=str(data.get("compatibilityId", "")),
            is_required=bool(data.get("isRequired")),
            recommended_quantity=int(data.get("recommendedQuantity") or 0),
            maintenance_interval_years=int(data.get("maintenanceIntervalYears") or 0),
        )


# -----------------------------
# Users
# -----------------------------

@dataclass
class User:
    id: str
    username: str
    email: str
    role: str
    is_active: bool = True
    created_at: Optional[str] = None
    last_login_at: Optional[str] = None
    created_by: Optional[str] = None
    is_deleted: bool = False
    deleted_at: Optional[str] = None
    full_name: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=str(data.get("id", "")),
            username=data.get("username") or "",
            email=data.get("email") or "",
            role=data.get("role") or "Viewer",
            is_active=bool(data.get("isActive", True)),
            created_at=data.get("createdAt"),
            last_login_at=data.get("lastLoginAt"),
            created_by=data.get("createdBy"),
            is_deleted=bool(data.get("isDeleted", False)),
            deleted_at=data.get("deletedAt"),
            full_name=data.get("fullName"),
        )


# -----------------------------
# Backups
# -----------------------------

BACKUP_TYPES = ("full", "database", "backend", "frontend")

BACKUP_TYPE_LABELS = {
    "full": "Vollständig",
    "database": "Nur Datenbank",
    "backend": "Nur Backend",
    "frontend": "Nur Frontend",
}


def backup_type_label(backup_type: str) -> str:
    return BACKUP_TYPE_LABELS.get(backup_type, backup_type)


@dataclass
class BackupInfo:
    timestamp: Optional[str]
    file_name: str
    size: str
    type: str
    description: str
    id: Optional[str] = None
    file_path: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "BackupInfo":
        return cls(
            timestamp=data.get("timestamp"),
            file_name=data.get("fileName") or data.get("file") or "",
            size=str(data.get("size") or ""),
            type=data.get("type") or "full",
            description=data.get("description") or "",
            id=data.get("id"),
            file_path=data.get("filePath"),
        )

    @property
    def type_label(self) -> str:
        return backup_type_label(self.type)


@dataclass
class BackupStatus:
    backup_root: str
    backup_root_exists: bool
    script_path: str
    scripts_exist: bool
    free_space: int
    backup_count: int

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "BackupStatus":
        return cls(
            backup_root=data.get("backupRoot") or "",
            backup_root_exists=bool(data.get("backupRootExists")),
            script_path=data.get("scriptPath") or "",
            scripts_exist=bool(data.get("scriptsExist")),
            free_space=int(data.get("freeSpace") or 0),
            backup_count=int(data.get("backupCount") or 0),
        )

    @property
    def free_space_text(self) -> str:
        return format_file_size(self.free_space)


@dataclass
class BackupStep:
    name: str
    timestamp: Optional[str]
    completed: bool

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "BackupStep":
        return cls(
            name=data.get("name") or "",
            timestamp=data.get("timestamp"),
            completed=bool(data.get("completed")),
        )


@dataclass
class BackupProgress:
    id: str
    type: str
    percentage: int
    status: str
    steps: List[BackupStep] = field(default_factory=list)
    description: str = ""
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    current_step: Optional[str] = None
    is_active: bool = False
    is_completed: bool = False
    success: bool = False
    message: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "BackupProgress":
        return cls(
            id=str(data.get("id", "")),
            type=data.get("type") or "",
            percentage=int(data.get("percentage") or 0),
            status=data.get("status") or "",
            steps=[BackupStep.from_api(s) for s in data.get("steps") or []],
            description=data.get("description") or "",
            start_time=data.get("startTime"),
            end_time=data.get("endTime"),
            current_step=data.get("currentStep"),
            is_active=bool(data.get("isActive")),
            is_completed=bool(data.get("isCompleted")),
            success=bool(data.get("success")),
            message=data.get("message"),
            file_path=data.get("filePath"),
            file_size=data.get("fileSize"),
        )


# -----------------------------
# PDF import
# -----------------------------

@dataclass
class ExtractedMachine:
    """One machine record found by the backend's PDF extraction."""

    machine_number: str
    is_valid: bool
    already_exists: bool
    validation_errors: List[str] = field(default_factory=list)
    magazine_type: str = ""
    material_bar_length: float = 0
    has_synchronization_device: bool = False
    feed_channel: str = ""
    feed_rod: str = ""
    customer_name: str = ""
    customer_number: str = ""
    article_number: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ExtractedMachine":
        return cls(
            machine_number=data.get("machineNumber") or "",
            is_valid=bool(data.get("isValid")),
            already_exists=bool(data.get("alreadyExists")),
            validation_errors=list(data.get("validationErrors") or []),
            magazine_type=data.get("magazineType") or "",
            material_bar_length=data.get("materialBarLength") or 0,
            has_synchronization_device=bool(data.get("hasSynchronizationDevice")),
            feed_channel=data.get("feedChannel") or "",
            feed_rod=data.get("feedRod") or "",
            customer_name=data.get("customerName") or "",
            customer_number=data.get("customerNumber") or "",
            article_number=data.get("articleNumber") or "",
        )

    @property
    def selectable(self) -> bool:
        return self.is_valid and not self.already_exists

    @property
    def badge(self) -> str:
        """``invalid``, ``duplicate`` or ``ready``."""
        if not self.is_valid:
            return "invalid"
        if self.already_exists:
            return "duplicate"
        return "ready"

    @property
    def has_magazine_data(self) -> bool:
        return bool(self.magazine_type or self.material_bar_length or self.feed_channel)

    def create_payload(self, installation_date: str) -> Dict[str, Any]:
        return {
            "machineNumber": self.machine_number,
            "type": self.magazine_type or "Unbekannt",
            "installationDate": installation_date,
        }

    def magazine_payload(self) -> Dict[str, Any]:
        return {
            "magazineType": self.magazine_type or "",
            "materialBarLength": self.material_bar_length or 0,
            "hasSynchronizationDevice": self.has_synchronization_device,
            "feedChannel": self.feed_channel or "",
            "feedRod": self.feed_rod or "",
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "machineNumber": self.machine_number,
            "isValid": self.is_valid,
            "alreadyExists": self.already_exists,
            "validationErrors": self.validation_errors,
            "magazineType": self.magazine_type,
            "materialBarLength": self.material_bar_length,
            "hasSynchronizationDevice": self.has_synchronization_device,
            "feedChannel": self.feed_channel,
            "feedRod": self.feed_rod,
            "customerName": self.customer_name,
            "customerNumber": self.customer_number,
            "articleNumber": self.article_number,
            "badge": self.badge,
            "selectable": self.selectable,
        }


@dataclass
class ExtractionResult:
    success: bool
    extracted_machines: List[ExtractedMachine]
    total_machines_found: int
    valid_machines: int
    duplicate_machines: int
    ocr_engine: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ExtractionResult":
        machines = [ExtractedMachine.from_api(m) for m in data.get("extractedMachines") or []]
        return cls(
            success=bool(data.get("success")),
            extracted_machines=machines,
            total_machines_found=int(data.get("totalMachinesFound") or len(machines)),
            valid_machines=int(data.get("validMachines") or 0),
            duplicate_machines=int(data.get("duplicateMachines") or 0),
            ocr_engine=data.get("ocrEngine") or "",
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class BatchCreateItem:
    machine_number: str
    success: bool
    machine_id: str = ""
    error: str = ""
    processed_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "machineNumber": self.machine_number,
            "success": self.success,
            "machineId": self.machine_id,
            "error": self.error,
            "processedAt": self.processed_at,
        }


@dataclass
class BatchCreateResult:
    total_machines: int
    successfully_created: int
    failed: int
    results: List[BatchCreateItem]
    processing_time: float = 0.0

    @property
    def success(self) -> bool:
        return self.successfully_created > 0

    @property
    def summary(self) -> str:
        return f"{self.successfully_created} Maschinen erfolgreich erstellt, {self.failed} Fehler"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "totalMachines": self.total_machines,
            "successfullyCreated": self.successfully_created,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary,
            "processingTime": self.processing_time,
        }


# -----------------------------
# OCR models
# -----------------------------

@dataclass
class TrainedModel:
    model_id: str
    model_name: str
    created_at: Optional[str] = None
    status: str = ""
    accuracy: Optional[float] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "TrainedModel":
        return cls(
            model_id=data.get("modelId") or data.get("ModelId") or "",
            model_name=data.get("modelName") or data.get("ModelName") or "",
            created_at=data.get("createdAt"),
            status=data.get("status") or "",
            accuracy=data.get("accuracy"),
        )

    @property
    def is_prebuilt(self) -> bool:
        return self.model_id.startswith("prebuilt-")

    @property
    def display_name(self) -> str:
        if self.is_prebuilt:
            return self.model_id.replace("prebuilt-", "").replace(".", " ")
        return self.model_name or self.model_id
