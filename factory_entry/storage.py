"""Flat JSON file persistence for settings, product lists and inventory."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo
import json


SETTINGS_FILENAME = "settings.json"
INVENTORY_FILENAME = "rm-inventory.json"

_RECEIPT_PRODUCTS = "products-receipt.json"
_PRODUCTION_PRODUCTS = "products-production.json"

# Receipt and issuance share one list; production and DC entry share another.
PRODUCT_LIST_FILES: Dict[str, str] = {
    "receipt": _RECEIPT_PRODUCTS,
    "issuance": _RECEIPT_PRODUCTS,
    "production": _PRODUCTION_PRODUCTS,
    "dc-entry": _PRODUCTION_PRODUCTS,
}

_TIMESTAMP_FORMAT = "%d %b %Y %H:%M"


class ConfigurationError(Exception):
    """Raised when no forwarding URL is available."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime, tz_name: str) -> str:
    """Render ``value`` as ``18 Oct 2026 14:05`` in the ``tz_name`` zone."""

    return value.astimezone(ZoneInfo(tz_name)).strftime(_TIMESTAMP_FORMAT)


@dataclass
class JsonDocument:
    """A single JSON file that is always read and written as a whole."""

    path: Path
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.path = Path(self.path)

    def read(self) -> Any:
        with self._lock:
            if not self.path.exists():
                return None
            raw = self.path.read_text(encoding="utf-8")
            return json.loads(raw)

    def write(self, value: Any) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.path.with_suffix(".tmp")
            try:
                temp_path.write_text(
                    json.dumps(value, indent=2, ensure_ascii=False), encoding="utf-8"
                )
                temp_path.replace(self.path)
            except Exception:
                temp_path.unlink(missing_ok=True)
                raise

    def read_or_create(self, default: Any) -> Any:
        with self._lock:
            value = self.read()
            if value is None:
                self.write(default)
                value = default
            return value


class SettingsStore:
    """Stores the forwarding URL as ``{"endpoint": ...}``."""

    def __init__(self, data_dir: str | Path) -> None:
        self.document = JsonDocument(Path(data_dir) / SETTINGS_FILENAME)

    def load(self) -> Dict[str, Any]:
        settings = self.document.read_or_create({"endpoint": ""})
        if not isinstance(settings, dict):
            raise ValueError("Settings file does not contain an object")
        return settings

    def save(self, endpoint: Any) -> Dict[str, Any]:
        if not isinstance(endpoint, str):
            raise ValueError("Invalid endpoint format")
        settings = {"endpoint": endpoint}
        self.document.write(settings)
        return settings

    def forwarding_url(self) -> str:
        # Unlike load(), never creates the file.
        settings = self.document.read()
        if settings is None:
            raise ConfigurationError("Configuration error: Settings file not found.")
        endpoint = settings.get("endpoint") if isinstance(settings, dict) else None
        if not endpoint:
            raise ConfigurationError(
                "Configuration error: No API endpoint configured in settings."
            )
        return str(endpoint)


class ProductCatalog:
    """Product dropdown lists, one file per form family."""

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)
        self._documents: Dict[str, JsonDocument] = {}

    @staticmethod
    def resolve_category(form_type: Optional[str]) -> Optional[str]:
        if not form_type:
            return None
        return PRODUCT_LIST_FILES.get(form_type)

    def _document(self, filename: str) -> JsonDocument:
        document = self._documents.get(filename)
        if document is None:
            document = JsonDocument(self.data_dir / filename)
            self._documents[filename] = document
        return document

    def list_products(self, form_type: Optional[str]) -> List[str]:
        filename = self.resolve_category(form_type)
        if filename is None:
            return []
        products = self._document(filename).read()
        if products is None:
            return []
        if not isinstance(products, list):
            raise ValueError(f"{filename} does not contain a list")
        return products

    def replace_products(self, form_type: Optional[str], values: Iterable[str]) -> List[str]:
        filename = self.resolve_category(form_type)
        if filename is None:
            raise ValueError("Invalid type")
        products = [str(value) for value in values]
        self._document(filename).write(products)
        return products


class InventoryStore:
    """The raw material inventory snapshot pushed by the external system."""

    def __init__(self, data_dir: str | Path, *, timezone_name: str = "Asia/Karachi") -> None:
        self.document = JsonDocument(Path(data_dir) / INVENTORY_FILENAME)
        self.timezone_name = timezone_name

    def load(self) -> Dict[str, Any]:
        snapshot = self.document.read()
        if snapshot is None:
            return {"lastUpdated": None, "items": []}
        if not isinstance(snapshot, dict):
            raise ValueError("Inventory file does not contain an object")
        return snapshot

    def replace(self, items: List[Any]) -> Dict[str, Any]:
        snapshot = {
            "lastUpdated": format_timestamp(_now(), self.timezone_name),
            "items": list(items),
        }
        self.document.write(snapshot)
        return snapshot


def _coerce_number(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        return float(str(value).strip().replace(",", ""))
    except ValueError:
        return 0


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass
class InventoryItem:
    """One row of the raw material inventory as shown in the view."""

    material_group: str = ""
    sku_code: str = ""
    description: str = ""
    unit: str = ""
    opening_stock: float = 0
    today_in: float = 0
    today_out: float = 0
    closing_stock: float = 0

    @classmethod
    def from_record(cls, record: Any) -> "InventoryItem":
        if not isinstance(record, dict):
            record = {}
        return cls(
            material_group=_coerce_text(record.get("MATERIAL GROUP")),
            sku_code=_coerce_text(record.get("SKU Code")),
            description=_coerce_text(record.get("Material Description")),
            unit=_coerce_text(record.get("UOM")),
            opening_stock=_coerce_number(record.get("Opening Stock")),
            today_in=_coerce_number(record.get("Today's In")),
            today_out=_coerce_number(record.get("Today's Out")),
            closing_stock=_coerce_number(record.get("Closing Stock")),
        )


def inventory_categories(items: Iterable[InventoryItem]) -> List[str]:
    return sorted({item.material_group for item in items if item.material_group})


def filter_inventory(
    items: Iterable[InventoryItem],
    *,
    category: Optional[str] = None,
    search: Optional[str] = None,
    only_in: bool = False,
    only_out: bool = False,
) -> List[InventoryItem]:
    """Filter by material group, description text and today's movement."""

    needle = (search or "").strip().lower()
    selected: List[InventoryItem] = []
    for item in items:
        if category and item.material_group != category:
            continue
        if needle and needle not in item.description.lower():
            continue
        if only_in and item.today_in <= 0:
            continue
        if only_out and item.today_out <= 0:
            continue
        selected.append(item)
    return selected


__all__ = [
    "ConfigurationError",
    "InventoryItem",
    "InventoryStore",
    "JsonDocument",
    "PRODUCT_LIST_FILES",
    "ProductCatalog",
    "SettingsStore",
    "filter_inventory",
    "format_timestamp",
    "inventory_categories",
]
