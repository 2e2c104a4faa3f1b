# listing_pipeline/schemas.py
import enum
import uuid
from datetime import datetime, timezone
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from .models import Operation
from .utils import geo_key

# GeoFilter field -> Listing column holding its geo_key slug
GEO_KEY_COLUMNS = {
    "province": "province_key",
    "city": "city_key",
    "district": "district_key",
    "neighborhood": "neighborhood_key",
}


class GeoFilter(BaseModel):
    """Structured geography scope of a zone.

    The same keys tag a listing at ingestion time and select reconciliation
    candidates, so both sides agree on what "inside the zone" means.
    """
    province: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    neighborhood: Optional[str] = None

    def keys(self) -> Dict[str, str]:
        out = {}
        for field, column in GEO_KEY_COLUMNS.items():
            key = geo_key(getattr(self, field))
            if key:
                out[column] = key
        return out

    def is_precise(self) -> bool:
        keys = self.keys()
        return "city_key" in keys or "province_key" in keys

    def matches(self, obj) -> bool:
        return all(getattr(obj, column, None) == key for column, key in self.keys().items())


class ZoneSpec(BaseModel):
    name: str
    operation: Operation
    location_name: Optional[str] = None
    start_url: Optional[str] = None
    geo: Optional[GeoFilter] = None
    # price floor baked into start_url; part of the reconciliation scope
    min_price: Optional[float] = None
    max_items: int = Field(2500, gt=0)

    @property
    def reconcilable(self) -> bool:
        return self.geo is not None and self.geo.is_precise()

    def label(self) -> str:
        return f"{self.name} [{self.operation.value}]"


class ListingData(BaseModel):
    external_id: str = Field(..., min_length=1, max_length=255)
    operation: Operation
    price: float = Field(..., ge=0)
    price_per_sqm: Optional[float] = None
    title: Optional[str] = None
    description: Optional[str] = None
    property_type: str = "other"
    url: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    features: Dict[str, Any] = Field(default_factory=dict)
    address: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    neighborhood: Optional[str] = None
    province: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    source: str = "idealista"
    raw_json: Optional[dict] = None

    def geo_columns(self) -> Dict[str, Optional[str]]:
        return {column: geo_key(getattr(self, field)) for field, column in GEO_KEY_COLUMNS.items()}


class ZoneResult(BaseModel):
    zone: str
    total: int = 0
    private_count: int = 0
    agency_count: int = 0
    new_count: int = 0
    updated_count: int = 0
    deactivated_count: int = 0
    skipped_count: int = 0
    error: Optional[str] = None


class RunStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"


class RunRecord(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    zones: List[str] = Field(default_factory=list)
    status: RunStatus = RunStatus.RUNNING
    per_zone_results: List[ZoneResult] = Field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return bool(self.per_zone_results) and all(r.error for r in self.per_zone_results)

    @property
    def new_total(self) -> int:
        return sum(r.new_count for r in self.per_zone_results)


class ImportResult(BaseModel):
    dataset_id: str
    total: int
    private_count: int
    agency_count: int
    new_count: int
    updated_count: int
    skipped_count: int
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RunRequest(BaseModel):
    zones: Optional[List[ZoneSpec]] = None
