# listing_pipeline/normalizer.py
"""Raw provider item -> canonical `ListingData`.

Handles both item shapes the provider emits (flat fields, or nested
`location` / `features` / `priceInfo` / `contactInfo` objects) by trying
each source in order. A missing id, an unusable price or a field of the
wrong type makes the item unusable; anything else missing is left empty.
"""
import math
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .models import Operation
from .schemas import ListingData, ZoneSpec


class NormalizationError(ValueError):
    """Raised when an item cannot be turned into a listing."""


PROPERTY_TYPE_MAP = {
    "flat": "apartment",
    "apartment": "apartment",
    "piso": "apartment",
    "house": "house",
    "casa": "house",
    "chalet": "house",
    "villa": "villa",
    "penthouse": "penthouse",
    "atico": "penthouse",
    "ático": "penthouse",
    "studio": "studio",
    "estudio": "studio",
    "duplex": "duplex",
    "dúplex": "duplex",
    "loft": "loft",
    "land": "land",
    "terreno": "land",
    "commercial": "commercial",
    "premises": "commercial",
    "oficina": "commercial",
    "office": "commercial",
    "local": "commercial",
}

# (province, lat_min, lat_max, lon_min, lon_max), checked in order
PROVINCE_BOXES = (
    ("Málaga", 36.2, 37.3, -5.6, -3.8),
    ("Madrid", 39.8, 41.2, -4.6, -3.0),
    ("Granada", 36.7, 38.0, -4.1, -2.5),
    ("Cádiz", 35.9, 36.8, -5.9, -5.0),
)


def first(*values):
    """First value that is not None or an empty string."""
    for v in values:
        if v is not None and v != "":
            return v
    return None


def _to_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _dict(value) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _text(value) -> Optional[str]:
    if value is None or value == "" or isinstance(value, (dict, list)):
        return None
    return str(value)


def detect_province(lat, lon) -> Optional[str]:
    lat, lon = _to_float(lat), _to_float(lon)
    if lat is None or lon is None:
        return None
    for name, lat_min, lat_max, lon_min, lon_max in PROVINCE_BOXES:
        if lat_min <= lat <= lat_max and lon_min <= lon <= lon_max:
            return name
    return None


def extract_id(item: Dict[str, Any]) -> Optional[str]:
    value = first(item.get("propertyCode"), item.get("adId"), item.get("id"))
    return str(value) if value is not None else None


def _images(item) -> List[str]:
    multimedia = _dict(item.get("multimedia"))
    images = []
    if isinstance(multimedia.get("images"), list):
        for img in multimedia["images"]:
            url = img.get("url") or img.get("src") if isinstance(img, dict) else img
            if isinstance(url, str) and url:
                images.append(url)
    elif isinstance(item.get("images"), list):
        images = [i for i in item["images"] if isinstance(i, str) and i]
    if not images and isinstance(item.get("thumbnail"), str) and item["thumbnail"]:
        images = [item["thumbnail"]]
    return images


def _features(item) -> Dict[str, Any]:
    f = _dict(item.get("features"))
    return {
        "size_sqm": first(item.get("size"), f.get("size_sqm")),
        "bedrooms": first(item.get("rooms"), f.get("bedrooms")),
        "bathrooms": first(item.get("bathrooms"), f.get("bathrooms")),
        "floor": first(item.get("floor"), f.get("floor")),
        "has_elevator": first(item.get("hasLift"), f.get("has_elevator")),
        "has_parking": first(f.get("hasParking"), f.get("has_parking")),
        "has_terrace": first(f.get("hasTerrace"), f.get("has_terrace")),
        "has_pool": first(f.get("hasSwimmingPool"), f.get("has_pool")),
        "has_ac": first(f.get("hasAirConditioning"), f.get("has_ac")),
        "has_garden": first(f.get("hasGarden"), f.get("has_garden")),
        "is_exterior": first(item.get("exterior"), f.get("is_exterior")),
    }


def _operation(item, zone: Optional[ZoneSpec]) -> Operation:
    raw = str(item.get("operation") or "").lower()
    if raw in ("sale", "rent"):
        return Operation(raw)
    if zone is not None:
        return zone.operation
    return Operation.SALE


def normalize(item: Dict[str, Any], zone: Optional[ZoneSpec] = None) -> ListingData:
    external_id = extract_id(item)
    if not external_id:
        raise NormalizationError("item has no propertyCode/adId/id")

    price_info = _dict(_dict(item.get("priceInfo")).get("price"))
    raw_price = first(item.get("price"), price_info.get("amount"))
    price = _to_float(raw_price)
    if price is None or price < 0:
        raise NormalizationError(f"item {external_id} has unusable price {raw_price!r}")

    loc = _dict(item.get("location"))
    zone_geo = zone.geo if zone is not None else None
    lat = _to_float(first(item.get("latitude"), loc.get("latitude")))
    lon = _to_float(first(item.get("longitude"), loc.get("longitude")))
    province = _text(first(
        item.get("province"),
        loc.get("province"),
        zone_geo.province if zone_geo else None,
        detect_province(lat, lon),
    ))
    city = _text(first(item.get("municipality"), loc.get("city"), zone_geo.city if zone_geo else None))
    address = _text(first(item.get("address"), loc.get("address")))

    raw_type = str(first(item.get("propertyType"), item.get("typology")) or "").lower()
    property_type = PROPERTY_TYPE_MAP.get(raw_type, "other")
    size = _to_float(item.get("size"))
    price_per_sqm = _to_float(item.get("priceByArea"))
    if price_per_sqm is None and price and size:
        price_per_sqm = round(price / size)

    suggested = _dict(item.get("suggestedTexts"))
    contact = _dict(item.get("contactInfo"))
    phone = _dict(contact.get("phone1"))

    try:
        return ListingData(
            external_id=external_id,
            operation=_operation(item, zone),
            price=price,
            price_per_sqm=price_per_sqm,
            title=_text(first(item.get("title"), suggested.get("title"))) or f"{property_type} en {address or city or ''}".strip(),
            description=_text(item.get("description")) or "",
            property_type=property_type,
            url=_text(item.get("url")),
            images=_images(item),
            features=_features(item),
            address=address,
            city=city,
            district=_text(first(item.get("district"), loc.get("district"))),
            neighborhood=_text(first(item.get("neighborhood"), loc.get("neighborhood"))),
            province=province,
            latitude=lat,
            longitude=lon,
            contact_name=_text(first(contact.get("contactName"), contact.get("commercialName"))),
            contact_phone=_text(first(phone.get("phoneNumber"), contact.get("phone"))),
            raw_json=item,
        )
    except ValidationError as e:
        raise NormalizationError(f"item {external_id} is malformed: {e.error_count()} invalid field(s)") from e
