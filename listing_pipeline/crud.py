# listing_pipeline/crud.py
"""Store operations for `Listing` entities.

`upsert_listing` is the idempotent create-or-update used by ingestion; the
remaining helpers are the scoped queries and bulk status changes that
reconciliation and the admin status endpoint need.
"""
import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import Classification, Listing, PricePoint, Status
from .schemas import ListingData, ZoneSpec
from .utils import chunked, logger

# bound-parameter batches for IN (...) clauses
IN_CHUNK = 500


class UpsertOutcome(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"


def _columns(data: ListingData) -> Dict:
    values = data.model_dump(mode="json")
    values.update(data.geo_columns())
    return values


def _same_price(a, b) -> bool:
    if a is None or b is None:
        return a is b
    return Decimal(str(a)) == Decimal(str(b))


def _merge(obj: Listing, values: Dict, now: datetime):
    if not _same_price(obj.price, values["price"]):
        # history keeps the price being replaced
        obj.price_history.append(PricePoint(price=obj.price, at=now))
    for k, v in values.items():
        setattr(obj, k, v)
    obj.status = Status.ACTIVE.value
    obj.classification = Classification.PRIVATE.value
    obj.scraped_at = now


def upsert_listing(db: Session, data: ListingData, now: Optional[datetime] = None) -> UpsertOutcome:
    now = now or datetime.now(timezone.utc)
    values = _columns(data)
    existing = get_listing(db, data.external_id)
    if existing is None:
        db.add(Listing(
            **values,
            status=Status.ACTIVE.value,
            classification=Classification.PRIVATE.value,
            scraped_at=now,
        ))
        try:
            db.commit()
            return UpsertOutcome.CREATED
        except IntegrityError:
            # another zone inserted the same id first
            db.rollback()
            logger.debug("Lost insert race for %s; updating instead", data.external_id)
            existing = get_listing(db, data.external_id)
            if existing is None:
                raise
    _merge(existing, values, now)
    db.commit()
    return UpsertOutcome.UPDATED


def get_listing(db: Session, external_id: str) -> Optional[Listing]:
    return db.execute(select(Listing).where(Listing.external_id == external_id)).scalar_one_or_none()


def zone_scope_clause(zone: ZoneSpec):
    """SQL condition selecting exactly the listings a zone's scrape covers.

    Returns None when the zone has no precise geography, in which case
    nothing may be reconciled against it.
    """
    if not zone.reconcilable:
        return None
    conds = [Listing.operation == zone.operation.value]
    for column, key in zone.geo.keys().items():
        conds.append(getattr(Listing, column) == key)
    if zone.min_price is not None:
        conds.append(Listing.price >= zone.min_price)
    return and_(*conds)


def active_ids_in_zone(db: Session, zone: ZoneSpec) -> List[str]:
    clause = zone_scope_clause(zone)
    if clause is None:
        return []
    stmt = select(Listing.external_id).where(Listing.status == Status.ACTIVE.value, clause)
    return list(db.execute(stmt).scalars())


def deactivate(db: Session, external_ids: Iterable[str], classification: Optional[Classification] = None) -> int:
    """Mark the given active listings inactive; returns how many changed."""
    ids = sorted(set(external_ids))
    values = {"status": Status.INACTIVE.value}
    if classification is not None:
        values["classification"] = classification.value
    changed = 0
    for chunk in chunked(ids, IN_CHUNK):
        res = db.execute(
            update(Listing)
            .where(Listing.external_id.in_(chunk), Listing.status == Status.ACTIVE.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        changed += res.rowcount or 0
    db.commit()
    return changed


def count_active(db: Session, **filters) -> int:
    conds = [Listing.status == Status.ACTIVE.value, Listing.classification == Classification.PRIVATE.value]
    if filters.get("operation"):
        conds.append(Listing.operation == filters["operation"])
    if filters.get("city_key"):
        conds.append(Listing.city_key == filters["city_key"])
    return db.execute(select(func.count(Listing.id)).where(*conds)).scalar_one()


def counts_by_city(db: Session) -> Dict[str, int]:
    stmt = (
        select(Listing.city_key, func.count(Listing.id))
        .where(Listing.status == Status.ACTIVE.value, Listing.classification == Classification.PRIVATE.value)
        .group_by(Listing.city_key)
    )
    return {city or "unknown": n for city, n in db.execute(stmt)}


def latest_scrape(db: Session) -> Optional[datetime]:
    return db.execute(select(func.max(Listing.scraped_at))).scalar_one()


def active_contacts(db: Session):
    stmt = select(Listing.external_id, Listing.contact_name).where(Listing.status == Status.ACTIVE.value)
    return list(db.execute(stmt))
