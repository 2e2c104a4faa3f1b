# listing_pipeline/services.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Set

from sqlalchemy.orm import Session

from . import crud
from .classifier import AgencyDetector, Classifier, KeywordBlacklist, Label
from .models import Classification
from .normalizer import NormalizationError, extract_id, normalize
from .schemas import ZoneSpec
from .utils import logger


@dataclass
class IngestOutcome:
    total: int = 0
    new_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    seen_ids: Set[str] = field(default_factory=set)
    agency_ids: Set[str] = field(default_factory=set)

    @property
    def private_count(self):
        return len(self.seen_ids)

    @property
    def agency_count(self):
        return len(self.agency_ids)


def ingest_items(
    db: Session,
    items: Iterable[Dict[str, Any]],
    classifier: Classifier,
    as_of: datetime,
    zone: Optional[ZoneSpec] = None,
) -> IngestOutcome:
    """Classify, normalize and upsert a result set.

    Agency and expired items are never written; their ids are collected so
    reconciliation can retire any earlier copy. Malformed items (no id, a
    missing or non-finite price, a field of the wrong type) are skipped and
    counted; the rest of the result set is still ingested.
    """
    out = IngestOutcome()
    where = zone.label() if zone else "import"
    for item in items:
        out.total += 1
        if not isinstance(item, dict):
            out.skipped_count += 1
            logger.warning("%s: skipping non-object item %r", where, item)
            continue
        label = classifier.classify(item, as_of)
        if label is not Label.PRIVATE:
            item_id = extract_id(item)
            if item_id:
                out.agency_ids.add(item_id)
            continue
        try:
            data = normalize(item, zone)
        except NormalizationError as e:
            out.skipped_count += 1
            if out.skipped_count <= 3:
                logger.warning("%s: skipping item: %s", where, e)
            continue
        outcome = crud.upsert_listing(db, data)
        out.seen_ids.add(data.external_id)
        if outcome is crud.UpsertOutcome.CREATED:
            out.new_count += 1
        else:
            out.updated_count += 1
    logger.info(
        "%s: %d items | private %d | agency/expired %d | new %d | updated %d | skipped %d",
        where, out.total, out.private_count, out.agency_count, out.new_count, out.updated_count, out.skipped_count,
    )
    return out


def run_cleanup(db: Session, detector: Optional[AgencyDetector] = None) -> Dict[str, Any]:
    """Re-check stored contact names of active listings against the blacklist."""
    detector = detector or KeywordBlacklist()
    flagged = [eid for eid, name in crud.active_contacts(db) if detector.classify(name or "", "") is Label.AGENCY]
    removed = crud.deactivate(db, flagged, classification=Classification.AGENCY) if flagged else 0
    logger.info("Cleanup: %d agency listings removed", removed)
    return {"agency_removed": removed, "at": datetime.now(timezone.utc)}
