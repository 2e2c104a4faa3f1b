# listing_pipeline/reconcile.py
"""Partition-scoped deactivation of listings that left the source.

Two passes per zone:

1. ids the scrape itself labelled agency/expired are deactivated wherever
   they are (the id is the scope, so this is always safe);
2. active listings inside the zone's scope that the scrape did not return
   are deactivated, but only when the scrape looks complete and healthy.

Pass 2 is the dangerous one: its candidate set comes from
`crud.zone_scope_clause`, the same geography keys that ingestion writes, and
is skipped outright for zones without a precise filter.
"""
from typing import AbstractSet

from sqlalchemy.orm import Session

from . import crud
from .models import Classification
from .schemas import ZoneSpec
from .utils import logger

DEFAULT_MIN_SEEN = 50


def reconcile(
    db: Session,
    zone: ZoneSpec,
    seen_ids: AbstractSet[str],
    agency_ids: AbstractSet[str],
    new_count: int,
    min_seen: int = DEFAULT_MIN_SEEN,
    truncated: bool = False,
) -> int:
    deactivated = 0

    if agency_ids:
        n = crud.deactivate(db, agency_ids - seen_ids, classification=Classification.AGENCY)
        if n:
            logger.info("%s: %d agency/expired listings deactivated", zone.label(), n)
        deactivated += n

    if not zone.reconcilable:
        logger.debug("%s: no precise filter, skipping missing-listing pass", zone.label())
        return deactivated
    if len(seen_ids) < min_seen or new_count <= 0:
        logger.info(
            "%s: skipping missing-listing pass (seen=%d, min=%d, new=%d)",
            zone.label(), len(seen_ids), min_seen, new_count,
        )
        return deactivated
    if truncated:
        logger.info("%s: scrape hit max_items=%d, skipping missing-listing pass", zone.label(), zone.max_items)
        return deactivated

    missing = [eid for eid in crud.active_ids_in_zone(db, zone) if eid not in seen_ids]
    if missing:
        n = crud.deactivate(db, missing)
        logger.info("%s: %d listings no longer in scrape deactivated", zone.label(), n)
        deactivated += n
    return deactivated
