# listing_pipeline/models.py
"""SQLAlchemy ORM models for the canonical listing store.

`Listing` is the one record per external id shared with downstream
consumers; `PricePoint` rows form its append-only price history. Only the
upsert and reconciliation code in this package writes `status` and
`classification`.
"""
import enum
from sqlalchemy import (
    Column, Integer, Text, Numeric, Float, TIMESTAMP, JSON, ForeignKey, Index, func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from .db import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Operation(str, enum.Enum):
    SALE = "sale"
    RENT = "rent"


class Classification(str, enum.Enum):
    PRIVATE = "private"
    AGENCY = "agency"


class Status(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    RESERVED = "reserved"
    SOLD = "sold"


class Listing(Base):
    __tablename__ = "listings"
    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(Text, nullable=False, unique=True, index=True)
    source = Column(Text, nullable=False, default="idealista")
    operation = Column(Text, nullable=False)
    price = Column(Numeric, nullable=False)
    price_per_sqm = Column(Numeric)
    title = Column(Text)
    description = Column(Text)
    property_type = Column(Text)
    url = Column(Text)
    images = Column(JSONType)
    features = Column(JSONType)

    address = Column(Text)
    city = Column(Text)
    district = Column(Text)
    neighborhood = Column(Text)
    province = Column(Text)
    latitude = Column(Float)
    longitude = Column(Float)
    # slugs written through utils.geo_key; zone filters compare these
    city_key = Column(Text)
    district_key = Column(Text)
    neighborhood_key = Column(Text)
    province_key = Column(Text)

    contact_name = Column(Text)
    contact_phone = Column(Text)
    classification = Column(Text, nullable=False, default=Classification.PRIVATE.value)
    status = Column(Text, nullable=False, default=Status.ACTIVE.value)
    raw_json = Column(JSONType)

    scraped_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    price_history = relationship(
        "PricePoint",
        back_populates="listing",
        order_by="PricePoint.id",
        cascade="all, delete-orphan",
    )


class PricePoint(Base):
    __tablename__ = "listing_price_history"
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    price = Column(Numeric, nullable=False)
    at = Column(TIMESTAMP(timezone=True), nullable=False)

    listing = relationship("Listing", back_populates="price_history")


Index("idx_listings_scope", Listing.operation, Listing.status, Listing.classification)
Index("idx_listings_city_key", Listing.city_key)
Index("idx_listings_province_key", Listing.province_key)
Index("idx_listings_price", Listing.price)
