# listing_pipeline/classifier.py
"""Private-seller / agency / expired classification of raw provider items.

`Classifier.classify` depends only on the item and the reference time it is
given, so a labeled fixture always gets the same label. Agency detection by
name is a pluggable `AgencyDetector`; the default is a keyword blacklist that
can be replaced from a file (see `AGENCY_KEYWORDS_FILE`).
"""
import enum
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Protocol

from .config import AGENCY_KEYWORDS_FILE
from .utils import logger


class Label(str, enum.Enum):
    PRIVATE = "private"
    AGENCY = "agency"
    EXPIRED = "expired"


DEFAULT_AGENCY_KEYWORDS = (
    "inmobiliaria",
    "inmobiliario",
    "agencia",
    "agente",
    "agency",
    "real estate",
    "realestate",
    "realty",
    "gestión inmobiliaria",
    "gestion inmobiliaria",
    "servicios",
    "soluciones",
    "inversiones",
    "inversión",
    "inversion",
    "consultores",
    "consultoría",
    "consultoria",
    "asociados",
    "partners",
    "century 21",
    "century21",
    "remax",
    "re/max",
    "coldwell",
    "engel",
    "voelkers",
    "völkers",
    "lucas fox",
    "lucasfox",
    "barnes",
    "savills",
    "knight frank",
    "jll",
    "cushman",
    "cbre",
    "tecnocasa",
    "habitaclia",
    "fotocasa",
    "pisos.com",
    "s.l.",
    "s.l ",
    "s.a.",
    "s.a ",
    "s.l.u",
    "sociedad limitada",
    "asesor inmobiliario",
    "broker",
    "promotor",
    "promotora",
    "desarrollo inmobiliario",
    "construcciones",
    "administracion de fincas",
    "gestion de alquileres",
    "compraventa",
)

# provider statuses that still describe a live, renewable ad
RENEWABLE_STATUSES = frozenset({"", "good", "renew", "active"})


class AgencyDetector(Protocol):
    def classify(self, name: str, commercial_name: str) -> Label:
        ...


class KeywordBlacklist:
    """Flags a poster as an agency when any keyword occurs in its names."""

    def __init__(self, keywords: Iterable[str] = DEFAULT_AGENCY_KEYWORDS):
        self.keywords = tuple(k.lower() for k in keywords if k and k.strip())

    @classmethod
    def from_file(cls, path):
        lines = Path(path).read_text(encoding="utf-8").splitlines()
        # surrounding spaces are significant (" sl " must not match "isla")
        keywords = [ln for ln in lines if ln.strip() and not ln.lstrip().startswith("#")]
        logger.info("Loaded %d agency keywords from %s", len(keywords), path)
        return cls(keywords)

    def match(self, name: str = "", commercial_name: str = "") -> Optional[str]:
        # padded so edge keywords like "s.l " still hit at the end of a name
        combined = f" {name or ''} {commercial_name or ''} ".lower()
        if not combined.strip():
            return None
        for kw in self.keywords:
            if kw in combined:
                return kw
        return None

    def classify(self, name: str, commercial_name: str) -> Label:
        return Label.AGENCY if self.match(name, commercial_name) else Label.PRIVATE


def default_detector() -> AgencyDetector:
    if AGENCY_KEYWORDS_FILE:
        return KeywordBlacklist.from_file(AGENCY_KEYWORDS_FILE)
    return KeywordBlacklist()


def _parse_time(value) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        # provider sends epoch milliseconds
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class Classifier:
    def __init__(self, detector: Optional[AgencyDetector] = None, max_age_days: int = 90):
        self.detector = detector or KeywordBlacklist()
        self.max_age_days = max_age_days

    def is_expired(self, item: Dict[str, Any], as_of: datetime) -> bool:
        status = str(item.get("status") or "").strip().lower()
        if status not in RENEWABLE_STATUSES:
            return True
        first_seen = _parse_time(item.get("firstActivationDate"))
        if first_seen is not None:
            age_days = (as_of - first_seen).total_seconds() / 86400
            if age_days > self.max_age_days:
                return True
        return False

    def classify(self, item: Dict[str, Any], as_of: datetime) -> Label:
        if self.is_expired(item, as_of):
            return Label.EXPIRED
        contact = item.get("contactInfo")
        if not isinstance(contact, dict):
            contact = {}
        if str(contact.get("userType") or "").lower() != "private":
            return Label.AGENCY
        if contact.get("micrositeShortName"):
            return Label.AGENCY
        return self.detector.classify(contact.get("contactName") or "", contact.get("commercialName") or "")
