# listing_pipeline/zones.py
"""Static zone catalog.

`DAILY_ZONES` is the maintenance set run by the interval scheduler;
`FULL_CATALOG` is the URL-scoped catalog the continuation loop re-submits
until the corpus target is reached.
"""
from typing import List, Sequence
from .models import Operation
from .schemas import GeoFilter, ZoneSpec
from .utils import logger

SALE = Operation.SALE
RENT = Operation.RENT
IDEALISTA = "https://www.idealista.com/venta-viviendas"


def _zone(name, operation, geo, path=None, min_price=None, max_items=2500):
    start_url = None
    if path is not None:
        start_url = f"{IDEALISTA}/{path}/"
        if min_price:
            start_url += f"con-precio-desde_{int(min_price)}/"
    return ZoneSpec(
        name=name,
        operation=operation,
        location_name=None if start_url else name,
        start_url=start_url,
        geo=geo,
        min_price=min_price,
        max_items=max_items,
    )


def _city(city, province="Málaga", **extra):
    return GeoFilter(city=city, province=province, **extra)


DAILY_ZONES: List[ZoneSpec] = [
    _zone("malaga", RENT, _city("Málaga")),
    _zone("madrid", RENT, _city("Madrid", province="Madrid")),
    _zone("benalmadena", RENT, _city("Benalmádena")),
    _zone("fuengirola", RENT, _city("Fuengirola")),
    _zone("higueron fuengirola", RENT, _city("Fuengirola", neighborhood="El Higuerón"), max_items=1500),
    _zone("marbella", RENT, _city("Marbella"), max_items=1500),
    _zone("torremolinos", RENT, _city("Torremolinos"), max_items=1500),
    _zone("malaga", SALE, _city("Málaga"), max_items=1000),
    _zone("madrid", SALE, _city("Madrid", province="Madrid"), max_items=1000),
]

FULL_CATALOG: List[ZoneSpec] = [
    # Málaga ciudad
    _zone("malaga", SALE, _city("Málaga"), "malaga", 80000, 5000),
    _zone("malaga este", SALE, _city("Málaga", district="Este"), "malaga/este", 80000, 3000),
    _zone("teatinos malaga", SALE, _city("Málaga", district="Teatinos-Universidad"),
          "malaga/teatinos-universidad", 80000, 3000),
    _zone("pedregalejo malaga", SALE, _city("Málaga", district="Pedregalejo-El Palo"),
          "malaga/pedregalejo-el-palo", 80000, 3000),
    _zone("churriana malaga", SALE, _city("Málaga", district="Churriana"), "malaga/churriana", max_items=2000),
    _zone("campanillas malaga", SALE, _city("Málaga", district="Campanillas"), "malaga/campanillas", max_items=2000),
    _zone("puerto de la torre malaga", SALE, _city("Málaga", district="Puerto de la Torre"),
          "malaga/puerto-de-la-torre", max_items=2000),
    # Torremolinos / Benalmádena
    _zone("torremolinos", SALE, _city("Torremolinos"), "torremolinos-malaga", 80000, 3000),
    _zone("benalmadena", SALE, _city("Benalmádena"), "benalmadena-malaga", 80000, 3000),
    _zone("benalmadena costa", SALE, _city("Benalmádena", district="Benalmádena Costa"),
          "benalmadena-malaga/benalmadena-costa", 80000),
    _zone("arroyo de la miel", SALE, _city("Benalmádena", district="Arroyo de la Miel"),
          "benalmadena-malaga/arroyo-de-la-miel", 80000),
    # Fuengirola / Mijas
    _zone("fuengirola", SALE, _city("Fuengirola"), "fuengirola-malaga", 80000, 3000),
    _zone("los boliches fuengirola", SALE, _city("Fuengirola", district="Los Boliches"),
          "fuengirola-malaga/los-boliches", 80000),
    _zone("mijas costa", SALE, _city("Mijas", district="Mijas Costa"), "mijas-malaga/mijas-costa", 80000, 3000),
    _zone("mijas pueblo", SALE, _city("Mijas", district="Mijas Pueblo"), "mijas-malaga/mijas-pueblo", 80000),
    _zone("calahonda mijas", SALE, _city("Mijas", district="Calahonda"), "mijas-malaga/calahonda", max_items=2000),
    _zone("higueron fuengirola", SALE, _city("Fuengirola", district="El Higuerón"),
          "fuengirola-malaga/el-higueron", max_items=2000),
    # Marbella
    _zone("marbella", SALE, _city("Marbella"), "marbella-malaga", 200000, 5000),
    _zone("nueva andalucia marbella", SALE, _city("Marbella", district="Nueva Andalucía"),
          "marbella-malaga/nueva-andalucia", 150000, 3000),
    _zone("san pedro de alcantara", SALE, _city("Marbella", district="San Pedro de Alcántara"),
          "marbella-malaga/san-pedro-de-alcantara", 100000, 3000),
    _zone("marbella este", SALE, _city("Marbella", district="Marbella Este"),
          "marbella-malaga/marbella-este", 150000),
    _zone("las chapas marbella", SALE, _city("Marbella", district="Las Chapas"),
          "marbella-malaga/las-chapas", max_items=2000),
    # Estepona / Benahavís / Manilva
    _zone("estepona", SALE, _city("Estepona"), "estepona-malaga", 100000, 3000),
    _zone("estepona este", SALE, _city("Estepona", district="Estepona Este"), "estepona-malaga/estepona-este"),
    _zone("benahavis", SALE, _city("Benahavís"), "benahavis-malaga", 150000),
    _zone("manilva", SALE, _city("Manilva"), "manilva-malaga", 80000, 2000),
    _zone("casares", SALE, _city("Casares"), "casares-malaga", 80000, 2000),
    _zone("sotogrande", SALE, _city("San Roque", province="Cádiz", district="Sotogrande"),
          "san-roque-cadiz/sotogrande", 150000),
    # Axarquía and Costa Tropical
    _zone("nerja", SALE, _city("Nerja"), "nerja-malaga", max_items=3000),
    _zone("frigiliana", SALE, _city("Frigiliana"), "frigiliana-malaga", max_items=2000),
    _zone("torrox", SALE, _city("Torrox"), "torrox-malaga", max_items=2000),
    _zone("torre del mar", SALE, _city("Vélez-Málaga", district="Torre del Mar"), "velez-malaga/torre-del-mar"),
    _zone("velez malaga", SALE, _city("Vélez-Málaga"), "velez-malaga"),
    _zone("rincon de la victoria", SALE, _city("Rincón de la Victoria"), "rincon-de-la-victoria-malaga"),
    _zone("almunecar granada", SALE, _city("Almuñécar", province="Granada"), "almunecar-granada"),
    _zone("la herradura granada", SALE, _city("Almuñécar", province="Granada", district="La Herradura"),
          "almunecar-granada/la-herradura", max_items=2000),
    _zone("salobrena granada", SALE, _city("Salobreña", province="Granada"), "salobrena-granada", max_items=2000),
    _zone("motril granada", SALE, _city("Motril", province="Granada"), "motril-granada"),
    # Interior Málaga
    _zone("alhaurin de la torre", SALE, _city("Alhaurín de la Torre"), "alhaurin-de-la-torre-malaga"),
    _zone("alhaurin el grande", SALE, _city("Alhaurín el Grande"), "alhaurin-el-grande-malaga", max_items=2000),
    _zone("coin malaga", SALE, _city("Coín"), "coin-malaga"),
    _zone("mijas interior", SALE, _city("Mijas"), "mijas-malaga"),
    _zone("antequera", SALE, _city("Antequera"), "antequera-malaga", max_items=2000),
    _zone("ronda malaga", SALE, _city("Ronda"), "ronda-malaga"),
]


def validate_catalog(zones: Sequence[ZoneSpec]) -> List[ZoneSpec]:
    """Return the zones that cannot be reconciled, logging each one.

    Such zones are still scraped and ingested; only the "missing from
    scrape" deactivation is skipped for them.
    """
    flagged = [z for z in zones if not z.reconcilable]
    for z in flagged:
        logger.warning("Zone %s has no precise geography filter; it will be ingested but never reconciled", z.label())
    return flagged
