"""
Address Parser - Free-Text Street Address Decomposition

Splits a single-line street address into number, name and suffix using the
USPS street suffix table. Used as a fallback by the record transformer when
the spreadsheet does not carry separate street number/name/suffix columns.

No geocoding, no unit/direction handling: "123 N Main St Apt 4" yields
name "N Main St Apt 4" with an empty suffix because "4" is not a suffix.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Final


logger = logging.getLogger(__name__)


# =============================================================================
# USPS Street Suffixes
# =============================================================================

# Long forms and standard abbreviations (USPS Publication 28, Appendix C1)
STREET_SUFFIXES: Final[frozenset[str]] = frozenset(
    """
    ALLEY ALY AVENUE AVE BOULEVARD BLVD CIRCLE CIR COURT CT COVE CV
    CREEK CRK DRIVE DR LANE LN PARKWAY PKWY PLACE PL PLAZA PLZ
    ROAD RD SQUARE SQ STREET ST TERRACE TER TRAIL TRL WAY WY
    BEND BND BRANCH BR BRIDGE BRG BROOK BRK BURG BG BYPASS BYP
    CAMP CP CANYON CYN CAPE CPE CAUSEWAY CSWY CENTER CTR CENTERS CTRS
    CLIFFS CLFS CLUB CLB COMMON CMN COMMONS CMNS CORNER COR CORNERS CORS
    COURSE CRSE COURTS CTS COVES CVS CRESCENT CRES CROSSING XING CROSSROAD XRD
    CURVE CURV DALE DL DAM DM DIVIDE DV ESTATE EST ESTATES ESTS
    EXPRESSWAY EXPY EXTENSION EXT EXTENSIONS EXTS FALL FALLS FLS FERRY FRY
    FIELD FLD FIELDS FLDS FLAT FLT FLATS FLTS FORD FRD FORDS FRDS
    FOREST FRST FORGE FRG FORGES FRGS FORK FRK FORKS FRKS FORT FT
    FREEWAY FWY GARDEN GDN GARDENS GDNS GATEWAY GTWY GLEN GLN GLENS GLNS
    GREEN GRN GREENS GRNS GROVE GRV GROVES GRVS HARBOR HBR HARBORS HBRS
    HAVEN HVN HEIGHTS HTS HIGHWAY HWY HILL HL HILLS HLS HOLLOW HOLW
    INLET INLT ISLAND IS ISLANDS ISS ISLE JUNCTION JCT JUNCTIONS JCTS
    KEY KY KEYS KYS KNOLL KNL KNOLLS KNLS LAKE LK LAKES LKS
    LAND LANDING LNDG LIGHT LGT LIGHTS LGTS LOAF LF LOCK LCK
    LOCKS LCKS LODGE LDG LOOP MANOR MNR MANORS MNRS MEADOW MDW
    MEADOWS MDWS MEWS MILL ML MILLS MLS MISSION MSN MOTORWAY MTWY
    MOUNT MT MOUNTAIN MTN MOUNTAINS MTNS NECK NCK ORCHARD ORCH OVAL OVL
    OVERPASS OPAS PARK PARKS PASS PASSAGE PSGE PATH PIKE PINE PNE
    PINES PNES PLAIN PLN PLAINS PLNS POINT PT POINTS PTS PORT PRT
    PORTS PRTS PRAIRIE PR RADIAL RADL RAMP RANCH RNCH RAPID RPD
    RAPIDS RPDS REST RST RIDGE RDG RIDGES RDGS RIVER RIV ROADS RDS
    ROUTE RTE ROW RUE RUN SHOAL SHL SHOALS SHLS SHORE SHR SHORES SHRS
    SKYWAY SKWY SPRING SPG SPRINGS SPGS SPUR SPURS STATION STA STRAVENUE STRA
    STREAM STRM SUMMIT SMT THROUGHWAY TRWY TRACE TRCE TRACK TRAK TRAFFICWAY TRFY
    TUNNEL TUNL TURNPIKE TPKE UNDERPASS UPAS UNION UN UNIONS UNS VALLEY VLY
    VALLEYS VLYS VIADUCT VIA VIEW VW VIEWS VWS VILLAGE VLG VILLAGES VLGS
    VILLE VL VISTA VIS WALK WALKS WALL WELL WL WELLS WLS
    """.split()
)

# Long form -> standard abbreviation for the most common suffixes.
# Used when comparing addresses, never when populating canonical fields.
SUFFIX_ABBREVIATIONS: Final[dict[str, str]] = {
    "ALLEY": "ALY",
    "AVENUE": "AVE",
    "BOULEVARD": "BLVD",
    "CIRCLE": "CIR",
    "COURT": "CT",
    "COVE": "CV",
    "CRESCENT": "CRES",
    "DRIVE": "DR",
    "EXPRESSWAY": "EXPY",
    "FREEWAY": "FWY",
    "HIGHWAY": "HWY",
    "LANE": "LN",
    "PARKWAY": "PKWY",
    "PLACE": "PL",
    "PLAZA": "PLZ",
    "POINT": "PT",
    "ROAD": "RD",
    "ROUTE": "RTE",
    "SQUARE": "SQ",
    "STREET": "ST",
    "TERRACE": "TER",
    "TRAIL": "TRL",
    "TURNPIKE": "TPKE",
    "WAY": "WY",
}

_STREET_NUMBER_PATTERN: Final = re.compile(r"^\d+[A-Za-z]?$")


# =============================================================================
# Parsed Address
# =============================================================================


@dataclass(frozen=True)
class ParsedAddress:
    """Street components extracted from a one-line address."""

    street_number: str = ""
    street_name: str = ""
    street_suffix: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.street_number or self.street_name or self.street_suffix)

    def to_dict(self) -> dict[str, str]:
        return {
            "streetNumber": self.street_number,
            "streetName": self.street_name,
            "streetSuffix": self.street_suffix,
        }


def parse_street_address(full_address: str) -> ParsedAddress:
    """
    Decompose a free-text street address.

    The first token is taken as the street number when it is all digits
    with at most one trailing letter ("123", "12B", not "1st"). The last
    remaining token is taken as the suffix when it appears in
    STREET_SUFFIXES (case-insensitive, returned upper-cased). Everything in
    between is the street name.

    Args:
        full_address: Address text, e.g. "123 Main St"

    Returns:
        ParsedAddress; all fields empty for blank input
    """
    tokens = (full_address or "").split()
    if not tokens:
        return ParsedAddress()

    street_number = ""
    if _STREET_NUMBER_PATTERN.match(tokens[0]):
        street_number = tokens[0]
        tokens = tokens[1:]

    street_suffix = ""
    if tokens:
        candidate = tokens[-1].upper().rstrip(".,")
        if candidate in STREET_SUFFIXES:
            street_suffix = candidate
            tokens = tokens[:-1]

    parsed = ParsedAddress(
        street_number=street_number,
        street_name=" ".join(tokens),
        street_suffix=street_suffix,
    )
    logger.debug(
        "Parsed address %r -> number=%r name=%r suffix=%r",
        full_address,
        parsed.street_number,
        parsed.street_name,
        parsed.street_suffix,
    )
    return parsed


def normalise_suffix(suffix: str) -> str:
    """Map a suffix to its standard USPS abbreviation where one is known."""
    clean = (suffix or "").strip().upper().rstrip(".")
    return SUFFIX_ABBREVIATIONS.get(clean, clean)
