"""
Field Catalog - Canonical Listing Field Registry

Every broker spreadsheet column is normalised to one of these canonical
fields. The catalog is built once at import time and never mutated.

Catalog order is significant: when two fields score equally against a
header, the field defined first wins. Keep related fields grouped and
place the more specific field before the more generic one.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Final, Mapping, Optional


class DataType(Enum):
    """Declared value type of a canonical field."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ARRAY = "array"


class FieldCategory(Enum):
    """Grouping used for reporting and review screens."""

    BASIC = "basic"
    LOCATION = "location"
    FEATURES = "features"
    FINANCIAL = "financial"
    AGENT = "agent"
    MEDIA = "media"


@dataclass(frozen=True)
class FieldDefinition:
    """
    Immutable canonical field definition.

    Attributes:
        canonical_name: Schema name all header variations normalise to
        variations: Accepted header spellings, compared case-insensitively
        required: Whether a listing is incomplete without this field
        data_type: Declared value type used for coercion and validation
        category: Reporting group
        derived_from: Canonical field this one can be derived from when
            no header maps to it directly (street components from the
            one-line street address)
    """

    canonical_name: str
    variations: tuple[str, ...]
    required: bool
    data_type: DataType
    category: FieldCategory
    derived_from: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate definition constraints."""
        if not self.canonical_name:
            raise ValueError("canonical_name is required")
        if not self.variations:
            raise ValueError(f"{self.canonical_name}: at least one variation is required")
        if any(not v.strip() for v in self.variations):
            raise ValueError(f"{self.canonical_name}: variations cannot be blank")

    def to_dict(self) -> dict:
        return {
            "canonicalName": self.canonical_name,
            "variations": list(self.variations),
            "required": self.required,
            "dataType": self.data_type.value,
            "category": self.category.value,
            "derivedFrom": self.derived_from,
        }


def _field(
    name: str,
    variations: list[str],
    data_type: DataType = DataType.STRING,
    category: FieldCategory = FieldCategory.FEATURES,
    required: bool = False,
    derived_from: Optional[str] = None,
) -> FieldDefinition:
    # The canonical name itself is always an accepted spelling
    spellings = [name.lower()] + [v for v in variations if v.lower() != name.lower()]
    return FieldDefinition(
        canonical_name=name,
        variations=tuple(spellings),
        required=required,
        data_type=data_type,
        category=category,
        derived_from=derived_from,
    )


_NUM = DataType.NUMBER
_DATE = DataType.DATE
_BOOL = DataType.BOOLEAN

_BASIC = FieldCategory.BASIC
_LOCATION = FieldCategory.LOCATION
_FINANCIAL = FieldCategory.FINANCIAL
_AGENT = FieldCategory.AGENT
_MEDIA = FieldCategory.MEDIA


# =============================================================================
# Catalog Definition
# =============================================================================

_DEFINITIONS: Final[tuple[FieldDefinition, ...]] = (
    # === Listing identity and pricing ===
    _field("MLSNumber", ["mls number", "mls#", "mls #", "mls id", "mls_number", "mlsnum",
                         "listing number", "listing id", "property id"], category=_BASIC),
    _field("Status", ["listing status", "property status", "mls status", "status"], category=_BASIC),
    _field("OriginalListPrice", ["original list price", "original price", "starting price",
                                 "initial price", "orig price", "original_list_price"],
           _NUM, _BASIC),
    _field("ListPrice", ["list price", "asking price", "listing price", "current price",
                         "price", "list_price"], _NUM, _BASIC, required=True),
    _field("ListingDate", ["listing date", "list date", "date listed", "listing_date"],
           _DATE, _BASIC),
    _field("ExpirationDate", ["expiration date", "expiry date", "expires", "expiration_date"],
           _DATE, _BASIC),

    # === Property classification ===
    _field("PropertySubType", ["property subtype", "property sub type", "subtype", "sub type",
                               "prop subtype", "dwelling type"], category=_BASIC),
    _field("PropertyType", ["property type", "prop type", "property category", "property class",
                            "category", "type"], category=_BASIC, required=True),
    _field("ArchitecturalStyle", ["architectural style", "architecture", "arch style",
                                  "building style", "home style", "style"]),
    _field("Stories", ["stories total", "total stories", "number of stories", "stories",
                       "levels", "floors"], _NUM, _BASIC),
    _field("YearBuilt", ["year built", "built year", "construction year", "year constructed",
                         "year_built", "built"], _NUM, _BASIC, required=True),
    _field("NewConstruction", ["new construction", "newly built", "new build"], _BOOL, _BASIC),

    # === Size ===
    _field("LivingAreaSqFt", ["living area sqft", "living area", "square feet", "sq ft", "sqft",
                              "interior sqft", "finished sqft", "heated sqft", "living_area"],
           _NUM, _BASIC, required=True),
    _field("LotSizeAcres", ["lot size acres", "lot acres", "acres", "land acres", "acreage"],
           _NUM, _BASIC),
    _field("LotSizeSqFt", ["lot size sqft", "lot size", "lot sqft", "lot square feet",
                           "land size", "lot area", "lot_size"], _NUM, _BASIC, required=True),

    # === Rooms ===
    _field("BedroomsTotal", ["bedrooms total", "total bedrooms", "bedrooms", "beds",
                             "bedroom count", "bed count"], _NUM, _BASIC, required=True),
    _field("BathroomsTotal", ["bathrooms total", "total bathrooms", "total baths", "bath total"],
           _NUM, _BASIC),
    _field("BathroomsFull", ["bathrooms full", "full bathrooms", "full baths", "bathrooms",
                             "baths", "bathroom count"], _NUM, _BASIC, required=True),
    _field("BathroomsHalf", ["bathrooms half", "half bathrooms", "half baths", "powder rooms"],
           _NUM, _BASIC),

    # === Location ===
    _field("StreetAddress", ["street address", "property address", "full address", "address",
                             "street line", "address line"], category=_LOCATION),
    _field("StreetNumber", ["street number", "house number", "address number", "street num",
                            "street no"], category=_LOCATION, required=True,
           derived_from="StreetAddress"),
    _field("StreetName", ["street name", "road name", "street"], category=_LOCATION,
           required=True, derived_from="StreetAddress"),
    _field("StreetSuffix", ["street suffix", "street type", "street designation", "suffix"],
           category=_LOCATION, required=True, derived_from="StreetAddress"),
    _field("UnitNumber", ["unit number", "unit", "apt", "apartment", "suite number"],
           category=_LOCATION),
    _field("City", ["city", "municipality", "town"], category=_LOCATION, required=True),
    _field("State", ["state", "province", "state or province", "state_province", "state code"],
           category=_LOCATION, required=True),
    _field("ZIP", ["zip code", "postal code", "zip", "zipcode", "postal_code"],
           category=_LOCATION, required=True),
    _field("County", ["county", "county name", "parish"], category=_LOCATION, required=True),
    _field("Subdivision", ["subdivision", "subdivision name", "neighborhood", "development",
                           "community"], category=_LOCATION),
    _field("ParcelID", ["parcel id", "parcel number", "parcel #", "tax id",
                        "assessor parcel number", "apn"], category=_LOCATION),
    _field("LegalDescription", ["legal description", "legal desc", "property legal"],
           category=_LOCATION),
    _field("Latitude", ["latitude", "lat"], _NUM, _LOCATION),
    _field("Longitude", ["longitude", "lng", "long"], _NUM, _LOCATION),

    # === Parking ===
    _field("GarageSpaces", ["garage spaces", "garage stalls", "car spaces", "parking spaces",
                            "garage"], _NUM),
    _field("GarageType", ["garage type", "parking type"]),
    _field("ParkingFeatures", ["parking features", "parking"]),

    # === Features ===
    _field("Pool", ["pool features", "pool", "swimming pool", "pool type"]),
    _field("Waterfront", ["waterfront", "water front", "waterfront property"], _BOOL),
    _field("Flooring", ["flooring", "floor type", "flooring type", "floor material",
                        "floor covering"]),
    _field("Appliances", ["appliances", "kitchen appliances", "included appliances"]),
    _field("KitchenFeatures", ["kitchen features", "kitchen", "kitchen amenities"]),
    _field("PrimarySuite", ["primary suite", "master suite", "master bedroom",
                            "primary bedroom", "owner suite"]),
    _field("InteriorFeatures", ["interior features", "interior"]),
    _field("FireplaceFeatures", ["fireplace features", "fireplace", "fireplaces"]),
    _field("Laundry", ["laundry features", "laundry", "laundry room", "washer dryer"]),
    _field("Construction", ["construction materials", "exterior materials",
                            "building materials", "siding"]),
    _field("Roof", ["roof", "roof type", "roofing", "roof material"]),
    _field("Foundation", ["foundation", "foundation details", "foundation type", "basement"]),
    _field("ExteriorFeatures", ["exterior features", "outdoor features", "yard features",
                                "exterior"]),
    _field("View", ["view", "property view", "views", "scenic view"]),
    _field("WaterSource", ["water source", "water supply", "water system", "water"]),
    _field("Sewer", ["sewer", "sewer system", "septic", "sewage"]),
    _field("Cooling", ["cooling", "cooling type", "air conditioning", "cooling system"]),
    _field("Heating", ["heating", "heating type", "heating system", "heat", "hvac"]),

    # === Financial ===
    _field("TaxesAnnual", ["taxes annual", "annual taxes", "property taxes", "taxes",
                           "tax amount", "yearly taxes"], _NUM, _FINANCIAL),
    _field("TaxYear", ["tax year", "assessment year"], _NUM, _FINANCIAL),
    _field("AssociationFee", ["association fee", "hoa fee", "hoa dues", "hoa", "condo fee",
                              "maintenance fee"], _NUM, _FINANCIAL),

    # === Agent and brokerage ===
    _field("ListingAgentName", ["listing agent name", "listing agent", "agent name",
                                "agent", "realtor name"], category=_AGENT, required=True),
    _field("ListingAgentLicense", ["listing agent license", "agent license",
                                   "agent license number", "license number"],
           category=_AGENT, required=True),
    _field("ListingAgentPhone", ["listing agent phone", "agent phone", "agent cell",
                                 "phone number", "phone"], category=_AGENT, required=True),
    _field("ListingAgentEmail", ["listing agent email", "agent email", "email",
                                 "email address"], category=_AGENT),
    _field("ListingOfficeName", ["listing office name", "listing office", "office name",
                                 "brokerage", "broker", "company"], category=_AGENT,
           required=True),
    _field("ListingOfficeLicense", ["listing office license", "office license",
                                    "brokerage license", "broker license"], category=_AGENT),
    _field("ListingOfficePhone", ["listing office phone", "office phone", "brokerage phone"],
           category=_AGENT),
    _field("ListingOfficeEmail", ["listing office email", "office email", "brokerage email"],
           category=_AGENT),

    # === Marketing and media ===
    _field("PublicRemarks", ["public remarks", "listing description", "property description",
                             "description", "remarks"], category=_MEDIA),
    _field("BrokerRemarks", ["broker remarks", "private remarks", "agent remarks",
                             "internal notes"], category=_MEDIA),
    _field("ShowingInstructions", ["showing instructions", "showing notes", "showings"],
           category=_MEDIA),
    _field("VirtualTourURL", ["virtual tour url", "virtual tour", "tour url", "3d tour"],
           category=_MEDIA),
    _field("PhotoURLs", ["photo urls", "photos", "images", "pictures", "photo links",
                         "image urls", "listing photos"], DataType.ARRAY, _MEDIA),
)


# =============================================================================
# Catalog Access
# =============================================================================

FIELD_CATALOG: Final[tuple[FieldDefinition, ...]] = _DEFINITIONS

_CATALOG_INDEX: Final[Mapping[str, FieldDefinition]] = MappingProxyType(
    {f.canonical_name: f for f in FIELD_CATALOG}
)

if len(_CATALOG_INDEX) != len(FIELD_CATALOG):
    raise RuntimeError("Duplicate canonical field names in FIELD_CATALOG")

REQUIRED_FIELDS: Final[tuple[str, ...]] = tuple(
    f.canonical_name for f in FIELD_CATALOG if f.required
)

# Street components filled by the address parser fallback
STREET_COMPONENT_FIELDS: Final[tuple[str, ...]] = ("StreetNumber", "StreetName", "StreetSuffix")

PHOTO_FIELD: Final[str] = "PhotoURLs"


def get_field(canonical_name: str) -> Optional[FieldDefinition]:
    """
    Look up a field definition by canonical name.

    Returns:
        The definition if the name is in the catalog, None otherwise
    """
    return _CATALOG_INDEX.get(canonical_name)


def required_fields() -> list[FieldDefinition]:
    """All required field definitions, in catalog order."""
    return [f for f in FIELD_CATALOG if f.required]


def fields_by_category(category: FieldCategory) -> list[FieldDefinition]:
    """All field definitions in a category, in catalog order."""
    return [f for f in FIELD_CATALOG if f.category == category]
