"""
Persistence Field Map - Canonical Names to the Listing Store Schema

The listing store uses snake_case column names. Canonical fields with no
column in the store are omitted from the payload.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Final

if TYPE_CHECKING:
    from core.ingestion.schema import CanonicalRecord


PERSISTENCE_FIELD_MAP: Final[dict[str, str]] = {
    "MLSNumber": "mls_number",
    "Status": "mls_status",
    "ListPrice": "list_price",
    "OriginalListPrice": "original_list_price",
    "ListingDate": "listing_date",
    "ExpirationDate": "expiration_date",
    "PropertyType": "property_type",
    "PropertySubType": "property_sub_type",
    "ArchitecturalStyle": "architectural_style",
    "Stories": "stories",
    "YearBuilt": "year_built",
    "NewConstruction": "new_construction",
    "LivingAreaSqFt": "living_area_sq_ft",
    "LotSizeAcres": "lot_size_acres",
    "LotSizeSqFt": "lot_size_sq_ft",
    "BedroomsTotal": "bedrooms_total",
    "BathroomsTotal": "bathrooms_total",
    "BathroomsFull": "bathrooms_full",
    "BathroomsHalf": "bathrooms_half",
    "StreetAddress": "address_line",
    "StreetNumber": "street_number",
    "StreetName": "street_name",
    "StreetSuffix": "street_suffix",
    "UnitNumber": "unit_number",
    "City": "city",
    "State": "state_code",
    "ZIP": "zip_code",
    "County": "county",
    "Subdivision": "subdivision",
    "ParcelID": "parcel_id",
    "LegalDescription": "legal_description",
    "Latitude": "latitude",
    "Longitude": "longitude",
    "GarageSpaces": "garage_spaces",
    "GarageType": "garage_type",
    "ParkingFeatures": "parking_features",
    "Pool": "pool_features",
    "Waterfront": "waterfront",
    "Flooring": "flooring",
    "Appliances": "appliances",
    "KitchenFeatures": "kitchen_features",
    "PrimarySuite": "primary_suite",
    "InteriorFeatures": "interior_features",
    "FireplaceFeatures": "fireplace_features",
    "Laundry": "laundry_features",
    "Construction": "construction_materials",
    "Roof": "roof_type",
    "Foundation": "foundation_details",
    "ExteriorFeatures": "exterior_features",
    "View": "property_view",
    "WaterSource": "water_source",
    "Sewer": "sewer_system",
    "Cooling": "cooling",
    "Heating": "heating",
    "TaxesAnnual": "taxes",
    "TaxYear": "tax_year",
    "AssociationFee": "association_fee",
    "ListingAgentName": "listing_agent_name",
    "ListingAgentLicense": "listing_agent_license",
    "ListingAgentPhone": "listing_agent_phone",
    "ListingAgentEmail": "listing_agent_email",
    "ListingOfficeName": "listing_office_name",
    "ListingOfficeLicense": "listing_office_license",
    "ListingOfficePhone": "listing_office_phone",
    "ListingOfficeEmail": "listing_office_email",
    "PublicRemarks": "public_remarks",
    "BrokerRemarks": "private_remarks",
    "ShowingInstructions": "showing_instructions",
    "VirtualTourURL": "virtual_tour_url",
    "PhotoURLs": "photos",
}

DRAFT_STATUS: Final[str] = "draft"


def build_validation_summary(payload: dict[str, Any]) -> dict[str, Any]:
    """Publish-readiness summary stored alongside the listing."""
    photos = payload.get("photos") or []
    return {
        "photos": {"count": len(photos)},
        "location": {
            "hasLatitude": payload.get("latitude") is not None,
            "hasLongitude": payload.get("longitude") is not None,
            "hasAddress": all(
                payload.get(column)
                for column in ("street_number", "street_name", "city", "state_code", "zip_code")
            ),
        },
        "specs": {
            "price": payload.get("list_price"),
            "bedrooms": payload.get("bedrooms_total"),
            "bathrooms": payload.get("bathrooms_total", payload.get("bathrooms_full")),
            "livingArea": payload.get("living_area_sq_ft"),
        },
    }


def to_persistence_payload(record: CanonicalRecord) -> dict[str, Any]:
    """
    Build the store payload for one accepted record.

    Returns:
        Snake_case payload with status "draft", source provenance and a
        validation summary
    """
    payload: dict[str, Any] = {
        column: record.fields[name]
        for name, column in PERSISTENCE_FIELD_MAP.items()
        if name in record.fields
    }
    payload["status"] = DRAFT_STATUS
    payload["file_name"] = record.source_file
    payload["source_row"] = record.row_index
    payload["validation_summary"] = build_validation_summary(payload)
    if record.validation is not None:
        payload["validation_summary"]["completionPercentage"] = (
            record.validation.completion_percentage
        )
        payload["validation_summary"]["warnings"] = [
            w.message for w in record.validation.warnings
        ]
    return payload
