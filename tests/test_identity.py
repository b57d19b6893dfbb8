"""
Tests for listing identity keys and deduplication.
"""

import pytest

from core.ingestion.identity import (
    build_listing_identity,
    deduplicate,
    describe_record,
    identity_from_stored_row,
    identity_of_known,
    normalise_mls_number,
)
from core.ingestion.mapper import map_headers
from core.ingestion.schema import CanonicalRecord, DuplicateReason, RawRecord
from core.ingestion.transform import transform_record


# =============================================================================
# Fixtures
# =============================================================================


ADDRESS_KEY = "addr:123 main st|austin|tx|78701"


def _record(row_index=1, source_file="listings.csv", **fields):
    return CanonicalRecord(fields=fields, source_file=source_file, row_index=row_index, raw={})


@pytest.fixture
def address_fields():
    return {
        "StreetNumber": "123",
        "StreetName": "Main",
        "StreetSuffix": "Street",
        "City": "Austin",
        "State": "TX",
        "ZIP": "78701-1234",
    }


# =============================================================================
# Build Listing Identity
# =============================================================================


class TestBuildListingIdentity:
    def test_mls_number_preferred(self, address_fields):
        address_fields["MLSNumber"] = " tx-100 "

        assert build_listing_identity(address_fields) == "mls:TX100"

    def test_address_identity(self, address_fields):
        assert build_listing_identity(address_fields) == ADDRESS_KEY

    def test_one_line_address_matches_components(self):
        fields = {"StreetAddress": "123 Main St.", "City": "AUSTIN", "State": "tx", "ZIP": "78701"}

        assert build_listing_identity(fields) == ADDRESS_KEY

    def test_city_and_state_without_zip(self, address_fields):
        del address_fields["ZIP"]

        assert build_listing_identity(address_fields) == "addr:123 main st|austin|tx|"

    def test_street_alone_is_insufficient(self):
        assert build_listing_identity({"StreetAddress": "123 Main St", "City": "Austin"}) == ""

    def test_no_street(self):
        assert build_listing_identity({"City": "Austin", "State": "TX", "ZIP": "78701"}) == ""

    def test_empty(self):
        assert build_listing_identity({}) == ""

    def test_identity_is_deterministic(self):
        raw = RawRecord(
            "listings.csv",
            1,
            {"Address": "123 Main Street", "City": "Austin", "State": "TX", "Zip Code": "78701"},
        )
        record = transform_record(raw, map_headers(list(raw.values)))

        first = build_listing_identity(record.fields)
        second = build_listing_identity(record.fields)

        assert first == second == ADDRESS_KEY

    def test_normalise_mls_number(self):
        assert normalise_mls_number("ab 12-3") == "AB123"
        assert normalise_mls_number(None) == ""
        assert normalise_mls_number(4501) == "4501"


# =============================================================================
# Known Listings
# =============================================================================


class TestKnownListings:
    def test_stored_row_by_mls(self):
        assert identity_from_stored_row({"mls_number": "tx-100"}) == "mls:TX100"

    def test_stored_row_by_address(self):
        row = {
            "address_line": "123 Main Street",
            "city": "Austin",
            "state_code": "TX",
            "zip_code": "78701",
        }

        assert identity_from_stored_row(row) == ADDRESS_KEY

    def test_identity_of_known_accepts_each_shape(self, address_fields):
        assert identity_of_known(" mls:TX100 ") == "mls:TX100"
        assert identity_of_known({"mls_number": "TX100"}) == "mls:TX100"
        assert identity_of_known(address_fields) == ADDRESS_KEY


# =============================================================================
# Describe Record
# =============================================================================


class TestDescribeRecord:
    def test_mls(self):
        assert describe_record(_record(MLSNumber="TX-100")) == "MLS# TX-100"

    def test_address(self):
        record = _record(StreetAddress="123 Main St", City="Austin", State="TX")

        assert describe_record(record) == "123 Main St, Austin, TX"

    def test_components(self):
        record = _record(StreetNumber="9", StreetName="Elm", StreetSuffix="RD")

        assert describe_record(record) == "9 Elm RD"

    def test_fallback_to_row(self):
        assert describe_record(_record(row_index=7)) == "row 7"


# =============================================================================
# Deduplicate
# =============================================================================


class TestDeduplicate:
    def test_existing_listings(self):
        records = [_record(1, MLSNumber="100"), _record(2, MLSNumber="100")]

        result = deduplicate(records, known_identities={"mls:100"})

        assert result.accepted == []
        assert [d.reason for d in result.duplicates] == [
            DuplicateReason.EXISTING,
            DuplicateReason.EXISTING,
        ]

    def test_batch_duplicates_first_wins(self, address_fields):
        first = _record(1, **address_fields)
        second = _record(2, source_file="other.csv", **address_fields)

        result = deduplicate([first, second])

        assert result.accepted == [first]
        assert len(result.duplicates) == 1
        notice = result.duplicates[0]
        assert notice.reason == DuplicateReason.BATCH_DUPLICATE
        assert notice.source_file == "other.csv"
        assert notice.row_index == 2
        assert notice.identity == ADDRESS_KEY

    def test_records_without_identity_always_accepted(self):
        records = [_record(1, City="Austin"), _record(2, City="Austin")]

        result = deduplicate(records)

        assert result.accepted == records
        assert result.accepted_identities == []

    def test_records_tagged_with_identity(self, address_fields):
        record = _record(1, **address_fields)

        deduplicate([record])

        assert record.identity == ADDRESS_KEY

    def test_known_rows_from_store(self, address_fields):
        stored = [
            {
                "address_line": "123 Main St",
                "city": "Austin",
                "state_code": "TX",
                "zip_code": "78701",
            }
        ]

        result = deduplicate([_record(1, **address_fields)], known_listings=stored)

        assert result.duplicates[0].reason == DuplicateReason.EXISTING

    def test_order_preserved(self):
        records = [_record(i, MLSNumber=f"M{i:03d}") for i in range(1, 6)]

        result = deduplicate(records)

        assert result.accepted == records
        assert result.accepted_identities == [f"mls:M{i:03d}" for i in range(1, 6)]

    def test_known_identities_not_mutated(self):
        known = {"mls:100"}

        deduplicate([_record(1, MLSNumber="200")], known_identities=known)

        assert known == {"mls:100"}

    def test_to_dict(self):
        result = deduplicate([_record(1, MLSNumber="100")], known_identities={"mls:100"})

        assert result.duplicates[0].to_dict()["reason"] == "existing"
        assert result.duplicates[0].to_dict()["identifyingInfo"] == "MLS# 100"
