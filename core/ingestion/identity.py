"""
Listing Identity - Duplicate Detection Keys and Batch Deduplication

A listing identity is a derived comparison key, never a stored identifier:

    "mls:" + normalised MLS number                      (when present)
    "addr:" + street | city | state | zip               (otherwise)

An address identity needs a street plus either a ZIP or city and state.
Records with no usable identity are never treated as duplicates.

Deduplication is a single ordered pass with first-wins semantics; each
record is classified exactly once (known listings are checked before
records seen earlier in the batch).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Final, Iterable, Mapping, Optional, Sequence, Union

from core.ingestion.address import normalise_suffix, parse_street_address
from core.ingestion.schema import CanonicalRecord, DuplicateNotice, DuplicateReason


logger = logging.getLogger(__name__)


MLS_PREFIX: Final[str] = "mls:"
ADDRESS_PREFIX: Final[str] = "addr:"

_NON_ALNUM: Final = re.compile(r"[^A-Za-z0-9]+")
_PUNCTUATION: Final = re.compile(r"[^\w\s]")

# External (stored row) column -> canonical field, for known listings
_STORED_ROW_FIELDS: Final[dict[str, str]] = {
    "mls_number": "MLSNumber",
    "address_line": "StreetAddress",
    "street_number": "StreetNumber",
    "street_name": "StreetName",
    "street_suffix": "StreetSuffix",
    "city": "City",
    "state": "State",
    "state_code": "State",
    "zip_code": "ZIP",
}

KnownListing = Union[str, Mapping[str, Any]]


# =============================================================================
# Identity
# =============================================================================


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalise_mls_number(value: Any) -> str:
    """Upper-case and strip everything but letters and digits."""
    return _NON_ALNUM.sub("", _text(value)).upper()


def _normalise_words(value: str) -> str:
    return " ".join(_PUNCTUATION.sub(" ", value.lower()).split())


def _street_key(fields: Mapping[str, Any]) -> str:
    number = _text(fields.get("StreetNumber"))
    name = _text(fields.get("StreetName"))
    suffix = _text(fields.get("StreetSuffix"))

    if not (number or name):
        parsed = parse_street_address(_text(fields.get("StreetAddress")))
        number, name, suffix = parsed.street_number, parsed.street_name, parsed.street_suffix

    parts = [number, name, normalise_suffix(suffix) if suffix else ""]
    return _normalise_words(" ".join(p for p in parts if p))


def build_listing_identity(fields: Mapping[str, Any]) -> str:
    """
    Build the identity key for a canonical field map.

    Args:
        fields: Canonical name -> value

    Returns:
        Identity string, or "" when neither an MLS number nor a
        sufficient address is present
    """
    mls_number = normalise_mls_number(fields.get("MLSNumber"))
    if mls_number:
        return MLS_PREFIX + mls_number

    street = _street_key(fields)
    city = _normalise_words(_text(fields.get("City")))
    state = _normalise_words(_text(fields.get("State")))
    zip_code = _NON_ALNUM.sub("", _text(fields.get("ZIP")))[:5]

    if not street or not (zip_code or (city and state)):
        return ""
    return ADDRESS_PREFIX + "|".join([street, city, state, zip_code])


def identity_from_stored_row(row: Mapping[str, Any]) -> str:
    """Build an identity from a row in the external store's schema."""
    fields: dict[str, Any] = {}
    for column, canonical in _STORED_ROW_FIELDS.items():
        value = row.get(column)
        if value not in (None, "") and canonical not in fields:
            fields[canonical] = value
    return build_listing_identity(fields)


def identity_of_known(listing: KnownListing) -> str:
    """
    Identity of an already-known listing.

    Accepts a precomputed identity string, a canonical field map, or a
    stored row in the external schema.
    """
    if isinstance(listing, str):
        return listing.strip()
    if any(column in listing for column in _STORED_ROW_FIELDS):
        return identity_from_stored_row(listing)
    return build_listing_identity(listing)


def describe_record(record: CanonicalRecord) -> str:
    """Human-readable listing description for duplicate notices."""
    mls_number = _text(record.get("MLSNumber"))
    if mls_number:
        return f"MLS# {mls_number}"
    street = _text(record.get("StreetAddress")) or " ".join(
        _text(record.get(name))
        for name in ("StreetNumber", "StreetName", "StreetSuffix")
        if record.get(name)
    )
    locality = ", ".join(_text(record.get(name)) for name in ("City", "State") if record.get(name))
    return ", ".join(part for part in (street, locality) if part) or f"row {record.row_index}"


# =============================================================================
# Deduplication
# =============================================================================


@dataclass
class DedupResult:
    accepted: list[CanonicalRecord] = field(default_factory=list)
    duplicates: list[DuplicateNotice] = field(default_factory=list)

    @property
    def accepted_identities(self) -> list[str]:
        return [r.identity for r in self.accepted if r.identity]


def deduplicate(
    records: Sequence[CanonicalRecord],
    known_listings: Iterable[KnownListing] = (),
    known_identities: Optional[Iterable[str]] = None,
) -> DedupResult:
    """
    Filter batch duplicates and duplicates of known listings.

    Records are processed in input order and tagged with their identity.
    Neither known_listings nor known_identities is mutated; callers
    register accepted identities themselves once the batch completes.

    Args:
        records: Newly transformed records, in batch order
        known_listings: Existing listings (identity strings, canonical
            maps or stored rows)
        known_identities: Precomputed identity strings

    Returns:
        DedupResult with accepted records (relative order preserved) and
        one notice per rejected record
    """
    known: set[str] = set()
    for listing in known_listings:
        identity = identity_of_known(listing)
        if identity:
            known.add(identity)
    if known_identities is not None:
        known.update(i for i in known_identities if i)

    seen_in_batch: set[str] = set()
    result = DedupResult()

    for record in records:
        identity = build_listing_identity(record.fields)
        record.identity = identity

        if not identity:
            result.accepted.append(record)
            continue

        reason: Optional[DuplicateReason] = None
        if identity in known:
            reason = DuplicateReason.EXISTING
        elif identity in seen_in_batch:
            reason = DuplicateReason.BATCH_DUPLICATE

        if reason is not None:
            result.duplicates.append(
                DuplicateNotice(
                    identifying_info=describe_record(record),
                    reason=reason,
                    source_file=record.source_file,
                    row_index=record.row_index,
                    identity=identity,
                )
            )
            logger.info(
                "Duplicate %s (%s) at %s row %d",
                identity,
                reason.value,
                record.source_file,
                record.row_index,
            )
            continue

        seen_in_batch.add(identity)
        result.accepted.append(record)

    return result
