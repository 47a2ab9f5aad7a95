"""
GUID codec for calendar entities.

A GUID is ``{prefix}_{base32}``: a 3-letter entity prefix and the 26
character lowercase Crockford Base32 form of a UUIDv7. Occurrence ids build
on the series GUID (``evt_...:2024-06-11``) and are not GUIDs themselves.
"""

import re
import uuid
from typing import Optional, Tuple, Union

import base32_crockford
from uuid_extensions import uuid7

# spc - Space, ety - EventType, evt - EventSeries, ovr - OccurrenceOverride
ENTITY_PREFIXES = {
    "spc": "Space",
    "ety": "EventType",
    "evt": "EventSeries",
    "ovr": "OccurrenceOverride",
}

# Crockford Base32 excludes I, L, O and U
GUID_PATTERN = re.compile(
    r"^(spc|ety|evt|ovr)_[0-9A-HJKMNP-TV-Z]{26}$",
    re.IGNORECASE,
)

ENCODED_LENGTH = 26


class GuidService:
    """Static helpers to generate, encode, decode and validate GUIDs."""

    @staticmethod
    def generate_uuid() -> uuid.UUID:
        """New time-ordered UUIDv7."""
        return uuid7()

    @staticmethod
    def generate_guid(prefix: str) -> str:
        return GuidService.encode_uuid(GuidService.generate_uuid(), prefix)

    @staticmethod
    def encode_uuid(uuid_value: Union[uuid.UUID, bytes], prefix: str) -> str:
        """
        Encode a UUID as a GUID.

        Args:
            uuid_value: UUID object or its 16 raw bytes
            prefix: Entity prefix (spc, ety, evt, ovr)

        Raises:
            ValueError: If the prefix is unknown
        """
        if prefix not in ENTITY_PREFIXES:
            raise ValueError(
                f"Invalid prefix '{prefix}'. Valid prefixes: {', '.join(ENTITY_PREFIXES)}"
            )
        raw = uuid_value if isinstance(uuid_value, bytes) else uuid_value.bytes
        encoded = base32_crockford.encode(int.from_bytes(raw, "big")).zfill(ENCODED_LENGTH)
        return f"{prefix}_{encoded.lower()}"

    @staticmethod
    def decode_guid(guid: str) -> Tuple[str, uuid.UUID]:
        """
        Split a GUID into its prefix and UUID.

        Decoding is case-insensitive.

        Raises:
            ValueError: If the GUID is empty or malformed
        """
        if not guid:
            raise ValueError("GUID cannot be empty")
        if not GUID_PATTERN.match(guid):
            raise ValueError(f"Invalid GUID format: {guid}")

        prefix, encoded = guid[:3].lower(), guid[4:]
        try:
            number = base32_crockford.decode(encoded.upper())
            return prefix, uuid.UUID(bytes=number.to_bytes(16, "big"))
        except (ValueError, OverflowError) as e:
            raise ValueError(f"Invalid GUID encoding: {e}")

    @staticmethod
    def validate_guid(guid: str, expected_prefix: Optional[str] = None) -> bool:
        """True when guid is well formed (and has expected_prefix, if given)."""
        if not isinstance(guid, str) or not GUID_PATTERN.match(guid):
            return False
        if expected_prefix:
            return guid[:3].lower() == expected_prefix.lower()
        return True

    @staticmethod
    def get_entity_type(guid: str) -> Optional[str]:
        """Entity name for the GUID's prefix, or None."""
        if not guid or len(guid) < 3:
            return None
        return ENTITY_PREFIXES.get(guid[:3].lower())

    @staticmethod
    def parse_guid(guid: str, expected_prefix: str) -> uuid.UUID:
        """
        Decode a GUID that must carry expected_prefix.

        Raises:
            ValueError: If the GUID is malformed or has another prefix
        """
        prefix, uuid_value = GuidService.decode_guid(guid)
        if prefix != expected_prefix.lower():
            raise ValueError(
                f"GUID prefix mismatch. Expected '{expected_prefix}', got '{prefix}'"
            )
        return uuid_value
