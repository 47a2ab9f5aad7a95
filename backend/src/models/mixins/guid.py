"""
GUID mixin for calendar entities.

Spaces, event types, series and overrides are addressed by prefixed GUIDs
(spc_, ety_, evt_, ovr_) rather than integer primary keys. The stored value
is a UUIDv7; the string form is produced by GuidService.
"""

import uuid as uuid_module
from typing import ClassVar, Optional

from sqlalchemy import Column, LargeBinary, TypeDecorator
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from uuid_extensions import uuid7

from backend.src.services.guid import GuidService


class UUIDType(TypeDecorator):
    """
    UUID column that is native on PostgreSQL and 16 raw bytes elsewhere.

    Always returns uuid.UUID objects.
    """

    impl = LargeBinary
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(LargeBinary(16))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, uuid_module.UUID):
            value = uuid_module.UUID(bytes=value) if isinstance(value, bytes) else uuid_module.UUID(str(value))
        if dialect.name == "postgresql":
            return value
        return value.bytes

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid_module.UUID):
            return value
        if isinstance(value, bytes):
            return uuid_module.UUID(bytes=value)
        return uuid_module.UUID(str(value))


class GuidMixin:
    """
    Adds a UUIDv7 column and a prefixed ``guid`` property.

    Usage:
        class EventSeries(Base, GuidMixin):
            GUID_PREFIX = "evt"

        series.guid  # evt_01hgw2bbg...
    """

    GUID_PREFIX: ClassVar[str]

    uuid = Column(
        UUIDType(),
        nullable=False,
        unique=True,
        index=True,
        default=uuid7,
    )

    @property
    def guid(self) -> Optional[str]:
        """Prefixed GUID, or None before the row has been flushed."""
        if self.uuid is None:
            return None
        return GuidService.encode_uuid(self.uuid, self.GUID_PREFIX)

    @classmethod
    def parse_guid(cls, guid: str) -> uuid_module.UUID:
        """
        Decode a GUID of this entity type to its UUID.

        Raises:
            ValueError: If the GUID is malformed or has another prefix
        """
        return GuidService.parse_guid(guid, cls.GUID_PREFIX)
