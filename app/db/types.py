import uuid

from sqlalchemy import JSON, String, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB


class GUID(TypeDecorator):
    """UUID column stored as CHAR(36) text on every dialect.

    Accepts ``uuid.UUID`` instances or any string ``uuid.UUID`` can parse
    (hyphenated or bare hex) and always hands back ``uuid.UUID``.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


# Graph snapshots and stat maps; JSONB on postgres for containment queries.
JSONType = JSON().with_variant(JSONB(), "postgresql")
