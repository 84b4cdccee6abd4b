"""
Stored object model — one blob in the key/value object store.

Keys are flat strings such as "abc123/vibelink.json" or
"_ratelimit/k3x9.json"; the "/" carries no meaning to the table.

`version` starts at 1 and is bumped on every overwrite. The store uses it
as the compare-and-swap tag for conditional writes.
"""

import datetime

from sqlalchemy import Integer, LargeBinary, String, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from vibelink.core.database import Base


class StoredObject(Base):
    """A single keyed blob with its content type and version tag."""

    __tablename__ = "stored_objects"

    key: Mapped[str] = mapped_column(
        Text,
        primary_key=True,
    )
    body: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
    )
    content_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="application/octet-stream",
    )
    size: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default="1",
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<StoredObject key={self.key!r} size={self.size} "
            f"version={self.version}>"
        )
