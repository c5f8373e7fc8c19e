"""
Document Sequence Model for Atomic Number Generation

NUMBER FORMAT:
━━━━━━━━━━━━━━
• {PREFIX}{YYYYMM}{SEQUENCE}, sequence zero-padded to 4 digits
• One counter row per prefix and calendar month, incremented under a row lock

DOCUMENT FORMATS:
━━━━━━━━━━━━━━━━
• QC: QC2026100001 (QC Inspection / Quality Certificate)
• RW: RW2026100001 (Rework Job Card)
• CC: CC2026100001 (Compliance Certificate)
• TC: TC2026100001 (Test Certificate)

USAGE:
━━━━━━
    from qc_engine.services.document_sequence_service import DocumentSequenceService

    async def create_inspection(db):
        service = DocumentSequenceService(db)
        number = await service.get_next_number("QC", clock.now())
        # Returns: QC2026100001
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import String, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from qc_engine.database import Base
from qc_engine.db_types import UUIDType, UTCDateTime, utc_now


class DocumentPrefix(str, Enum):
    """Prefixes of numbered QC documents."""
    QC_INSPECTION = "QC"
    REWORK_JOB_CARD = "RW"
    QUALITY_CERTIFICATE = "QC"
    COMPLIANCE_CERTIFICATE = "CC"
    TEST_CERTIFICATE = "TC"


class DocumentSequence(Base):
    """
    Monthly document counter.

    Example:
        prefix = "RW"
        period = "202610"
        current_number = 41
        → Next rework number: RW2026100042
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint("prefix", "period", name="uq_document_sequence_prefix_period"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    prefix: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    period: Mapped[str] = mapped_column(
        String(6),
        nullable=False,
        comment="YYYYMM"
    )
    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last used sequence number"
    )
    padding_length: Mapped[int] = mapped_column(
        Integer,
        default=4,
        nullable=False,
        comment="Zero padding for sequence (4 = 0001)"
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    def get_next_number(self) -> str:
        """
        Generate next document number.

        NOTE: This method increments current_number but does NOT
        commit to database. The caller must handle the transaction.
        """
        self.current_number += 1
        return self.format_number(self.current_number)

    def format_number(self, number: int) -> str:
        return f"{self.prefix}{self.period}{str(number).zfill(self.padding_length)}"

    @staticmethod
    def period_for(moment: datetime) -> str:
        """Calendar month of a timestamp, e.g. 2026-10-19 → "202610"."""
        return f"{moment.year}{moment.month:02d}"

    def __repr__(self) -> str:
        return f"<DocumentSequence({self.prefix}{self.period}: {self.current_number})>"
