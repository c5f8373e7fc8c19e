"""
Document Sequence Service for Atomic Number Generation

- Monthly numbering: {PREFIX}{YYYYMM}{SEQUENCE}
- Atomic number generation with database-level locking

USAGE:
    from qc_engine.services.document_sequence_service import DocumentSequenceService

    async def create_rework_card(db: AsyncSession):
        service = DocumentSequenceService(db)
        rework_number = await service.get_next_number("RW", clock.now())
        # Returns: RW2026100001

SUPPORTED PREFIXES:
    QC  - QC Inspection, Quality Certificate
    RW  - Rework Job Card
    CC  - Compliance Certificate
    TC  - Test Certificate
"""
import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qc_engine.models.document_sequence import DocumentSequence, DocumentPrefix

logger = logging.getLogger(__name__)

SEQUENCE_PADDING = 4
VALID_PREFIXES = {p.value for p in DocumentPrefix}


class DocumentSequenceService:
    """
    Service for generating atomic document numbers.

    Uses database-level locking (SELECT FOR UPDATE) so no duplicate numbers
    are generated under concurrent load. The increment joins the caller's
    transaction and is released on its commit or rollback.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_next_number(self, prefix: str, moment: datetime) -> str:
        """
        Get next document number with atomic increment.

        Args:
            prefix: Document prefix (QC, RW, CC, TC)
            moment: Timestamp whose calendar month selects the counter

        Returns:
            Formatted document number, e.g., QC2026100001

        Raises:
            ValueError: If prefix is not a known document prefix
        """
        prefix = prefix.upper()
        if prefix not in VALID_PREFIXES:
            valid = ", ".join(sorted(VALID_PREFIXES))
            raise ValueError(f"Invalid document prefix '{prefix}'. Valid prefixes: {valid}")

        period = DocumentSequence.period_for(moment)
        sequence = await self._get_or_create_sequence(prefix, period)
        number = sequence.get_next_number()
        await self.db.flush()
        return number

    async def _get_or_create_sequence(self, prefix: str, period: str) -> DocumentSequence:
        """Get existing sequence with row lock, or create a new one."""
        sequence = await self._locked_sequence(prefix, period)
        if sequence:
            return sequence

        sequence = DocumentSequence(
            prefix=prefix,
            period=period,
            current_number=0,
            padding_length=SEQUENCE_PADDING,
        )
        self.db.add(sequence)
        await self.db.flush()
        logger.info(f"Started document sequence {prefix}{period}")

        # Re-fetch with lock to ensure atomicity
        return await self._locked_sequence(prefix, period)

    async def _locked_sequence(self, prefix: str, period: str):
        result = await self.db.execute(
            select(DocumentSequence)
            .where(
                DocumentSequence.prefix == prefix,
                DocumentSequence.period == period,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
