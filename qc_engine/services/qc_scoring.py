"""
QC scoring and rework estimation.

Pure functions over checklist results; no database access.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from qc_engine.models.quality_control import ChecklistItemStatus, InspectionStatus, QCStage


PASS_SCORE = 95
REWORK_SCORE = 80
MAX_REWORK_FAILURES = 2

REWORK_HOURS_PER_FAILURE = Decimal("0.5")

REWORK_BASE_HOURS: Dict[str, Decimal] = {
    QCStage.CUTTING.value: Decimal("2"),
    QCStage.FABRICATION.value: Decimal("4"),
    QCStage.COATING.value: Decimal("6"),
    QCStage.ASSEMBLY.value: Decimal("3"),
    QCStage.DISPATCH.value: Decimal("1"),
    QCStage.INSTALLATION.value: Decimal("4"),
}

REWORK_BASE_INSTRUCTIONS: Dict[str, str] = {
    QCStage.CUTTING.value: "Re-cut material to correct dimensions. Verify measurements before cutting.",
    QCStage.FABRICATION.value: "Rework welding joints and assembly. Check alignment and fit.",
    QCStage.COATING.value: "Strip and re-apply coating. Ensure proper surface preparation.",
    QCStage.ASSEMBLY.value: "Disassemble and reassemble with proper alignment. Test all functions.",
    QCStage.DISPATCH.value: "Repackage with proper protection. Update documentation.",
    QCStage.INSTALLATION.value: "Reinstall with proper alignment and testing.",
}


@dataclass(frozen=True)
class ScoreResult:
    total: int
    passed: int
    failed: int
    not_applicable: int
    pending: int
    score: Optional[int]
    status: str

    @property
    def applicable(self) -> int:
        return self.total - self.not_applicable


def compute_score(passed: int, applicable: int) -> int:
    """round(passed / applicable * 100) with halves rounded up; 100 when nothing applies."""
    if applicable <= 0:
        return 100
    return (200 * passed + applicable) // (2 * applicable)


def derive_status(score: int, failed: int) -> str:
    if failed == 0 and score >= PASS_SCORE:
        return InspectionStatus.PASSED.value
    if score >= REWORK_SCORE and failed <= MAX_REWORK_FAILURES:
        return InspectionStatus.REWORK_REQUIRED.value
    return InspectionStatus.FAILED.value


def score_checklist(statuses: Iterable[str]) -> ScoreResult:
    """
    Score a checklist from its item statuses.

    While any item is still PENDING the inspection stays PENDING with no score.
    """
    counts = {s.value: 0 for s in ChecklistItemStatus}
    total = 0
    for status in statuses:
        counts[status] += 1
        total += 1

    passed = counts[ChecklistItemStatus.PASS.value]
    failed = counts[ChecklistItemStatus.FAIL.value]
    na = counts[ChecklistItemStatus.NA.value]
    pending = counts[ChecklistItemStatus.PENDING.value]

    if pending:
        return ScoreResult(total, passed, failed, na, pending, None, InspectionStatus.PENDING.value)

    score = compute_score(passed, total - na)
    return ScoreResult(total, passed, failed, na, 0, score, derive_status(score, failed))


def failure_reason(description: str, expected_value: str, actual_value: Optional[str]) -> str:
    return f"{description}: Expected {expected_value}, Got {actual_value or 'N/A'}"


def rework_instructions(stage: str, failure_reasons: List[str]) -> str:
    base = REWORK_BASE_INSTRUCTIONS.get(stage, "Address quality issues identified during inspection.")
    return f"{base}\n\nSpecific Issues to Address:\n{'; '.join(failure_reasons)}"


def estimate_rework_hours(stage: str, failed_count: int) -> Decimal:
    base = REWORK_BASE_HOURS.get(stage, Decimal("2"))
    return base + REWORK_HOURS_PER_FAILURE * failed_count
