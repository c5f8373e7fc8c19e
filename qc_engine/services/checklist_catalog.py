"""
Checklist Catalog

Static stage → checklist template mapping, plus the merge of a template with
caller-supplied checklist items and the customer-requirements fallback table.
"""
from typing import Any, Dict, List, Optional, Sequence

from qc_engine.core.exceptions import InvalidChecklistInput
from qc_engine.models.quality_control import QCStage, ChecklistItemStatus


# =============================================================================
# STAGE TEMPLATES
# =============================================================================

CHECKLIST_TEMPLATES: Dict[str, List[Dict[str, str]]] = {
    QCStage.CUTTING.value: [
        {"checkpoint_id": "CUT_001", "description": "Material dimensions accuracy",
         "expected_value": "Within ±2mm tolerance"},
        {"checkpoint_id": "CUT_002", "description": "Edge quality and finish",
         "expected_value": "Smooth edges, no burrs"},
        {"checkpoint_id": "CUT_003", "description": "Material identification marking",
         "expected_value": "Clear marking as per drawing"},
    ],
    QCStage.FABRICATION.value: [
        {"checkpoint_id": "FAB_001", "description": "Welding joint quality",
         "expected_value": "Full penetration, no defects"},
        {"checkpoint_id": "FAB_002", "description": "Assembly alignment",
         "expected_value": "Square and true within tolerance"},
        {"checkpoint_id": "FAB_003", "description": "Hardware fitting",
         "expected_value": "Proper fit and function"},
    ],
    QCStage.COATING.value: [
        {"checkpoint_id": "COT_001", "description": "Surface preparation",
         "expected_value": "Clean, dry, and properly prepared"},
        {"checkpoint_id": "COT_002", "description": "Coating thickness",
         "expected_value": "As per specification (μm)"},
        {"checkpoint_id": "COT_003", "description": "Color match and finish",
         "expected_value": "Matches approved sample"},
    ],
    QCStage.ASSEMBLY.value: [
        {"checkpoint_id": "ASM_001", "description": "Component fit and alignment",
         "expected_value": "Proper fit, no gaps"},
        {"checkpoint_id": "ASM_002", "description": "Hardware operation",
         "expected_value": "Smooth operation, proper function"},
        {"checkpoint_id": "ASM_003", "description": "Final dimensions",
         "expected_value": "As per approved drawings"},
    ],
    QCStage.DISPATCH.value: [
        {"checkpoint_id": "DIS_001", "description": "Packaging quality",
         "expected_value": "Proper protection, labeling"},
        {"checkpoint_id": "DIS_002", "description": "Documentation completeness",
         "expected_value": "All required documents included"},
        {"checkpoint_id": "DIS_003", "description": "Loading and handling",
         "expected_value": "Proper loading, no damage"},
    ],
    QCStage.INSTALLATION.value: [
        {"checkpoint_id": "INS_001", "description": "Site preparation",
         "expected_value": "Site ready for installation"},
        {"checkpoint_id": "INS_002", "description": "Installation alignment",
         "expected_value": "Level, plumb, and square"},
        {"checkpoint_id": "INS_003", "description": "Final operation test",
         "expected_value": "All functions working properly"},
    ],
}

# Customers registered with standing QC requirements
CUSTOMER_REQUIREMENTS: Dict[str, List[str]] = {
    "Premium Customer": [
        "Extra quality checks for visible surfaces",
        "Special packaging requirements",
        "Installation supervision required",
    ],
    "Government Project": [
        "Compliance with government standards",
        "Additional documentation required",
        "Security clearance for installation team",
    ],
}


def _blank_item(checkpoint_id: str, description: str, expected_value: str) -> Dict[str, Any]:
    return {
        "checkpoint_id": checkpoint_id,
        "description": description,
        "expected_value": expected_value,
        "actual_value": None,
        "status": ChecklistItemStatus.PENDING.value,
        "photos": [],
        "comments": None,
    }


def get_checklist_template(stage: str) -> List[Dict[str, Any]]:
    """Default checklist items for a stage, all PENDING. Unknown stages get none."""
    return [
        _blank_item(t["checkpoint_id"], t["description"], t["expected_value"])
        for t in CHECKLIST_TEMPLATES.get(stage, [])
    ]


def merge_checklist(
    stage: str,
    overrides: Optional[Sequence[Dict[str, Any]]] = None
) -> List[Dict[str, Any]]:
    """
    Merge the stage template with caller-supplied items by checkpoint_id.

    Fields present on a caller item override the template item with the same
    checkpoint_id; caller items with no template counterpart are appended in
    the order given and must carry a description and expected value.
    """
    merged = get_checklist_template(stage)
    by_checkpoint = {item["checkpoint_id"]: item for item in merged}

    for override in overrides or []:
        checkpoint_id = override.get("checkpoint_id")
        if not checkpoint_id:
            raise InvalidChecklistInput("Checklist item is missing checkpoint_id")

        fields = {k: v for k, v in override.items() if v is not None}
        if checkpoint_id in by_checkpoint:
            by_checkpoint[checkpoint_id].update(fields)
            continue

        if not fields.get("description") or not fields.get("expected_value"):
            raise InvalidChecklistInput(
                "Custom checklist items require description and expected_value",
                {"checkpoint_id": checkpoint_id}
            )
        item = _blank_item(checkpoint_id, fields["description"], fields["expected_value"])
        item.update(fields)
        merged.append(item)
        by_checkpoint[checkpoint_id] = item

    for item in merged:
        if item["status"] not in ChecklistItemStatus.__members__:
            raise InvalidChecklistInput(
                f"Invalid checklist status '{item['status']}'",
                {"checkpoint_id": item["checkpoint_id"]}
            )
    return merged


def get_customer_requirements(customer_name: Optional[str]) -> List[str]:
    """Registered requirements for a customer; empty when none are registered."""
    if not customer_name:
        return []
    return list(CUSTOMER_REQUIREMENTS.get(customer_name, []))
