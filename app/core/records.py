"""
Typed records for the ten entity kinds of the traceability graph.

Every kind has exactly one immutable record type and exactly one parent
foreign-key field.  The store returns these records (never ORM rows or raw
dicts), so generators and rules can rely on every field being present.

Usage:
    from app.core.records import EntityKind, record_from_mapping

    line = record_from_mapping(EntityKind.PFMEA_LINE, row_dict)
    line.severity          # always an int, never "undefined"
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, Union


class EntityKind(str, Enum):
    PRODUCT = "product"
    CHARACTERISTIC = "characteristic"
    PFMEA_HEADER = "pfmea_header"
    PFMEA_LINE = "pfmea_line"
    CONTROL_PLAN = "control_plan"
    CONTROL_PLAN_ITEM = "control_plan_item"
    SOP = "sop"
    SOP_STEP = "sop_step"
    INSPECTION_STANDARD = "inspection_standard"
    INSPECTION_ITEM = "inspection_item"


CHARACTERISTIC_TYPES = ("product", "process")
CHARACTERISTIC_CATEGORIES = ("critical", "major", "minor")
CONTROL_TYPES = ("prevention", "detection")
ACTION_PRIORITIES = ("H", "M", "L")


# ── Records ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Record:
    id: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ProductRecord(Record):
    code: str = ""
    name: str = ""
    customer: str = ""
    vehicle_model: str = ""
    part_number: str = ""
    description: str = ""


@dataclass(frozen=True)
class CharacteristicRecord(Record):
    product_id: str = ""
    name: str = ""
    type: str = "product"
    category: str = "major"
    specification: str | None = None
    lsl: float | None = None
    usl: float | None = None
    unit: str | None = None
    measurement_method: str | None = None
    process_name: str | None = None
    sort_order: int = 0

    @property
    def has_tolerance(self) -> bool:
        return self.lsl is not None or self.usl is not None


@dataclass(frozen=True)
class PfmeaHeaderRecord(Record):
    product_id: str = ""
    process_name: str = ""
    doc_number: str = ""
    revision: int = 1
    status: str = "draft"


@dataclass(frozen=True)
class PfmeaLineRecord(Record):
    pfmea_id: str = ""
    characteristic_id: str | None = None
    step_no: int = 1
    process_step: str = ""
    potential_failure_mode: str = ""
    potential_effect: str = ""
    severity: int = 1
    potential_cause: str = ""
    occurrence: int = 1
    current_control_prevention: str = ""
    current_control_detection: str = ""
    detection: int = 1
    rpn: int = 1
    action_priority: str = "L"
    recommended_action: str = ""


@dataclass(frozen=True)
class ControlPlanRecord(Record):
    pfmea_id: str = ""
    name: str = ""
    doc_number: str = ""
    revision: int = 1
    status: str = "draft"


@dataclass(frozen=True)
class ControlPlanItemRecord(Record):
    control_plan_id: str = ""
    pfmea_line_id: str | None = None
    characteristic_id: str | None = None
    step_no: int = 1
    process_step: str = ""
    control_type: str = "prevention"
    control_method: str = ""
    sample_size: str = ""
    frequency: str = ""
    reaction_plan: str = ""
    responsible: str = ""


@dataclass(frozen=True)
class SopRecord(Record):
    control_plan_id: str = ""
    name: str = ""
    doc_number: str = ""
    revision: int = 1
    status: str = "draft"


@dataclass(frozen=True)
class SopStepRecord(Record):
    sop_id: str = ""
    linked_cp_item_id: str | None = None
    step_no: int = 1
    process_name: str = ""
    action: str = ""
    key_point: str = ""
    safety_note: str = ""
    quality_point: str = ""


@dataclass(frozen=True)
class InspectionStandardRecord(Record):
    control_plan_id: str = ""
    name: str = ""
    doc_number: str = ""
    revision: int = 1
    status: str = "draft"


@dataclass(frozen=True)
class InspectionItemRecord(Record):
    inspection_standard_id: str = ""
    linked_cp_item_id: str | None = None
    characteristic_id: str | None = None
    item_no: int = 1
    inspection_item_name: str = ""
    inspection_method: str = ""
    acceptance_criteria: str = ""
    sample_size: str = ""
    frequency: str = ""
    sampling_plan: str = ""
    ng_handling: str = ""


AnyRecord = Union[
    ProductRecord,
    CharacteristicRecord,
    PfmeaHeaderRecord,
    PfmeaLineRecord,
    ControlPlanRecord,
    ControlPlanItemRecord,
    SopRecord,
    SopStepRecord,
    InspectionStandardRecord,
    InspectionItemRecord,
]


# ── Kind registry ────────────────────────────────────────────────────────────

RECORD_TYPES: dict[EntityKind, type[Record]] = {
    EntityKind.PRODUCT: ProductRecord,
    EntityKind.CHARACTERISTIC: CharacteristicRecord,
    EntityKind.PFMEA_HEADER: PfmeaHeaderRecord,
    EntityKind.PFMEA_LINE: PfmeaLineRecord,
    EntityKind.CONTROL_PLAN: ControlPlanRecord,
    EntityKind.CONTROL_PLAN_ITEM: ControlPlanItemRecord,
    EntityKind.SOP: SopRecord,
    EntityKind.SOP_STEP: SopStepRecord,
    EntityKind.INSPECTION_STANDARD: InspectionStandardRecord,
    EntityKind.INSPECTION_ITEM: InspectionItemRecord,
}

# kind -> (parent field, parent kind); Product is the only root.
PARENTS: dict[EntityKind, tuple[str, EntityKind] | None] = {
    EntityKind.PRODUCT: None,
    EntityKind.CHARACTERISTIC: ("product_id", EntityKind.PRODUCT),
    EntityKind.PFMEA_HEADER: ("product_id", EntityKind.PRODUCT),
    EntityKind.PFMEA_LINE: ("pfmea_id", EntityKind.PFMEA_HEADER),
    EntityKind.CONTROL_PLAN: ("pfmea_id", EntityKind.PFMEA_HEADER),
    EntityKind.CONTROL_PLAN_ITEM: ("control_plan_id", EntityKind.CONTROL_PLAN),
    EntityKind.SOP: ("control_plan_id", EntityKind.CONTROL_PLAN),
    EntityKind.SOP_STEP: ("sop_id", EntityKind.SOP),
    EntityKind.INSPECTION_STANDARD: ("control_plan_id", EntityKind.CONTROL_PLAN),
    EntityKind.INSPECTION_ITEM: ("inspection_standard_id", EntityKind.INSPECTION_STANDARD),
}

# Non-owning cross references, (kind, field) -> referenced kind.
# The datastore nulls them when the target is deleted.
REFERENCES: dict[tuple[EntityKind, str], EntityKind] = {
    (EntityKind.PFMEA_LINE, "characteristic_id"): EntityKind.CHARACTERISTIC,
    (EntityKind.CONTROL_PLAN_ITEM, "pfmea_line_id"): EntityKind.PFMEA_LINE,
    (EntityKind.CONTROL_PLAN_ITEM, "characteristic_id"): EntityKind.CHARACTERISTIC,
    (EntityKind.SOP_STEP, "linked_cp_item_id"): EntityKind.CONTROL_PLAN_ITEM,
    (EntityKind.INSPECTION_ITEM, "linked_cp_item_id"): EntityKind.CONTROL_PLAN_ITEM,
    (EntityKind.INSPECTION_ITEM, "characteristic_id"): EntityKind.CHARACTERISTIC,
}

# Child ordering within a parent; kinds not listed keep insertion order.
ORDER_FIELDS: dict[EntityKind, str] = {
    EntityKind.CHARACTERISTIC: "sort_order",
    EntityKind.PFMEA_LINE: "step_no",
    EntityKind.CONTROL_PLAN_ITEM: "step_no",
    EntityKind.SOP_STEP: "step_no",
    EntityKind.INSPECTION_ITEM: "item_no",
}

# Document headers carrying status / revision / doc_number.
DOCUMENT_KINDS = (
    EntityKind.PFMEA_HEADER,
    EntityKind.CONTROL_PLAN,
    EntityKind.SOP,
    EntityKind.INSPECTION_STANDARD,
)

DOC_NUMBER_PREFIXES = {
    EntityKind.PFMEA_HEADER: "PFMEA",
    EntityKind.CONTROL_PLAN: "CP",
    EntityKind.SOP: "SOP",
    EntityKind.INSPECTION_STANDARD: "IS",
}


def parent_field(kind: EntityKind) -> str | None:
    entry = PARENTS[EntityKind(kind)]
    return entry[0] if entry else None


def field_names(kind: EntityKind) -> tuple[str, ...]:
    return tuple(f.name for f in fields(RECORD_TYPES[EntityKind(kind)]))


def record_from_mapping(kind: EntityKind, data: dict[str, Any]) -> AnyRecord:
    """Build the record for *kind* from a mapping, ignoring unknown keys.

    Missing fields, and NULLs in fields whose default is not None, fall back
    to the record defaults; ``id`` is required.
    """
    cls = RECORD_TYPES[EntityKind(kind)]
    defaults = {f.name: f.default for f in fields(cls)}
    values = {}
    for key, value in data.items():
        if key not in defaults:
            continue
        if value is None and defaults[key] is not None:
            continue
        values[key] = value
    return cls(**values)
