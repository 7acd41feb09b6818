"""
Document generation pipeline.

Four stages, each "generate if absent, else return existing":

    1. generate_pfmea(product_id)                          Characteristic → PfmeaLine (1:1)
    2. generate_control_plan(pfmea_id, product_id)         PfmeaLine → ControlPlanItem (1:2)
    3. generate_sop(control_plan_id, product_id)           prevention item → SopStep (1:1)
    4. generate_inspection_standard(control_plan_id, ...)  detection item → InspectionItem (1:1)

Stage N consumes stage N-1's output; there is no other order.

Every stage returns a StageResult and never raises past its boundary.  If a
child insert fails after the stage created its header, the header is deleted
again (cascade removes the children already written) and the result carries
PARTIAL_INSERT_FAILURE.

Idempotency is a read-then-write check (get_by_parent, then create).  It is
not atomic: two concurrent calls for the same parent can both see "absent"
and both insert.  That race is accepted for this low-concurrency tool; the
datastore has no unique constraint that would pick a single winner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from app.ai.narrative import NarrativeGenerator, narrate
from app.core.exceptions import (
    GenerationError,
    NoInputDataError,
    NotFoundError,
    PartialInsertFailure,
    StoreError,
    ValidationError,
)
from app.core.records import DOC_NUMBER_PREFIXES, EntityKind
from app.services.action_priority import action_priority
from app.services.risk_heuristics import (
    DEFAULT_HEURISTICS,
    RiskHeuristics,
    assess_characteristic,
    format_number,
    format_spec,
)
from app.store.base import EntityStore

logger = logging.getLogger(__name__)

STAGES = ("pfmea", "control_plan", "sop", "inspection")


# ═════════════════════════════════════════════════════════════════════════════
# Result Types
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class StageResult:
    """Outcome of one stage call."""
    stage: str
    success: bool
    created_id: str | None = None
    item_count: int = 0
    linked_parent_ids: list[str] = field(default_factory=list)
    generated: bool = False
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict:
        if not self.success:
            return {
                "success": False,
                "stage": self.stage,
                "error": self.error,
                "code": self.error_code,
            }
        return {
            "success": True,
            "stage": self.stage,
            "created_id": self.created_id,
            "item_count": self.item_count,
            "linked_parent_ids": list(self.linked_parent_ids),
            "generated": self.generated,
        }


@dataclass
class ChainResult:
    """Outcome of running all four stages for a product."""
    product_id: str
    steps: list[StageResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.steps) == len(STAGES) and all(s.success for s in self.steps)

    @property
    def failed_stage(self) -> str | None:
        for step in self.steps:
            if not step.success:
                return step.stage
        return None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "product_id": self.product_id,
            "failed_stage": self.failed_stage,
            "steps": [
                {**s.to_dict(), "action": ("generated" if s.generated else "existing") if s.success else "failed"}
                for s in self.steps
            ],
        }


# ═════════════════════════════════════════════════════════════════════════════
# Configuration
# ═════════════════════════════════════════════════════════════════════════════

# control_type -> AP -> (sample_size, frequency); H is always the tightest.
SAMPLING_PLANS: dict[str, dict[str, tuple[str, str]]] = {
    "prevention": {
        "H": ("5", "매 시간"),
        "M": ("3", "매 로트"),
        "L": ("3", "1회/일"),
    },
    "detection": {
        "H": ("100%", "전수"),
        "M": ("5", "매 로트"),
        "L": ("3", "1회/shift"),
    },
}

REACTION_PLANS = {
    "prevention": "공정 중단 후 원인 조사, 조건 재설정 및 초품 재확인",
    "detection": "부적합품 격리 및 재검사, 원인 분석 후 시정조치 보고",
}

RESPONSIBLES = {
    "prevention": "작업자",
    "detection": "검사원",
}

DEFAULT_PREVENTION_METHOD = "작업표준서 준수, 정기 점검"
DEFAULT_DETECTION_METHOD = "육안 검사, 측정 검사"

SAFETY_NOTE = "보호구 착용 필수, 안전 수칙 준수"
CRITICAL_MARK = "★ 중요특성 - "
REFERENCE_SAMPLE_CRITERIA = "한도 샘플 기준 일치"
REFERENCE_SAMPLE_CONTROL_POINT = "한도 샘플 기준 외관/상태 확인"
NG_HANDLING = (
    "【격리】 부적합품 즉시 격리 및 식별 표시\n"
    "【재검】 직전 양품 확인 이후 생산품 전수 재검사\n"
    "【원인분석】 원인 분석 후 시정조치 및 결과 보고"
)


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════

def make_doc_number(prefix: str, part_number: str | None, revision: int = 1, now: datetime | None = None) -> str:
    """'<PREFIX>-<PARTNO>-<YYMM>-R<nn>', e.g. 'CP-AB123-2610-R01'."""
    now = now or datetime.now(timezone.utc)
    return f"{prefix}-{part_number or 'NOPN'}-{now:%y%m}-R{int(revision):02d}"


def compose_key_point(control_point: str, check_method: str, reaction: str) -> str:
    """Three-part SOP key point: control point, verification method, abnormality response."""
    return (
        f"【관리 포인트】{control_point}\n"
        f"【확인 방법】{check_method}\n"
        f"【이상 시 조치】{reaction}"
    )


def sampling_for(control_type: str, priority: str) -> tuple[str, str]:
    return SAMPLING_PLANS[control_type][priority]


def format_sampling_plan(sample_size: str, frequency: str) -> str:
    return f"{sample_size} / {frequency}"


def acceptance_criteria_for(char) -> str:
    """Numeric range when both limits exist, else the reference-sample phrase."""
    if char is not None and char.lsl is not None and char.usl is not None:
        unit = char.unit or ""
        return f"{format_number(char.lsl)}{unit} ~ {format_number(char.usl)}{unit}"
    return REFERENCE_SAMPLE_CRITERIA


def _control_point(char) -> str:
    if char is None:
        return REFERENCE_SAMPLE_CONTROL_POINT
    if char.specification is None and char.lsl is None and char.usl is None:
        return f"{char.name} ({REFERENCE_SAMPLE_CONTROL_POINT})"
    return f"{char.name} {format_spec(char)}"


def _quality_point(char) -> str:
    if char is None:
        return ""
    text = f"{char.name}: {format_spec(char)}"
    return f"{CRITICAL_MARK}{text}" if char.category == "critical" else text


def _failure(stage: str, exc: Exception, code: str) -> StageResult:
    return StageResult(stage=stage, success=False, error=str(exc), error_code=code)


def _run_stage(stage: str, fn: Callable[[], StageResult], **log_extra) -> StageResult:
    """Convert the stage's exceptions into a failed StageResult."""
    try:
        return fn()
    except GenerationError as exc:
        logger.warning("Stage %s failed (%s): %s", stage, exc.code, exc,
                       extra={"stage": stage, **log_extra})
        return _failure(stage, exc, exc.code)
    except NotFoundError as exc:
        logger.info("Stage %s: %s", stage, exc, extra={"stage": stage, **log_extra})
        return _failure(stage, exc, "NOT_FOUND")
    except ValidationError as exc:
        logger.info("Stage %s rejected: %s", stage, exc, extra={"stage": stage, **log_extra})
        return _failure(stage, exc, "VALIDATION")
    except StoreError as exc:
        logger.error("Stage %s datastore error: %s", stage, exc, extra={"stage": stage, **log_extra})
        return _failure(stage, exc, "STORE_ERROR")


def _existing(stage: str, header, children: list, parent_attr: str) -> StageResult:
    return StageResult(
        stage=stage,
        success=True,
        created_id=header.id,
        item_count=len(children),
        linked_parent_ids=_unique(getattr(c, parent_attr) for c in children),
        generated=False,
    )


def _unique(values) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def _compensate(store: EntityStore, kind: EntityKind, header_id: str) -> bool:
    """Delete the just-created header; a header already gone counts as rolled back."""
    try:
        store.delete(kind, header_id)
        return True
    except StoreError:
        logger.exception("Compensation failed: %s %s could not be deleted", kind.value, header_id)
        return False


def _insert_children(
    store: EntityStore,
    header_kind: EntityKind,
    header_id: str,
    child_kind: EntityKind,
    rows: list[dict],
) -> list:
    """Insert all rows or none: on failure the header (and its children) is removed."""
    created = []
    try:
        for row in rows:
            created.append(store.create(child_kind, row))
    except StoreError as exc:
        rolled_back = _compensate(store, header_kind, header_id)
        raise PartialInsertFailure(
            f"{child_kind.value} insert failed after {len(created)} of {len(rows)} rows"
            + ("; header rolled back" if rolled_back else "; header rollback FAILED"),
            parent_id=header_id,
            inserted=len(created),
            rolled_back=rolled_back,
        ) from exc
    return created


def _resolve_control_plan(store: EntityStore, control_plan_id: str, product_id: str):
    cp = store.require(EntityKind.CONTROL_PLAN, control_plan_id)
    pfmea = store.require(EntityKind.PFMEA_HEADER, cp.pfmea_id)
    if pfmea.product_id != product_id:
        raise ValidationError(
            "Control Plan does not belong to this product",
            details={"control_plan_id": control_plan_id, "product_id": product_id},
        )
    product = store.require(EntityKind.PRODUCT, product_id)
    return cp, product


def _characteristics_by_id(store: EntityStore, product_id: str) -> dict:
    return {c.id: c for c in store.get_by_parent(EntityKind.CHARACTERISTIC, product_id)}


# ═════════════════════════════════════════════════════════════════════════════
# Stage 1: PFMEA
# ═════════════════════════════════════════════════════════════════════════════

def generate_pfmea(
    store: EntityStore,
    product_id: str,
    narrator: NarrativeGenerator | None = None,
    heuristics: RiskHeuristics = DEFAULT_HEURISTICS,
) -> StageResult:
    """Create the PFMEA for a product: one line per characteristic."""
    return _run_stage(
        "pfmea",
        lambda: _generate_pfmea(store, product_id, narrator, heuristics),
        product_id=product_id,
    )


def _generate_pfmea(store, product_id, narrator, heuristics) -> StageResult:
    product = store.require(EntityKind.PRODUCT, product_id)

    existing = store.get_by_parent(EntityKind.PFMEA_HEADER, product_id)
    if existing:
        header = existing[0]
        lines = store.get_by_parent(EntityKind.PFMEA_LINE, header.id)
        logger.info("PFMEA already exists for product %s: %s", product_id, header.id,
                    extra={"stage": "pfmea", "product_id": product_id})
        return _existing("pfmea", header, lines, "characteristic_id")

    characteristics = store.get_by_parent(EntityKind.CHARACTERISTIC, product_id)
    if not characteristics:
        raise NoInputDataError("Product has no characteristics", parent_id=product_id)

    process_name = next(
        (c.process_name for c in characteristics if c.process_name), f"{product.name} 제조공정",
    )
    header = store.create(EntityKind.PFMEA_HEADER, {
        "product_id": product_id,
        "process_name": process_name,
        "doc_number": make_doc_number(DOC_NUMBER_PREFIXES[EntityKind.PFMEA_HEADER], product.part_number),
        "revision": 1,
        "status": "draft",
    })

    rows = []
    for step_no, char in enumerate(characteristics, start=1):
        assessment = assess_characteristic(char, process_name, heuristics)
        fallback = {
            "potential_failure_mode": assessment.potential_failure_mode,
            "potential_effect": assessment.potential_effect,
            "potential_cause": assessment.potential_cause,
            "recommended_action": assessment.recommended_action,
        }
        context = {
            "name": char.name,
            "type": char.type,
            "category": char.category,
            "specification": format_spec(char),
            "process_name": char.process_name or process_name,
            "severity": assessment.severity,
            "occurrence": assessment.occurrence,
            "detection": assessment.detection,
            "action_priority": assessment.action_priority,
        }
        text = narrate(narrator, context, fallback)
        rows.append({
            "pfmea_id": header.id,
            "characteristic_id": char.id,
            "step_no": step_no,
            "process_step": char.process_name or process_name,
            "potential_failure_mode": text["potential_failure_mode"],
            "potential_effect": text["potential_effect"],
            "potential_cause": text["potential_cause"],
            "current_control_prevention": assessment.current_control_prevention,
            "current_control_detection": assessment.current_control_detection,
            "severity": assessment.severity,
            "occurrence": assessment.occurrence,
            "detection": assessment.detection,
            "rpn": assessment.rpn,
            "action_priority": assessment.action_priority,
            "recommended_action": text["recommended_action"],
        })

    lines = _insert_children(store, EntityKind.PFMEA_HEADER, header.id, EntityKind.PFMEA_LINE, rows)
    logger.info("PFMEA %s generated for product %s: %d lines", header.id, product_id, len(lines),
                extra={"stage": "pfmea", "product_id": product_id})
    return StageResult(
        stage="pfmea",
        success=True,
        created_id=header.id,
        item_count=len(lines),
        linked_parent_ids=[c.id for c in characteristics],
        generated=True,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Stage 2: Control Plan
# ═════════════════════════════════════════════════════════════════════════════

def generate_control_plan(store: EntityStore, pfmea_id: str, product_id: str) -> StageResult:
    """Create the Control Plan: a prevention and a detection item per PFMEA line."""
    return _run_stage(
        "control_plan",
        lambda: _generate_control_plan(store, pfmea_id, product_id),
        product_id=product_id,
    )


def _generate_control_plan(store, pfmea_id, product_id) -> StageResult:
    pfmea = store.require(EntityKind.PFMEA_HEADER, pfmea_id)
    if pfmea.product_id != product_id:
        raise ValidationError(
            "PFMEA does not belong to this product",
            details={"pfmea_id": pfmea_id, "product_id": product_id},
        )
    product = store.require(EntityKind.PRODUCT, product_id)

    existing = store.get_by_parent(EntityKind.CONTROL_PLAN, pfmea_id)
    if existing:
        cp = existing[0]
        items = store.get_by_parent(EntityKind.CONTROL_PLAN_ITEM, cp.id)
        return _existing("control_plan", cp, items, "pfmea_line_id")

    lines = store.get_by_parent(EntityKind.PFMEA_LINE, pfmea_id)
    if not lines:
        raise NoInputDataError("PFMEA has no lines", parent_id=pfmea_id)

    chars = _characteristics_by_id(store, product_id)
    cp = store.create(EntityKind.CONTROL_PLAN, {
        "pfmea_id": pfmea_id,
        "name": f"Control Plan - {pfmea.process_name or product.name}",
        "doc_number": make_doc_number(DOC_NUMBER_PREFIXES[EntityKind.CONTROL_PLAN], product.part_number),
        "revision": 1,
        "status": "draft",
    })

    rows = []
    for index, line in enumerate(lines):
        char = chars.get(line.characteristic_id)
        priority = action_priority(line.severity, line.occurrence, line.detection)
        methods = {
            "prevention": line.current_control_prevention or DEFAULT_PREVENTION_METHOD,
            "detection": (line.current_control_detection
                          or (char.measurement_method if char else None)
                          or DEFAULT_DETECTION_METHOD),
        }
        for offset, control_type in enumerate(("prevention", "detection"), start=1):
            sample_size, frequency = sampling_for(control_type, priority)
            rows.append({
                "control_plan_id": cp.id,
                "pfmea_line_id": line.id,
                "characteristic_id": line.characteristic_id,
                "step_no": index * 2 + offset,
                "process_step": line.process_step,
                "control_type": control_type,
                "control_method": methods[control_type],
                "sample_size": sample_size,
                "frequency": frequency,
                "reaction_plan": REACTION_PLANS[control_type],
                "responsible": RESPONSIBLES[control_type],
            })

    items = _insert_children(store, EntityKind.CONTROL_PLAN, cp.id, EntityKind.CONTROL_PLAN_ITEM, rows)
    logger.info("Control Plan %s generated from PFMEA %s: %d items", cp.id, pfmea_id, len(items),
                extra={"stage": "control_plan", "product_id": product_id})
    return StageResult(
        stage="control_plan",
        success=True,
        created_id=cp.id,
        item_count=len(items),
        linked_parent_ids=[ln.id for ln in lines],
        generated=True,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Stage 3: SOP
# ═════════════════════════════════════════════════════════════════════════════

def generate_sop(store: EntityStore, control_plan_id: str, product_id: str) -> StageResult:
    """Create the SOP: one step per prevention control."""
    return _run_stage(
        "sop",
        lambda: _generate_sop(store, control_plan_id, product_id),
        product_id=product_id,
    )


def _generate_sop(store, control_plan_id, product_id) -> StageResult:
    cp, product = _resolve_control_plan(store, control_plan_id, product_id)

    existing = store.get_by_parent(EntityKind.SOP, control_plan_id)
    if existing:
        sop = existing[0]
        steps = store.get_by_parent(EntityKind.SOP_STEP, sop.id)
        return _existing("sop", sop, steps, "linked_cp_item_id")

    items = [
        i for i in store.get_by_parent(EntityKind.CONTROL_PLAN_ITEM, control_plan_id)
        if i.control_type == "prevention"
    ]
    if not items:
        raise NoInputDataError("Control Plan has no prevention items", parent_id=control_plan_id)

    chars = _characteristics_by_id(store, product_id)
    sop = store.create(EntityKind.SOP, {
        "control_plan_id": control_plan_id,
        "name": f"SOP - {product.name}",
        "doc_number": make_doc_number(DOC_NUMBER_PREFIXES[EntityKind.SOP], product.part_number),
        "revision": 1,
        "status": "draft",
    })

    rows = []
    for step_no, item in enumerate(items, start=1):
        char = chars.get(item.characteristic_id)
        subject = char.name if char else (item.process_step or "공정")
        rows.append({
            "sop_id": sop.id,
            "linked_cp_item_id": item.id,
            "step_no": step_no,
            "process_name": item.process_step,
            "action": f"{subject} 작업 수행 및 관리 항목 자주 확인",
            "key_point": compose_key_point(_control_point(char), item.control_method, item.reaction_plan),
            "safety_note": SAFETY_NOTE,
            "quality_point": _quality_point(char),
        })

    steps = _insert_children(store, EntityKind.SOP, sop.id, EntityKind.SOP_STEP, rows)
    logger.info("SOP %s generated from Control Plan %s: %d steps", sop.id, control_plan_id, len(steps),
                extra={"stage": "sop", "product_id": product_id})
    return StageResult(
        stage="sop",
        success=True,
        created_id=sop.id,
        item_count=len(steps),
        linked_parent_ids=[i.id for i in items],
        generated=True,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Stage 4: Inspection Standard
# ═════════════════════════════════════════════════════════════════════════════

def generate_inspection_standard(store: EntityStore, control_plan_id: str, product_id: str) -> StageResult:
    """Create the Inspection Standard: one item per detection control."""
    return _run_stage(
        "inspection",
        lambda: _generate_inspection_standard(store, control_plan_id, product_id),
        product_id=product_id,
    )


def _generate_inspection_standard(store, control_plan_id, product_id) -> StageResult:
    cp, product = _resolve_control_plan(store, control_plan_id, product_id)

    existing = store.get_by_parent(EntityKind.INSPECTION_STANDARD, control_plan_id)
    if existing:
        standard = existing[0]
        inspection_items = store.get_by_parent(EntityKind.INSPECTION_ITEM, standard.id)
        return _existing("inspection", standard, inspection_items, "linked_cp_item_id")

    items = [
        i for i in store.get_by_parent(EntityKind.CONTROL_PLAN_ITEM, control_plan_id)
        if i.control_type == "detection"
    ]
    if not items:
        raise NoInputDataError("Control Plan has no detection items", parent_id=control_plan_id)

    chars = _characteristics_by_id(store, product_id)
    standard = store.create(EntityKind.INSPECTION_STANDARD, {
        "control_plan_id": control_plan_id,
        "name": f"검사기준서 - {product.name}",
        "doc_number": make_doc_number(DOC_NUMBER_PREFIXES[EntityKind.INSPECTION_STANDARD], product.part_number),
        "revision": 1,
        "status": "draft",
    })

    rows = []
    for item_no, item in enumerate(items, start=1):
        char = chars.get(item.characteristic_id)
        rows.append({
            "inspection_standard_id": standard.id,
            "linked_cp_item_id": item.id,
            "characteristic_id": item.characteristic_id,
            "item_no": item_no,
            "inspection_item_name": char.name if char else (item.process_step or f"검사 항목 {item_no}"),
            "inspection_method": item.control_method,
            "acceptance_criteria": acceptance_criteria_for(char),
            "sample_size": item.sample_size,
            "frequency": item.frequency,
            "sampling_plan": format_sampling_plan(item.sample_size, item.frequency),
            "ng_handling": NG_HANDLING,
        })

    created = _insert_children(
        store, EntityKind.INSPECTION_STANDARD, standard.id, EntityKind.INSPECTION_ITEM, rows,
    )
    logger.info("Inspection Standard %s generated from Control Plan %s: %d items",
                standard.id, control_plan_id, len(created),
                extra={"stage": "inspection", "product_id": product_id})
    return StageResult(
        stage="inspection",
        success=True,
        created_id=standard.id,
        item_count=len(created),
        linked_parent_ids=[i.id for i in items],
        generated=True,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Full chain
# ═════════════════════════════════════════════════════════════════════════════

def generate_full_chain(
    store: EntityStore,
    product_id: str,
    narrator: NarrativeGenerator | None = None,
    heuristics: RiskHeuristics = DEFAULT_HEURISTICS,
    checkpoint: Callable[[StageResult], None] | None = None,
) -> ChainResult:
    """Run stages 1-4 in order, stopping at the first failure.

    ``checkpoint`` is called after every successful stage (the HTTP layer
    commits there, so a later failure does not discard earlier documents).
    """
    chain = ChainResult(product_id=product_id)

    def _record(result: StageResult) -> bool:
        chain.steps.append(result)
        if result.success and checkpoint is not None:
            checkpoint(result)
        return result.success

    if not _record(generate_pfmea(store, product_id, narrator, heuristics)):
        return chain
    pfmea_id = chain.steps[-1].created_id

    if not _record(generate_control_plan(store, pfmea_id, product_id)):
        return chain
    cp_id = chain.steps[-1].created_id

    if not _record(generate_sop(store, cp_id, product_id)):
        return chain
    _record(generate_inspection_standard(store, cp_id, product_id))

    logger.info("Traceability chain for product %s: %s", product_id,
                ", ".join(f"{s.stage}={'generated' if s.generated else 'existing'}"
                          for s in chain.steps if s.success),
                extra={"product_id": product_id})
    return chain
