"""
Risk heuristics: keyword tables for deterministic PFMEA line derivation.

Everything here is configuration, not law: the keyword lists will misclassify
vocabulary they do not anticipate.  Callers may pass a customised
``RiskHeuristics`` instance to the generators instead of the defaults.

Derivation order for one characteristic:
    1. failure family   ← keyword match on the characteristic name
    2. failure mode / effect / cause / controls ← family + category templates
    3. severity         ← category base, effect boost, safety override (10)
    4. occurrence       ← failure-mode keywords
    5. detection        ← detection-control keywords, then the visual floor
    6. RPN + AP         ← action_priority module

Usage:
    from app.services.risk_heuristics import assess_characteristic
    assessment = assess_characteristic(characteristic, process_name="CNC 가공")
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from app.core.records import CharacteristicRecord
from app.services.action_priority import action_priority, calculate_rpn, clamp_rating

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Data Classes
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FailureFamily:
    """Text templates for one failure vocabulary (dimensional, cosmetic, ...).

    ``failure_mode`` accepts ``{name}`` and ``{spec}``; ``cause`` accepts
    ``{process}``.
    """
    key: str
    pattern: str
    failure_mode: str
    cause: str
    prevention: str
    detection: str


@dataclass(frozen=True)
class RiskAssessment:
    """Derived content of one PFMEA line."""
    family: str
    potential_failure_mode: str
    potential_effect: str
    potential_cause: str
    current_control_prevention: str
    current_control_detection: str
    severity: int
    occurrence: int
    detection: int
    rpn: int
    action_priority: str
    recommended_action: str

    def to_dict(self) -> dict:
        return {
            "potential_failure_mode": self.potential_failure_mode,
            "potential_effect": self.potential_effect,
            "potential_cause": self.potential_cause,
            "current_control_prevention": self.current_control_prevention,
            "current_control_detection": self.current_control_detection,
            "severity": self.severity,
            "occurrence": self.occurrence,
            "detection": self.detection,
            "rpn": self.rpn,
            "action_priority": self.action_priority,
            "recommended_action": self.recommended_action,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Keyword Tables
# ═════════════════════════════════════════════════════════════════════════════

FAILURE_FAMILIES: tuple[FailureFamily, ...] = (
    FailureFamily(
        key="torque",
        pattern=r"토크|체결|torque|fasten",
        failure_mode="{name} 체결 토크 부족/과다 ({spec})",
        cause="체결 공구 토크 설정 오류, 공구 교정 주기 초과, 작업자 체결 누락",
        prevention="토크 렌치 사용, 토크 공구 정기 교정, 작업표준서 준수",
        detection="토크 검사기 측정, 마킹 확인",
    ),
    FailureFamily(
        key="dimensional",
        pattern=r"치수|길이|직경|지름|두께|깊이|폭|높이|간극|평탄|진원|위치|공차|dimension|diameter|length|thickness|depth|width|height|gap|flatness",
        failure_mode="{name} 치수 규격 이탈 ({spec})",
        cause="{process} 공정 변동, 공구 마모, 설비 셋업 불량",
        prevention="공정 조건 표준화, 공구 수명 관리, 초품 검사",
        detection="측정기기(캘리퍼/마이크로미터) 검사, SPC 모니터링",
    ),
    FailureFamily(
        key="missing",
        pattern=r"누락|유무|미삽입|결품|missing|presence",
        failure_mode="{name} 누락 / 미삽입",
        cause="부품 공급 오류, 작업 순서 미준수, 작업자 실수",
        prevention="Poka-Yoke 부품 유무 감지, 작업 순서 표준화",
        detection="Poka-Yoke 센서 감지, 중량 검사",
    ),
    FailureFamily(
        key="cosmetic",
        pattern=r"외관|도장|스크래치|찍힘|긁힘|오염|이물|색상|광택|appearance|scratch|paint|cosmetic|burr",
        failure_mode="{name} 외관 불량 (스크래치, 찍힘, 오염)",
        cause="취급 부주의, 작업 환경 오염, 이송 중 접촉",
        prevention="작업장 5S 관리, 취급 지그 사용, 포장 사양 준수",
        detection="육안 검사, 한도 샘플 비교",
    ),
)

GENERIC_FAMILY = FailureFamily(
    key="generic",
    pattern=r"",
    failure_mode="{name} 규격 이탈 ({spec})",
    cause="{process} 공정 변동, 설비 이상, 작업자 실수",
    prevention="작업표준서 준수, 정기 점검",
    detection="육안 검사, 측정 검사",
)

CATEGORY_SEVERITY: dict[str, int] = {
    "critical": 9,   # safety / regulatory class
    "major": 7,
    "minor": 4,
}

CATEGORY_EFFECTS: dict[str, str] = {
    "critical": "제품 기능 불량, 고객 클레임 발생 가능",
    "major": "제품 성능 저하, 품질 이슈 가능",
    "minor": "외관 불량, 경미한 품질 영향",
}

SAFETY_PATTERN = r"안전|법규|화재|인체|사고|safety|regulat|fire|injury"
SAFETY_SEVERITY = 10

# Effect-text boosts (first match wins, never lowers the category base).
SEVERITY_EFFECT_RULES: tuple[tuple[str, int], ...] = (
    (r"기능.*불량|작동.*불가|고객.*불만", 8),
    (r"조립.*불량|성능.*저하|누수|누유", 7),
    (r"품질.*저하|리워크|재작업", 6),
    (r"외관|소음|진동", 4),
)

# Failure-mode text → occurrence (first match wins).
OCCURRENCE_RULES: tuple[tuple[str, int], ...] = (
    (r"규격.*이탈|치수.*불량|편차", 5),
    (r"누락|빠짐|미삽입", 3),
    (r"파손|크랙|균열", 3),
    (r"오염|이물", 4),
    (r"변형|뒤틀림", 4),
)
DEFAULT_OCCURRENCE = 4

# Detection-control text → detection (first match wins).
DETECTION_RULES: tuple[tuple[str, int], ...] = (
    (r"전수|자동|센서|poka-?yoke|비전|vision|automat|sensor", 3),
    (r"spc|모니터링|monitor", 4),
    (r"측정|게이지|gauge|gage|캘리퍼|마이크로미터|3차원|cmm|검사기|tester", 5),
    (r"육안|visual|목시", 6),
    (r"샘플링|sampling", 7),
)
DEFAULT_DETECTION = 5

VISUAL_PATTERN = r"육안|visual|목시"
# Any of these means the method is not visual-only.
INSTRUMENTED_PATTERN = (
    r"전수|자동|센서|poka-?yoke|비전|vision|automat|sensor|spc|모니터링|monitor|"
    r"측정|게이지|gauge|gage|캘리퍼|마이크로미터|3차원|cmm|검사기|tester"
)
VISUAL_DETECTION_FLOOR = 7

# Process-name → (prevention, cause) overrides (first match wins).
PROCESS_RULES: tuple[tuple[str, str, str], ...] = (
    (r"가공|절삭|선반|밀링|드릴|machin",
     "공정 조건 표준화, 공구 수명 관리, 정기 설비 점검",
     "{process} 공정 변동, 공구 마모, 설비 이상"),
    (r"조립|체결|assembl",
     "토크 렌치 사용, 작업표준서 준수, Poka-Yoke 적용",
     "체결 토크 변동, 부품 누락, 작업자 실수"),
    (r"용접|웰딩|weld",
     "용접 파라미터 관리, 전극 교체 주기 관리",
     "용접 조건 변동, 전극 마모, 모재 상태 불량"),
    (r"도장|코팅|paint|coat",
     "도장 조건 관리, 환경 온습도 관리, 전처리 확인",
     "도장 조건 변동, 환경 온습도, 전처리 불량"),
)

RECOMMENDED_ACTIONS: dict[str, str] = {
    "H": "SPC 관리 도입, 공정능력(Cpk) 확인, 전수검사 실시, 설계 검토 요청",
    "M": "정기 검사 주기 단축, 작업자 교육 강화, 샘플링 검사 강화",
    "L": "작업자 자주검사 실시, 한도 샘플 관리, 정기 모니터링",
}

UNDEFINED_SPEC = "규격 미정"


@dataclass(frozen=True)
class RiskHeuristics:
    """Bundle of the keyword tables; override any field to customise."""
    families: tuple[FailureFamily, ...] = FAILURE_FAMILIES
    generic_family: FailureFamily = GENERIC_FAMILY
    category_severity: dict[str, int] = field(default_factory=lambda: dict(CATEGORY_SEVERITY))
    category_effects: dict[str, str] = field(default_factory=lambda: dict(CATEGORY_EFFECTS))
    safety_pattern: str = SAFETY_PATTERN
    severity_effect_rules: tuple[tuple[str, int], ...] = SEVERITY_EFFECT_RULES
    occurrence_rules: tuple[tuple[str, int], ...] = OCCURRENCE_RULES
    default_occurrence: int = DEFAULT_OCCURRENCE
    detection_rules: tuple[tuple[str, int], ...] = DETECTION_RULES
    default_detection: int = DEFAULT_DETECTION
    visual_pattern: str = VISUAL_PATTERN
    instrumented_pattern: str = INSTRUMENTED_PATTERN
    visual_detection_floor: int = VISUAL_DETECTION_FLOOR
    process_rules: tuple[tuple[str, str, str], ...] = PROCESS_RULES
    recommended_actions: dict[str, str] = field(default_factory=lambda: dict(RECOMMENDED_ACTIONS))


DEFAULT_HEURISTICS = RiskHeuristics()


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════

def _matches(pattern: str, text: str | None) -> bool:
    if not pattern or not text:
        return False
    return re.search(pattern, text, re.IGNORECASE) is not None


def _first_rule(rules, text: str | None, default: int) -> int:
    for pattern, value in rules:
        if _matches(pattern, text):
            return value
    return default


def format_number(value) -> str:
    """9.80 -> '9.8', 10.0 -> '10'."""
    return f"{float(value):g}"


def format_tolerance(char: CharacteristicRecord) -> str | None:
    """'<lsl><unit> ~ <usl><unit>', one-sided bound, or None."""
    unit = char.unit or ""
    if char.lsl is not None and char.usl is not None:
        return f"{format_number(char.lsl)}{unit} ~ {format_number(char.usl)}{unit}"
    if char.lsl is not None:
        return f"≥ {format_number(char.lsl)}{unit}"
    if char.usl is not None:
        return f"≤ {format_number(char.usl)}{unit}"
    return None


def format_spec(char: CharacteristicRecord) -> str:
    """Free-text specification, else the tolerance, else '규격 미정'."""
    return char.specification or format_tolerance(char) or UNDEFINED_SPEC


# ═════════════════════════════════════════════════════════════════════════════
# Rating Functions
# ═════════════════════════════════════════════════════════════════════════════

def classify_family(name: str, heuristics: RiskHeuristics = DEFAULT_HEURISTICS) -> FailureFamily:
    for family in heuristics.families:
        if _matches(family.pattern, name):
            return family
    return heuristics.generic_family


def severity_rating(
    category: str,
    effect: str = "",
    context: str = "",
    heuristics: RiskHeuristics = DEFAULT_HEURISTICS,
) -> int:
    """Category base raised by effect keywords; a safety keyword forces 10.

    ``context`` is the characteristic name + specification; it only feeds the
    safety override.
    """
    if _matches(heuristics.safety_pattern, f"{context} {effect}"):
        return SAFETY_SEVERITY
    base = heuristics.category_severity.get(category, 5)
    boost = _first_rule(heuristics.severity_effect_rules, effect, 1)
    return clamp_rating(max(base, boost))


def occurrence_rating(failure_mode: str, heuristics: RiskHeuristics = DEFAULT_HEURISTICS) -> int:
    return clamp_rating(
        _first_rule(heuristics.occurrence_rules, failure_mode, heuristics.default_occurrence)
    )


def is_visual_only(detection_text: str | None, heuristics: RiskHeuristics = DEFAULT_HEURISTICS) -> bool:
    """True when the method names visual inspection and nothing instrumented."""
    return (
        _matches(heuristics.visual_pattern, detection_text)
        and not _matches(heuristics.instrumented_pattern, detection_text)
    )


def apply_visual_detection_floor(
    detection_text: str | None,
    detection: int,
    heuristics: RiskHeuristics = DEFAULT_HEURISTICS,
) -> int:
    """Visual-only detection cannot claim high capability: D >= floor."""
    if is_visual_only(detection_text, heuristics):
        return max(detection, heuristics.visual_detection_floor)
    return detection


def detection_rating(detection_text: str | None, heuristics: RiskHeuristics = DEFAULT_HEURISTICS) -> int:
    rating = _first_rule(heuristics.detection_rules, detection_text, heuristics.default_detection)
    return clamp_rating(apply_visual_detection_floor(detection_text, rating, heuristics))


def _process_controls(process_name: str, family: FailureFamily, heuristics: RiskHeuristics):
    for pattern, prevention, cause in heuristics.process_rules:
        if _matches(pattern, process_name):
            return prevention, cause.format(process=process_name)
    return family.prevention, family.cause.format(process=process_name)


# ═════════════════════════════════════════════════════════════════════════════
# Public API
# ═════════════════════════════════════════════════════════════════════════════

def assess_characteristic(
    char: CharacteristicRecord,
    process_name: str = "",
    heuristics: RiskHeuristics = DEFAULT_HEURISTICS,
) -> RiskAssessment:
    """Derive the full content of the PFMEA line for *char*."""
    process = char.process_name or process_name or "제조"
    family = classify_family(char.name, heuristics)
    spec = format_spec(char)

    failure_mode = family.failure_mode.format(name=char.name, spec=spec)
    effect = heuristics.category_effects.get(char.category, heuristics.category_effects["major"])
    prevention, cause = _process_controls(process, family, heuristics)
    detection_text = char.measurement_method or family.detection

    severity = severity_rating(
        char.category, effect, f"{char.name} {char.specification or ''}", heuristics,
    )
    occurrence = occurrence_rating(failure_mode, heuristics)
    detection = detection_rating(detection_text, heuristics)
    ap = action_priority(severity, occurrence, detection)

    logger.debug(
        "Assessed %s: family=%s S=%d O=%d D=%d AP=%s",
        char.name, family.key, severity, occurrence, detection, ap,
    )
    return RiskAssessment(
        family=family.key,
        potential_failure_mode=failure_mode,
        potential_effect=effect,
        potential_cause=cause,
        current_control_prevention=prevention,
        current_control_detection=detection_text,
        severity=severity,
        occurrence=occurrence,
        detection=detection,
        rpn=calculate_rpn(severity, occurrence, detection),
        action_priority=ap,
        recommended_action=heuristics.recommended_actions[ap],
    )
