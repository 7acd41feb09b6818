"""
APQP Document Traceability Service
Narrative generator: optional natural-language text for PFMEA lines and
optional model-written PFMEA reviews.

Two implementations behind one interface:
    - TemplateNarrativeGenerator: deterministic, always available (default)
    - OpenAINarrativeGenerator:   chat-completion JSON output, lazy SDK import

The generator only rewrites free-text fields (failure mode, effect, cause,
recommended action).  Ratings are never taken from it.  The deterministic
fallback is computed before the call and returned on any failure, so the
pipeline is correct with the template generator alone.

Reviews follow the same contract: the rule-based review is computed first and
stands whenever the generator has no review model or its answer is unusable.

Usage:
    from app.ai.narrative import get_narrative_generator, narrate, review
    generator = get_narrative_generator(app.config)
    text = narrate(generator, context, fallback)
    result, ai_powered = review(generator, context, fallback_review)
"""

import json
import logging
import os
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

NARRATIVE_FIELDS = (
    "potential_failure_mode",
    "potential_effect",
    "potential_cause",
    "recommended_action",
)

REVIEW_FINDING_TYPES = ("warning", "improvement", "missing")


class NarrativeError(Exception):
    """The generator produced no usable narrative."""


# ── Generator Abstract Base ──────────────────────────────────────────────────

class NarrativeGenerator(ABC):
    """Abstract interface for narrative-text generators."""

    name = "base"

    @abstractmethod
    def pfmea_narrative(self, context: dict, fallback: dict) -> dict:
        """
        Produce narrative text for one PFMEA line.

        Args:
            context: characteristic / process facts (name, category,
                     specification, process_name, severity, occurrence,
                     detection, action_priority).
            fallback: deterministic values for NARRATIVE_FIELDS.

        Returns:
            dict with exactly the NARRATIVE_FIELDS keys.
        """
        ...

    def pfmea_review(self, context: dict, fallback: dict) -> dict | None:
        """
        Review a whole PFMEA.

        Args:
            context: product_name, process_name and ``lines`` (one dict per
                     PFMEA line, characteristic_name included).
            fallback: the rule-based review.

        Returns:
            {overall_score, findings, summary}, or None when this generator
            has no review model.
        """
        return None


# ── Deterministic generator ──────────────────────────────────────────────────

class TemplateNarrativeGenerator(NarrativeGenerator):
    """Returns the template text unchanged."""

    name = "template"

    def pfmea_narrative(self, context: dict, fallback: dict) -> dict:
        return {key: fallback[key] for key in NARRATIVE_FIELDS}


# ── OpenAI generator ─────────────────────────────────────────────────────────

SYSTEM_PROMPT = (
    "너는 자동차 부품 품질 전문가이다. AIAG-VDA FMEA 기준에 따라 PFMEA 서술 항목을 작성한다. "
    "반드시 JSON 객체만 출력하라. 키: potential_failure_mode, potential_effect, "
    "potential_cause, recommended_action. 모든 값은 한국어 문자열이다."
)


REVIEW_SYSTEM_PROMPT = (
    "당신은 IATF 16949 품질 시스템 전문 심사원입니다. PFMEA 문서를 검토하여 개선점을 제시합니다.\n"
    "반드시 JSON 객체만 출력하라. 스키마: "
    "{\"overall_score\": 0~100 숫자, "
    "\"findings\": [{\"type\": \"warning\" | \"improvement\" | \"missing\", "
    "\"target\": \"항목 번호 또는 영역 (예: '[1] 조립공정' 또는 '전체')\", \"message\": \"검토 의견\"}], "
    "\"summary\": \"전체 검토 요약 (2-3문장)\"}\n"
    "검토 기준: S/O/D 평가의 적절성(AIAG FMEA 기준), 고장모드의 포괄성, 원인-고장모드 연결의 논리성, "
    "예방/검출 관리방안의 충분성, RPN 200 이상 항목의 권장조치, Action Priority와 RPN의 일관성.\n"
    "warning: S/O/D 값이 부적절하거나 관리방안이 불충분함. improvement: 개선 가능한 사항. "
    "missing: 누락된 고장모드나 관리방안."
)


class OpenAINarrativeGenerator(NarrativeGenerator):
    """OpenAI chat-completion narrative provider."""

    name = "openai"

    def __init__(self, api_key=None, model="gpt-4o-mini", base_url=None,
                 timeout=15.0, max_retries=0, client=None):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self._client = client

    def _get_client(self):
        if self._client is None:
            try:
                import openai
            except ImportError:
                raise RuntimeError("openai package not installed. Run: pip install 'apqp-docs[llm]'")
            kwargs = {"api_key": self.api_key, "timeout": self.timeout, "max_retries": self.max_retries}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = openai.OpenAI(**kwargs)
        return self._client

    @staticmethod
    def build_messages(context: dict, fallback: dict) -> list:
        user_msg = (
            "다음 공정 특성에 대한 PFMEA 서술 항목을 작성하라.\n\n"
            f"공정명: {context.get('process_name') or '-'}\n"
            f"특성명: {context.get('name') or '-'}\n"
            f"특성 유형: {context.get('type') or '-'}\n"
            f"중요도: {context.get('category') or '-'}\n"
            f"규격: {context.get('specification') or '해당없음'}\n"
            f"S/O/D: {context.get('severity')}/{context.get('occurrence')}/{context.get('detection')} "
            f"(AP={context.get('action_priority')})\n\n"
            "참고 초안:\n"
            + json.dumps({k: fallback[k] for k in NARRATIVE_FIELDS}, ensure_ascii=False)
            + "\n\nJSON만 출력하라."
        )
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_msg},
        ]

    def pfmea_narrative(self, context: dict, fallback: dict) -> dict:
        client = self._get_client()
        response = client.chat.completions.create(
            model=self.model,
            messages=self.build_messages(context, fallback),
            temperature=0.3,
            max_tokens=800,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content or ""
        return parse_narrative(content)

    @staticmethod
    def build_review_messages(context: dict) -> list:
        lines = context.get("lines") or []
        lines_text = "\n".join(
            f"[{i}] 공정: {ln.get('process_step')} | 특성: {ln.get('characteristic_name') or '-'} | "
            f"고장모드: {ln.get('potential_failure_mode')} | 영향: {ln.get('potential_effect')} | "
            f"S={ln.get('severity')} O={ln.get('occurrence')} D={ln.get('detection')} RPN={ln.get('rpn')} "
            f"AP={ln.get('action_priority')} | 원인: {ln.get('potential_cause')} | "
            f"예방: {ln.get('current_control_prevention')} | 검출: {ln.get('current_control_detection')} | "
            f"조치: {ln.get('recommended_action')}"
            for i, ln in enumerate(lines, start=1)
        )
        user_msg = (
            "다음 PFMEA를 검토하라.\n\n"
            f"제품: {context.get('product_name') or '제품'}\n"
            f"공정: {context.get('process_name') or '공정'}\n"
            f"항목 수: {len(lines)}\n\n"
            f"--- PFMEA 항목 ---\n{lines_text}\n--- 끝 ---\n\n"
            "JSON만 출력하라."
        )
        return [
            {"role": "system", "content": REVIEW_SYSTEM_PROMPT},
            {"role": "user", "content": user_msg},
        ]

    def pfmea_review(self, context: dict, fallback: dict) -> dict:
        client = self._get_client()
        response = client.chat.completions.create(
            model=self.model,
            messages=self.build_review_messages(context),
            temperature=0.2,
            max_tokens=1500,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content or ""
        return parse_review(content)


def _load_json_object(content: str) -> dict:
    text = (content or "").strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise NarrativeError(f"Response is not JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise NarrativeError("Response JSON is not an object")
    return payload


def parse_narrative(content: str) -> dict:
    """Parse a JSON narrative payload; every field must be a non-empty string."""
    payload = _load_json_object(content)
    missing = [k for k in NARRATIVE_FIELDS if not isinstance(payload.get(k), str) or not payload[k].strip()]
    if missing:
        raise NarrativeError(f"Missing narrative fields: {', '.join(missing)}")
    return {k: payload[k].strip() for k in NARRATIVE_FIELDS}


def parse_review(content: str) -> dict:
    """Parse a JSON review payload into {overall_score, findings, summary}.

    The score is clamped to 0-100; every finding needs a known type and a
    non-empty message.
    """
    payload = _load_json_object(content)

    score = payload.get("overall_score")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or score != score:
        raise NarrativeError("overall_score must be a number")
    summary = payload.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise NarrativeError("summary must be a non-empty string")
    raw_findings = payload.get("findings")
    if not isinstance(raw_findings, list):
        raise NarrativeError("findings must be a list")

    findings = []
    for entry in raw_findings:
        if not isinstance(entry, dict) or entry.get("type") not in REVIEW_FINDING_TYPES:
            raise NarrativeError(f"Malformed finding: {entry!r}")
        message = entry.get("message")
        if not isinstance(message, str) or not message.strip():
            raise NarrativeError("Finding without a message")
        findings.append({
            "type": entry["type"],
            "target": str(entry.get("target") or "전체").strip(),
            "message": message.strip(),
        })
    return {
        "overall_score": int(max(0, min(100, score))),
        "findings": findings,
        "summary": summary.strip(),
    }


# ── Public helpers ───────────────────────────────────────────────────────────

def narrate(generator: NarrativeGenerator | None, context: dict, fallback: dict) -> dict:
    """Run *generator*, returning *fallback* on any failure."""
    if generator is None:
        return dict(fallback)
    try:
        result = generator.pfmea_narrative(context, fallback)
        if set(NARRATIVE_FIELDS) - set(result or {}):
            raise NarrativeError("Generator returned an incomplete narrative")
        return {key: result[key] for key in NARRATIVE_FIELDS}
    except Exception as exc:
        logger.warning("Narrative generator '%s' failed, using template text: %s",
                       getattr(generator, "name", "?"), exc)
        return dict(fallback)


def review(generator: NarrativeGenerator | None, context: dict, fallback: dict) -> tuple[dict, bool]:
    """Run the generator's review; returns (review, ai_powered).

    *fallback* stands, with ai_powered False, unless the generator returns a
    usable review.
    """
    if generator is None:
        return dict(fallback), False
    try:
        result = generator.pfmea_review(context, fallback)
    except Exception as exc:
        logger.warning("Review by '%s' failed, using rule-based review: %s",
                       getattr(generator, "name", "?"), exc)
        return dict(fallback), False
    if result is None:
        return dict(fallback), False
    return result, True


def get_narrative_generator(config) -> NarrativeGenerator:
    """Pick the generator named by NARRATIVE_PROVIDER (default: template)."""
    provider = (config.get("NARRATIVE_PROVIDER") or "template").lower()
    if provider == "openai":
        api_key = config.get("OPENAI_API_KEY")
        if not api_key:
            logger.warning("NARRATIVE_PROVIDER=openai but OPENAI_API_KEY is not set, using templates")
            return TemplateNarrativeGenerator()
        return OpenAINarrativeGenerator(
            api_key=api_key,
            model=config.get("OPENAI_MODEL", "gpt-4o-mini"),
            base_url=config.get("OPENAI_API_BASE_URL"),
            timeout=float(config.get("NARRATIVE_TIMEOUT_S", 15)),
            max_retries=int(config.get("NARRATIVE_MAX_RETRIES", 0)),
        )
    if provider != "template":
        logger.warning("Unknown NARRATIVE_PROVIDER '%s', using templates", provider)
    return TemplateNarrativeGenerator()
