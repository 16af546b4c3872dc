# backend/analysis_client.py
import json
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from groq import Groq

import prompts
from config import GROQ_API_KEY, GROQ_MODEL
from entities import (
    QUESTION_LABELS, ConsensusLevel, ProposalVariant, QuestionType, ScopeItem, ThemeCluster,
    Tension, VariantStyle, uuid4str,
)

logger = logging.getLogger(__name__)

JSON_OBJECT_RE = re.compile(r"\{.*\}", flags=re.S)


def extract_json_safe(text: str) -> dict:
    try:
        data = json.loads(text)
        return data if isinstance(data, dict) else {}
    except (TypeError, ValueError):
        pass
    m = JSON_OBJECT_RE.search(text or "")
    if m:
        try:
            data = json.loads(m.group(0))
            return data if isinstance(data, dict) else {}
        except ValueError:
            return {}
    return {}


def _pick(d: dict, *names, default=None):
    for n in names:
        if n in d and d[n] is not None:
            return d[n]
    return default


def _str_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


def question_label(question_type) -> str:
    try:
        return QUESTION_LABELS[QuestionType(question_type)]
    except ValueError:
        return {"goals": "Doelen", "scope": "Scope"}.get(str(question_type), str(question_type))


@dataclass
class AnalysisResult:
    themes: List[ThemeCluster] = field(default_factory=list)
    tensions: List[Tension] = field(default_factory=list)
    quick_wins: List[str] = field(default_factory=list)
    discussion_points: List[str] = field(default_factory=list)


@dataclass
class ProposalSet:
    variants: List[ProposalVariant]
    recommendation: Optional[str] = None
    recommendation_rationale: Optional[str] = None
    fallback: bool = False


PLACEHOLDER_VARIANTS = [
    (VariantStyle.BEKNOPT, "Korte versie van de formulering.", "Kernpunten"),
    (VariantStyle.VOLLEDIG, "Uitgebreide versie met alle nuances.", "Volledigheid"),
    (VariantStyle.GEBALANCEERD, "Gebalanceerde versie.", "Balans"),
]


def placeholder_proposals() -> ProposalSet:
    return ProposalSet(
        variants=[ProposalVariant(style=s, text=t, emphasizes=e) for s, t, e in PLACEHOLDER_VARIANTS],
        recommendation=VariantStyle.GEBALANCEERD.value,
        recommendation_rationale="Beste balans tussen beknopt en volledig",
        fallback=True,
    )


def theme_from_raw(raw: dict, question_type: str) -> Optional[ThemeCluster]:
    if not isinstance(raw, dict) or not raw.get("name"):
        return None
    try:
        level = ConsensusLevel(str(_pick(raw, "consensus_level", "consensusLevel", default="low")).lower())
    except ValueError:
        level = ConsensusLevel.LOW
    try:
        confidence = float(_pick(raw, "confidence", "aiConfidence", default=0.0))
    except (TypeError, ValueError):
        confidence = 0.0
    return ThemeCluster(
        id=str(raw.get("id") or uuid4str()),
        name=str(raw["name"]),
        description=str(raw.get("description") or ""),
        question_type=str(question_type),
        mentioned_by=_str_list(_pick(raw, "mentioned_by", "mentionedBy")),
        related_responses=_str_list(_pick(raw, "related_responses", "relatedResponses")),
        consensus_level=level,
        confidence=min(1.0, max(0.0, confidence)),
        example_quotes=_str_list(_pick(raw, "example_quotes", "exampleQuotes")),
    )


def variant_from_raw(raw: dict) -> Optional[ProposalVariant]:
    if not isinstance(raw, dict) or not raw.get("text"):
        return None
    try:
        style = VariantStyle(str(_pick(raw, "style", "type", default="")).lower())
    except ValueError:
        return None
    return ProposalVariant(
        style=style,
        text=str(raw["text"]).strip(),
        emphasizes=str(raw.get("emphasizes") or ""),
        includes_themes=_str_list(_pick(raw, "includes_themes", "includesThemes")),
    )


class AnalysisClient:
    def __init__(self, llm=None, model: str = GROQ_MODEL):
        self.llm = llm
        self.model = model

    @property
    def enabled(self) -> bool:
        return self.llm is not None

    def _complete(self, system: str, user: str, max_tokens: int = 2048) -> str:
        if not self.llm:
            return ""
        try:
            resp = self.llm.chat.completions.create(
                model=self.model,
                temperature=0.2,
                max_tokens=max_tokens,
                messages=[{"role": "system", "content": system}, {"role": "user", "content": user}],
            )
            return (resp.choices[0].message.content or "").strip()
        except Exception as e:
            logger.warning("Groq error: %s", e)
            return ""

    def analyze_themes(self, question_type, responses: Sequence[dict]) -> AnalysisResult:
        """responses: [{"respondent_id", "answer"}]"""
        if not responses:
            return AnalysisResult()
        formatted = "\n\n---\n\n".join(
            f"Respondent {i} ({r['respondent_id']}):\n{r['answer']}" for i, r in enumerate(responses, start=1)
        )
        raw = self._complete(
            prompts.ANALYZE_THEMES_SYSTEM,
            prompts.ANALYZE_THEMES_USER.format(question_label=question_label(question_type), responses=formatted),
            max_tokens=4096,
        )
        data = extract_json_safe(raw)
        if not data:
            logger.info("no usable analysis for %s; continuing without themes", question_type)
            return AnalysisResult()
        themes = [t for t in (theme_from_raw(x, question_type) for x in data.get("themes") or []) if t]
        tensions = [
            Tension(str(_pick(t, "theme_a", "themeA", default="")), str(_pick(t, "theme_b", "themeB", default="")),
                    str(t.get("description") or ""))
            for t in data.get("tensions") or [] if isinstance(t, dict)
        ]
        return AnalysisResult(
            themes=themes,
            tensions=tensions,
            quick_wins=_str_list(_pick(data, "quick_wins", "quickWins")),
            discussion_points=_str_list(_pick(data, "discussion_points", "discussionPoints")),
        )

    def generate_proposals(self, question_type, themes: Sequence[ThemeCluster],
                           responses: Sequence[dict]) -> ProposalSet:
        formatted_themes = "\n".join(
            f"- {t.name}: {t.description} (consensus: {t.consensus_level.value})" for t in themes
        )
        formatted_responses = "\n".join(
            f"Respondent {i}: {r['answer']}" for i, r in enumerate(responses, start=1)
        )
        raw = self._complete(
            prompts.GENERATE_PROPOSAL_SYSTEM,
            prompts.GENERATE_PROPOSAL_USER.format(
                question_label=question_label(question_type),
                themes=formatted_themes or prompts.NO_THEMES,
                responses=formatted_responses or prompts.NO_RESPONSES,
            ),
            max_tokens=4096,
        )
        data = extract_json_safe(raw)
        parsed = [v for v in (variant_from_raw(x) for x in data.get("variants") or []) if v]
        if not parsed:
            logger.info("no usable proposals for %s; using placeholders", question_type)
            return placeholder_proposals()

        # one variant per style, in fixed order; missing styles get a placeholder
        by_style = {}
        for v in parsed:
            by_style.setdefault(v.style, v)
        fallback = placeholder_proposals().variants
        variants = [by_style.get(p.style, p) for p in fallback]
        recommendation = str(data.get("recommendation") or VariantStyle.GEBALANCEERD.value).lower()
        if recommendation not in {s.value for s in VariantStyle}:
            recommendation = VariantStyle.GEBALANCEERD.value
        return ProposalSet(
            variants=variants,
            recommendation=recommendation,
            recommendation_rationale=_pick(data, "recommendation_rationale", "recommendationRationale"),
            fallback=len(by_style) < len(VariantStyle),
        )

    def extract_canvas_fields(self, raw_text: str) -> dict:
        """{"respondent_name": str|None, "responses": {question: answer}} or {} when unavailable."""
        raw = self._complete(
            prompts.PARSE_CANVAS_SYSTEM,
            prompts.PARSE_CANVAS_USER.format(document=raw_text),
        )
        data = extract_json_safe(raw)
        if not isinstance(data.get("responses"), dict):
            return {}
        return {
            "respondent_name": _pick(data, "respondent_name", "respondentName"),
            "responses": data["responses"],
        }

    def analyze_scope(self, items: Sequence[ScopeItem], approved_goals: Sequence[str]) -> List[dict]:
        if not items:
            return []
        raw = self._complete(
            prompts.ANALYZE_SCOPE_SYSTEM,
            prompts.ANALYZE_SCOPE_USER.format(
                goals="\n".join(f"- {g}" for g in approved_goals) or "-",
                items="\n".join(f"- {i.text}" for i in items),
            ),
        )
        data = extract_json_safe(raw)
        result = _pick(data, "scope_analysis", "scopeAnalysis", default=[])
        return result if isinstance(result, list) else []


def make_groq_client():
    if not GROQ_API_KEY:
        return None
    return Groq(api_key=GROQ_API_KEY)
