# backend/scope.py
import re
from dataclasses import replace
from typing import Iterable, List, Sequence

from entities import Document, QuestionType, ScopeCategory, ScopeItem

SPLIT_RE = re.compile(r"[,;\n]")
BULLET_RE = re.compile(r"^[•\-\*]\s*")
MANUAL_SOURCE = "Handmatig toegevoegd"


def collect_scope_items(documents: Sequence[Document]) -> List[ScopeItem]:
    """Split every out-of-scope answer into items; identical texts (any case) kept once."""
    items: List[ScopeItem] = []
    seen = set()
    counter = 0
    for doc in documents:
        for part in SPLIT_RE.split(doc.answer(QuestionType.OUT_OF_SCOPE)):
            text = BULLET_RE.sub("", part.strip())
            if not text or text.lower() in seen:
                continue
            seen.add(text.lower())
            items.append(ScopeItem(id=f"scope-{counter}", text=text, source=doc.display_name))
            counter += 1
    return items


def apply_scope_analysis(items: Sequence[ScopeItem], analysis: Iterable[dict]) -> List[ScopeItem]:
    """Merge categorisation suggestions (matched on text, case-insensitive)."""
    by_text = {}
    for a in analysis or []:
        if isinstance(a, dict) and a.get("text"):
            by_text[str(a["text"]).lower()] = a
    out = []
    for item in items:
        a = by_text.get(item.text.lower())
        if not a:
            out.append(item)
            continue
        try:
            category = ScopeCategory(a.get("category") or "unclear")
        except ValueError:
            category = ScopeCategory.UNCLEAR
        out.append(replace(
            item,
            category=category,
            conflicts_with_goals=list(a.get("conflicts") or []),
            suggested_clarification=a.get("suggestion"),
        ))
    return out


def add_item(items: Sequence[ScopeItem], text: str, category=ScopeCategory.UNCLEAR) -> List[ScopeItem]:
    return list(items) + [ScopeItem(text=text.strip(), category=ScopeCategory(category), source=MANUAL_SOURCE)]


def move_item(items: Sequence[ScopeItem], item_id: str, category) -> List[ScopeItem]:
    category = ScopeCategory(category)
    return [replace(i, category=category) if i.id == item_id else i for i in items]


def finalize_scope_items(items: Sequence[ScopeItem]) -> List[ScopeItem]:
    """Anything still undecided at review time counts as out of scope."""
    return [
        replace(i, category=ScopeCategory.OUT_OF_SCOPE) if i.category == ScopeCategory.UNCLEAR else i
        for i in items
    ]


def scope_text(items: Sequence[ScopeItem]) -> str:
    return "\n".join(f"• {i.text}" for i in items if i.category == ScopeCategory.OUT_OF_SCOPE)


def split_scope_text(text: str) -> List[str]:
    return [BULLET_RE.sub("", line.strip()) for line in (text or "").split("\n") if line.strip()]
