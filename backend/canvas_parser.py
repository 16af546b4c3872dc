# backend/canvas_parser.py
import io
import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional

import mammoth

from entities import QuestionType, empty_responses, responses_from_dict
from errors import CanvasImportError

logger = logging.getLogger(__name__)

DOCX_SUFFIX = ".docx"

# label patterns, matched at the start of a line
LABEL_PATTERNS = [
    (QuestionType.CURRENT_SITUATION, re.compile(r"^(visie\s*)?(vraag\s*a\b|huidige situatie)", re.I)),
    (QuestionType.DESIRED_SITUATION, re.compile(r"^(visie\s*)?(vraag\s*b\b|gewenste situatie)", re.I)),
    (QuestionType.CHANGE_DIRECTION, re.compile(r"^(visie\s*)?(vraag\s*c\b|beweging)", re.I)),
    (QuestionType.STAKEHOLDERS, re.compile(r"^(visie\s*)?(vraag\s*d\b|belanghebbenden)", re.I)),
    (QuestionType.GOAL_1, re.compile(r"^doel\s*1\b", re.I)),
    (QuestionType.GOAL_2, re.compile(r"^doel\s*2\b", re.I)),
    (QuestionType.GOAL_3, re.compile(r"^doel\s*3\b", re.I)),
    (QuestionType.OUT_OF_SCOPE, re.compile(r"^(scope\b|buiten (de )?scope)", re.I)),
]
MAX_LABEL_LINE = 80
NAME_RE = re.compile(r"^(naam|name|respondent)\s*:\s*(.+)$", re.I)


@dataclass
class ParsedCanvas:
    respondent_name: str
    responses: Dict[QuestionType, str]
    raw_text: str


def read_raw_text(data: bytes) -> str:
    try:
        result = mammoth.extract_raw_text(io.BytesIO(data))
    except Exception as e:
        logger.warning("could not read docx: %s", e)
        raise CanvasImportError("Document is leeg of kon niet worden gelezen")
    return result.value or ""


def _label_of(line: str) -> Optional[QuestionType]:
    if len(line) > MAX_LABEL_LINE:
        return None
    for q, pat in LABEL_PATTERNS:
        if pat.match(line):
            return q
    return None


def fallback_extract_responses(raw_text: str) -> dict:
    """Cut raw text at canvas labels; text after a ':' on the label line may hold the answer."""
    responses = {q.value: [] for q in QuestionType}
    name = None
    current = None
    for line in (raw_text or "").splitlines():
        line = line.strip()
        if not line:
            continue
        m = NAME_RE.match(line)
        if m and current is None and name is None:
            name = m.group(2).strip()
            continue
        q = _label_of(line)
        if q is not None:
            current = q
            _, sep, rest = line.partition(":")
            rest = rest.strip()
            # "Vraag A: Huidige situatie" or "Doel 1: Hoe ...?" is label text, not an answer
            if sep and rest and not rest.endswith("?") and _label_of(rest) is None:
                responses[q.value].append(rest)
            continue
        if current is not None:
            responses[current.value].append(line)
    return {
        "respondent_name": name,
        "responses": {k: "\n".join(v) for k, v in responses.items()},
    }


def parse_canvas(filename: str, data: bytes, analysis=None) -> ParsedCanvas:
    if not filename or not filename.lower().endswith(DOCX_SUFFIX):
        raise CanvasImportError("Alleen .docx bestanden zijn toegestaan")
    if not data:
        raise CanvasImportError("Document is leeg of kon niet worden gelezen")
    raw_text = read_raw_text(data)
    if not raw_text.strip():
        raise CanvasImportError("Document is leeg of kon niet worden gelezen")

    fields = analysis.extract_canvas_fields(raw_text) if analysis is not None else {}
    responses = responses_from_dict(fields.get("responses"))
    if not any(responses.values()):
        fields = fallback_extract_responses(raw_text)
        responses = responses_from_dict(fields.get("responses"))
    if not any(responses.values()):
        logger.info("no answers recognised in %s", filename)
        responses = empty_responses()

    name = (fields.get("respondent_name") or "").strip() or filename[: -len(DOCX_SUFFIX)]
    return ParsedCanvas(respondent_name=name, responses=responses, raw_text=raw_text)
