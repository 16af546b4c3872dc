# backend/consensus.py
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from entities import Document, QuestionType, Vote, VoteValue
from errors import InvalidVoteError

MIN_KEYWORD_LENGTH = 4  # keywords are strictly longer than this
MIN_SHARED_KEYWORDS = 2


class CellConsensus(str, Enum):
    CONSENSUS = "consensus"
    UNIQUE = "unique"
    NEUTRAL = "neutral"


def keywords(text: str) -> set:
    return {w for w in (text or "").lower().split() if len(w) > MIN_KEYWORD_LENGTH}


def classify_consensus(answers: Mapping[str, str]) -> Dict[str, CellConsensus]:
    """
    Classify each respondent's answer by plain keyword overlap.

    A respondent "matches" another when they share at least two keywords.
    With N non-empty answers: matching floor(N/2) or more others is consensus,
    matching nobody is unique, anything between is neutral. Empty answers are
    always neutral.
    """
    kw = {rid: keywords(text) for rid, text in answers.items()}
    n = sum(1 for text in answers.values() if (text or "").strip())
    threshold = n // 2
    out: Dict[str, CellConsensus] = {}
    for rid, text in answers.items():
        if not (text or "").strip():
            out[rid] = CellConsensus.NEUTRAL
            continue
        matches = sum(
            1 for other, other_kw in kw.items()
            if other != rid and len(kw[rid] & other_kw) >= MIN_SHARED_KEYWORDS
        )
        if matches >= threshold:
            out[rid] = CellConsensus.CONSENSUS
        elif matches == 0:
            out[rid] = CellConsensus.UNIQUE
        else:
            out[rid] = CellConsensus.NEUTRAL
    return out


def response_matrix(documents: Sequence[Document],
                    question_types: Optional[Iterable[QuestionType]] = None) -> List[dict]:
    """Rows of the comparison matrix: one per question, one cell per document."""
    rows = []
    for q in question_types or list(QuestionType):
        q = QuestionType(q)
        levels = classify_consensus({d.id: d.answer(q) for d in documents})
        rows.append({
            "question_type": q.value,
            "cells": [
                {
                    "document_id": d.id,
                    "respondent_id": d.respondent_id,
                    "respondent": d.display_name,
                    "answer": d.answer(q),
                    "level": levels[d.id].value,
                }
                for d in documents
            ],
        })
    return rows


# ---------- consent ----------
@dataclass
class ConsentResult:
    total_voters: int
    agree: int
    disagree: int
    abstain: int
    votes_cast: int
    pending: int
    approved: bool
    objections: List[dict]

    @property
    def has_objections(self) -> bool:
        return self.disagree > 0

    @property
    def all_voted(self) -> bool:
        return self.pending == 0

    def to_dict(self) -> dict:
        return {
            "total_voters": self.total_voters,
            "agree": self.agree,
            "disagree": self.disagree,
            "abstain": self.abstain,
            "votes_cast": self.votes_cast,
            "pending": self.pending,
            "approved": self.approved,
            "has_objections": self.has_objections,
            "all_voted": self.all_voted,
            "objections": self.objections,
        }


def consent_status(votes: Sequence[Vote], total_voters: int) -> ConsentResult:
    """
    Consent, not majority: approved only when every expected voter has voted
    and nobody disagrees. One objection blocks approval.
    """
    counts = {v: 0 for v in VoteValue}
    for vote in votes:
        counts[VoteValue(vote.value)] += 1
    cast = len(votes)
    pending = max(total_voters - cast, 0)
    disagree = counts[VoteValue.DISAGREE]
    return ConsentResult(
        total_voters=total_voters,
        agree=counts[VoteValue.AGREE],
        disagree=disagree,
        abstain=counts[VoteValue.ABSTAIN],
        votes_cast=cast,
        pending=pending,
        approved=cast > 0 and disagree == 0 and total_voters - cast == 0,
        objections=[
            {"respondent_id": v.respondent_id, "comment": v.comment}
            for v in votes if v.value == VoteValue.DISAGREE
        ],
    )


def validate_vote(value, comment: Optional[str]) -> VoteValue:
    try:
        value = VoteValue(value)
    except ValueError:
        raise InvalidVoteError(f"Unknown vote value {value!r}")
    if value == VoteValue.DISAGREE and not (comment or "").strip():
        raise InvalidVoteError("A disagree vote needs a comment")
    return value
