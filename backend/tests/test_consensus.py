# backend/tests/test_consensus.py
import pytest

from consensus import CellConsensus, classify_consensus, consent_status, response_matrix, validate_vote
from entities import Document, QuestionType, Vote, VoteValue
from errors import InvalidVoteError


def test_three_overlapping_answers_reach_consensus_fourth_is_unique():
    levels = classify_consensus({
        "a": "klanten centraal zetten met digitale dienstverlening",
        "b": "digitale dienstverlening voor klanten verbeteren",
        "c": "klanten helpen via digitale kanalen en dienstverlening",
        "d": "budget snijden overal",
    })
    assert levels["a"] == levels["b"] == levels["c"] == CellConsensus.CONSENSUS
    assert levels["d"] == CellConsensus.UNIQUE


def test_partial_overlap_is_neutral():
    levels = classify_consensus({
        "a": "snelle levering aan klanten",
        "b": "snelle levering aan partners",
        "c": "digitale werkplek medewerkers",
        "d": "digitale werkplek iedereen",
        "e": "digitale werkplek teams",
    })
    assert levels["a"] == levels["b"] == CellConsensus.NEUTRAL
    assert levels["c"] == levels["d"] == levels["e"] == CellConsensus.CONSENSUS


def test_empty_answers_are_neutral_and_not_counted():
    levels = classify_consensus({"a": "", "b": "unieke gedachte hierover", "c": "   "})
    assert levels["a"] == levels["c"] == CellConsensus.NEUTRAL
    # a single answer meets a threshold of zero
    assert levels["b"] == CellConsensus.CONSENSUS


def test_matrix_has_a_row_per_question_and_a_cell_per_document():
    docs = [
        Document(session_id="s", filename="Jan_Jansen.docx", respondent_id="r1",
                 responses={QuestionType.GOAL_1: "groei"}),
        Document(session_id="s", filename="piet.docx", respondent_id="r2"),
    ]
    rows = response_matrix(docs)
    assert [r["question_type"] for r in rows] == [q.value for q in QuestionType]
    goal_row = rows[4]
    assert [c["respondent"] for c in goal_row["cells"]] == ["Jan Jansen", "piet"]
    assert goal_row["cells"][0]["answer"] == "groei"


def _votes(*values):
    return [
        Vote(session_id="s", proposal_id="p", variant_id="v", respondent_id=f"r{i}", value=value,
             comment="bezwaar" if value == VoteValue.DISAGREE else None)
        for i, value in enumerate(values)
    ]


def test_all_agree_is_approved():
    result = consent_status(_votes(*[VoteValue.AGREE] * 4), total_voters=4)
    assert result.approved
    assert result.all_voted and not result.has_objections


def test_one_objection_blocks():
    result = consent_status(_votes(VoteValue.AGREE, VoteValue.AGREE, VoteValue.AGREE, VoteValue.DISAGREE), 4)
    assert not result.approved
    assert result.has_objections
    assert result.objections == [{"respondent_id": "r3", "comment": "bezwaar"}]


def test_pending_voters_block():
    result = consent_status(_votes(VoteValue.AGREE, VoteValue.AGREE), 4)
    assert not result.approved
    assert result.pending == 2


def test_abstain_does_not_block():
    result = consent_status(_votes(VoteValue.AGREE, VoteValue.ABSTAIN), 2)
    assert result.approved
    assert result.abstain == 1


def test_no_votes_is_never_approved():
    assert not consent_status([], 0).approved


def test_validate_vote():
    assert validate_vote("agree", None) == VoteValue.AGREE
    assert validate_vote("disagree", "te vaag") == VoteValue.DISAGREE
    with pytest.raises(InvalidVoteError):
        validate_vote("disagree", "  ")
    with pytest.raises(InvalidVoteError):
        validate_vote("maybe", None)
