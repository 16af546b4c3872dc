# backend/tests/test_session_service.py
import pytest

import prompts
from entities import (
    ApprovedText, FlowStep, ProposalStatus, QuestionType, ScopeCategory, SessionStatus, StepStatus,
    SubStepStatus,
)
from errors import CanvasImportError, ConsentNotReachedError, InvalidVoteError, NotFoundError, WorkflowError
from export_service import read_docx
from store import Kind

ANSWERS = {
    "r1": {
        "current_situation": "Teams werken langs elkaar heen",
        "goal_1": "Groei", "goal_2": "Rust",
        "out_of_scope": "IT; Reorganisatie",
    },
    "r2": {
        "current_situation": "Geen gedeeld klantbeeld",
        "goal_1": "Innovatie",
        "out_of_scope": "reorganisatie, Huisvesting",
    },
}

THEMES = {"themes": [{"id": "t1", "name": "Samenwerking", "mentioned_by": ["r1", "r2"], "consensus_level": "high"}]}
VARIANTS = {"variants": [
    {"style": "beknopt", "text": "Kort."},
    {"style": "volledig", "text": "Lang en volledig."},
    {"style": "gebalanceerd", "text": "Teams delen één klantbeeld."},
]}


@pytest.fixture
def handle(service):
    h = service.create_session("MT-sessie")
    for rid, responses in ANSWERS.items():
        service.add_document(h, f"{rid}.docx", responses, respondent_id=rid)
    return h


def _vision_proposal(service, llm, handle):
    llm.replies[prompts.ANALYZE_THEMES_SYSTEM] = THEMES
    llm.replies[prompts.GENERATE_PROPOSAL_SYSTEM] = VARIANTS
    service.run_analysis(handle, FlowStep.VISIE_HUIDIGE)
    return service.generate_proposals(handle, FlowStep.VISIE_HUIDIGE)


# ---------- sessions ----------
def test_create_and_resume(service):
    h = service.create_session("  ")
    loaded = service.load_session(h)
    assert loaded.session.name == "Nieuwe sessie"
    assert loaded.flow_state.current_step == FlowStep.UPLOAD
    assert service.find_resumable_session().id == h.session_id
    assert service.close_session(h).status == SessionStatus.IN_PROGRESS


def test_sessions_listed_most_recent_first(service):
    first = service.create_session("eerste")
    second = service.create_session("tweede")
    service.add_document(first, "a.docx", {})
    assert [s.id for s in service.list_sessions()] == [first.session_id, second.session_id]


def test_unknown_session(service):
    with pytest.raises(NotFoundError):
        service.open("bestaat-niet")


def test_delete_session_cascades(service, store, handle):
    _ = service.load_session(handle)
    service.delete_session(handle)
    assert store.get(Kind.SESSION, handle.session_id) is None
    assert store.list(Kind.DOCUMENT, handle.session_id) == []
    assert store.find(Kind.FLOW_STATE, session_id=handle.session_id) is None


# ---------- documents ----------
def test_import_canvas(service, canvas_bytes):
    h = service.create_session("MT")
    doc = service.import_canvas(h, "jan.docx", canvas_bytes)
    assert doc.display_name == "Jan Jansen"
    assert doc.answer(QuestionType.GOAL_2) == "Doorlooptijd halveren"
    assert service.documents(h) == [doc]


def test_rejected_import_stores_nothing(service):
    h = service.create_session("MT")
    with pytest.raises(CanvasImportError):
        service.import_canvas(h, "notes.txt", b"hallo")
    assert service.documents(h) == []


def test_edit_and_remove_documents(service, handle):
    doc = service.documents(handle)[0]
    updated = service.update_document_response(handle, doc.id, "goal_3", "  Plezier ")
    assert updated.answer(QuestionType.GOAL_3) == "Plezier"
    service.remove_document(handle, doc.id)
    assert [d.respondent_id for d in service.documents(handle)] == ["r2"]
    with pytest.raises(NotFoundError):
        service.remove_document(handle, doc.id)


def test_matrix(service, handle):
    rows = service.matrix(handle, [QuestionType.CURRENT_SITUATION])
    assert len(rows) == 1
    assert [c["respondent_id"] for c in rows[0]["cells"]] == ["r1", "r2"]


# ---------- flow ----------
def test_forward_navigation_is_guarded(service, handle):
    with pytest.raises(WorkflowError):
        service.navigate_to(handle, FlowStep.DOELEN)
    state = service.advance(handle)
    assert state.current_step == FlowStep.VISIE_HUIDIGE
    assert service.session(handle).current_step == FlowStep.VISIE_HUIDIGE
    assert service.navigate_to(handle, FlowStep.UPLOAD).current_step == FlowStep.UPLOAD


def test_navigating_forward_unlocks_the_target(service, handle):
    service.complete_step(handle, FlowStep.UPLOAD)
    state = service.navigate_to(handle, FlowStep.VISIE_HUIDIGE)
    assert state.current_step == FlowStep.VISIE_HUIDIGE
    assert state.steps[FlowStep.VISIE_HUIDIGE] == StepStatus.ACTIVE

    service.save_approved_text(handle, QuestionType.CURRENT_SITUATION, "Gedeeld beeld")
    state = service.advance(handle)
    assert state.steps[FlowStep.VISIE_HUIDIGE] == StepStatus.COMPLETED
    assert state.current_step == FlowStep.VISIE_GEWENSTE
    with pytest.raises(WorkflowError):
        service.navigate_to(handle, FlowStep.VISIE_BEWEGING)


def test_cannot_leave_upload_without_documents(service):
    h = service.create_session("leeg")
    with pytest.raises(WorkflowError):
        service.advance(h)


def test_cannot_advance_past_unapproved_step(service, handle):
    service.advance(handle)
    with pytest.raises(WorkflowError):
        service.advance(handle)


# ---------- vision ----------
def test_analysis_and_theme_edits(service, llm, handle):
    llm.replies[prompts.ANALYZE_THEMES_SYSTEM] = THEMES
    analysis = service.run_analysis(handle, FlowStep.VISIE_HUIDIGE)
    assert [t.name for t in analysis.themes] == ["Samenwerking"]
    sub = service.flow_state(handle).sub_steps[FlowStep.VISIE_HUIDIGE]
    assert sub.status == SubStepStatus.ANALYZING

    service.rename_theme(handle, FlowStep.VISIE_HUIDIGE, "t1", name="Samen werken")
    stored = service.analysis_for(handle, QuestionType.CURRENT_SITUATION)
    assert stored.themes[0].name == "Samen werken"
    assert service.delete_theme(handle, FlowStep.VISIE_HUIDIGE, "t1") == []
    with pytest.raises(NotFoundError):
        service.rename_theme(handle, FlowStep.VISIE_HUIDIGE, "t1", name="x")
    with pytest.raises(WorkflowError):
        service.run_analysis(handle, FlowStep.DOELEN)


def test_consent_round(service, llm, handle):
    proposal = _vision_proposal(service, llm, handle)
    assert proposal.status == ProposalStatus.VOTING
    variant = proposal.variants[2]
    sub = service.flow_state(handle).sub_steps[FlowStep.VISIE_HUIDIGE]
    assert sub.status == SubStepStatus.VOTING and sub.proposal_ids == [proposal.id]

    with pytest.raises(ConsentNotReachedError):
        service.approve_variant(handle, proposal.id, variant.id)

    service.cast_vote(handle, proposal.id, variant.id, "r1", "agree")
    with pytest.raises(InvalidVoteError):
        service.cast_vote(handle, proposal.id, variant.id, "r2", "disagree")
    service.cast_vote(handle, proposal.id, variant.id, "r2", "disagree", "te vaag")
    blocked = service.consent_for(handle, proposal.id, variant.id)
    assert not blocked.approved and blocked.objections[0]["comment"] == "te vaag"

    service.cast_vote(handle, proposal.id, variant.id, "r2", "agree")
    assert len(service.votes(handle, proposal.id, variant.id)) == 2
    assert service.consent_for(handle, proposal.id, variant.id).approved

    approved = service.approve_variant(handle, proposal.id, variant.id)
    assert approved.text == "Teams delen één klantbeeld."
    assert approved.based_on_variant_id == variant.id
    assert service.proposal(handle, proposal.id).status == ProposalStatus.APPROVED
    sub = service.flow_state(handle).sub_steps[FlowStep.VISIE_HUIDIGE]
    assert sub.status == SubStepStatus.APPROVED and sub.approved_text == approved.text

    service.advance(handle)
    state = service.advance(handle)
    assert state.current_step == FlowStep.VISIE_GEWENSTE
    assert state.steps[FlowStep.VISIE_HUIDIGE] == StepStatus.COMPLETED


def test_consent_ignores_votes_of_removed_respondents(service, llm, handle):
    proposal = _vision_proposal(service, llm, handle)
    variant = proposal.variants[1]
    service.cast_vote(handle, proposal.id, variant.id, "r1", "agree")
    service.cast_vote(handle, proposal.id, variant.id, "r2", "agree")
    r2 = next(d for d in service.documents(handle) if d.respondent_id == "r2")
    service.remove_document(handle, r2.id)

    status = service.consent_for(handle, proposal.id, variant.id)
    assert (status.total_voters, status.votes_cast, status.pending) == (1, 1, 0)
    assert status.approved
    assert service.approve_variant(handle, proposal.id, variant.id).text == "Lang en volledig."


def test_vote_validation(service, llm, handle):
    proposal = _vision_proposal(service, llm, handle)
    variant = proposal.variants[0]
    with pytest.raises(InvalidVoteError):
        service.cast_vote(handle, proposal.id, variant.id, "onbekend", "agree")
    with pytest.raises(NotFoundError):
        service.cast_vote(handle, proposal.id, "geen-variant", "r1", "agree")


def test_facilitator_override_and_variant_edit(service, llm, handle):
    proposal = _vision_proposal(service, llm, handle)
    variant = proposal.variants[0]
    service.edit_variant_text(handle, proposal.id, variant.id, "Kort en krachtig. ")
    approved = service.approve_variant(handle, proposal.id, variant.id, override=True)
    assert approved.text == "Kort en krachtig."


def test_placeholder_proposals_without_model(service, handle):
    proposal = service.generate_proposals(handle, FlowStep.VISIE_GEWENSTE)
    assert len(proposal.variants) == 3
    assert proposal.recommendation == "gebalanceerd"


def test_approved_text_singleton(service, handle):
    service.save_approved_text(handle, QuestionType.STAKEHOLDERS, "eerste")
    service.save_approved_text(handle, QuestionType.STAKEHOLDERS, "tweede")
    texts = [t for t in service.approved_texts(handle) if t.question_type == QuestionType.STAKEHOLDERS]
    assert [t.text for t in texts] == ["tweede"]
    assert service.get_approved_text(handle, "stakeholders").text == "tweede"


def test_load_reconciles_with_stored_texts(service, store, handle):
    store.upsert(Kind.APPROVED_TEXT, ApprovedText(handle.session_id, QuestionType.CURRENT_SITUATION, "x"))
    loaded = service.load_session(handle)
    assert loaded.flow_state.sub_steps[FlowStep.VISIE_HUIDIGE].status == SubStepStatus.APPROVED


# ---------- goals ----------
def test_goal_round(service, handle):
    clusters = service.cluster_goals(handle)
    assert [c.name for c in clusters] == ["Groei", "Rust", "Innovatie"]
    ids = [c.id for c in clusters]

    ballot = service.submit_ballot(handle, "anna", {ids[0]: 5})
    assert ballot.allocations == {ids[0]: 3} and ballot.submitted
    service.submit_ballot(handle, "anna", {ids[2]: 2, ids[0]: 1})
    service.submit_ballot(handle, "bert", {ids[2]: 1, ids[1]: 2})
    with pytest.raises(InvalidVoteError):
        service.submit_ballot(handle, "bert", {"nope": 1})

    tally = service.goal_tally(handle)
    assert [(c.id, c.votes) for c in tally] == [(ids[2], 3), (ids[1], 2), (ids[0], 1)]
    assert service.goal_ranking(handle).cluster_ids == [ids[2], ids[1], ids[0]]

    saved = service.approve_goals(handle, {ids[2]: "Innovatie versnellen"})
    assert [t.text for t in saved] == ["Innovatie versnellen", "Rust", "Groei"]

    service.set_ranking(handle, [ids[1], ids[0]])
    saved = service.approve_goals(handle)
    assert [(t.question_type, t.text) for t in saved] == [
        (QuestionType.GOAL_1, "Rust"), (QuestionType.GOAL_2, "Groei"),
    ]
    assert service.get_approved_text(handle, QuestionType.GOAL_3) is None
    sub = service.flow_state(handle).sub_steps[FlowStep.DOELEN]
    assert sub.status == SubStepStatus.APPROVED
    assert sub.approved_text == "1. Rust\n2. Groei"


def test_reselecting_clusters_keeps_goals_approved(service, handle):
    ids = [c.id for c in service.cluster_goals(handle)]
    service.approve_goals(handle)
    kept = service.select_clusters(handle, [ids[0]])
    assert [c.name for c in kept] == ["Groei"]

    sub = service.flow_state(handle).sub_steps[FlowStep.DOELEN]
    assert sub.status == SubStepStatus.APPROVED
    assert sub.ballots == [] and sub.ranking == []
    assert service.get_approved_text(handle, QuestionType.GOAL_1).text == "Groei"


def test_goal_clusters_from_model(service, llm, handle):
    llm.replies[prompts.ANALYZE_THEMES_SYSTEM] = {"themes": [
        {"id": "g1", "name": "Groei", "related_responses": [f"{d.id}-goal-1" for d in service.documents(handle)]},
    ]}
    clusters = service.cluster_goals(handle)
    assert [(c.id, len(c.goals)) for c in clusters] == [("g1", 2)]
    with pytest.raises(NotFoundError):
        service.set_ranking(handle, ["onbekend"])
    with pytest.raises(WorkflowError):
        service.select_clusters(handle, [])


def test_approving_goals_needs_a_ranking(service):
    h = service.create_session("leeg")
    with pytest.raises(WorkflowError):
        service.approve_goals(h)


# ---------- scope ----------
def test_scope_round(service, llm, handle):
    items = service.scope_items(handle)
    assert [i.text for i in items] == ["IT", "Reorganisatie", "Huisvesting"]

    llm.replies[prompts.ANALYZE_SCOPE_SYSTEM] = {"scope_analysis": [{"text": "huisvesting", "category": "in_scope"}]}
    items = service.analyze_scope(handle)
    assert items[2].category == ScopeCategory.IN_SCOPE

    service.add_scope_item(handle, "Salarissen", ScopeCategory.OUT_OF_SCOPE)
    service.move_scope_item(handle, items[0].id, ScopeCategory.IN_SCOPE)
    approved = service.approve_scope(handle)
    assert approved.text == "• Reorganisatie\n• Salarissen"
    assert approved.based_on_proposal_id == "scope"
    assert service.flow_state(handle).sub_steps[FlowStep.SCOPE].status == SubStepStatus.APPROVED
    with pytest.raises(NotFoundError):
        service.move_scope_item(handle, "onbekend", ScopeCategory.IN_SCOPE)


# ---------- export ----------
def test_export(service, handle):
    service.save_approved_text(handle, QuestionType.CURRENT_SITUATION, "Silo's")
    service.save_approved_text(handle, QuestionType.GOAL_1, "Groei")
    service.save_approved_text(handle, QuestionType.OUT_OF_SCOPE, "• IT\n• Huisvesting")

    final = service.build_final_document(handle)
    assert final.vision.current_situation == "Silo's"
    assert final.vision.stakeholders == ""
    assert [(g.rank, g.text) for g in final.goals] == [(1, "Groei")]
    assert final.out_of_scope == ["IT", "Huisvesting"]

    filename, data = service.export_docx(handle)
    assert filename.endswith(".docx")
    back = read_docx(data)
    assert back.vision == final.vision and back.out_of_scope == final.out_of_scope
    assert service.store.find(Kind.FINAL_DOCUMENT, session_id=handle.session_id).exported_at is not None

    dump = service.export_session_data(handle)
    assert dump["session"]["name"] == "MT-sessie"
    assert len(dump["documents"]) == 2
    assert dump["final_document"]["scope"]["out_of_scope"] == ["IT", "Huisvesting"]


def test_close_completed_session(service, handle):
    for q in (QuestionType.CURRENT_SITUATION, QuestionType.DESIRED_SITUATION, QuestionType.CHANGE_DIRECTION,
              QuestionType.STAKEHOLDERS, QuestionType.GOAL_1, QuestionType.OUT_OF_SCOPE):
        service.save_approved_text(handle, q, "ok")
    assert service.close_session(handle).status == SessionStatus.COMPLETED
    assert service.find_resumable_session() is None
