# backend/session_service.py
import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence

import consensus
import goals as goals_mod
import scope as scope_mod
import workflow
from analysis_client import AnalysisClient
from canvas_parser import parse_canvas
from config import DOT_BUDGET, TOP_N_GOALS
from entities import (
    GOAL_QUESTIONS, Analysis, ApprovedText, Document, FinalDocument, FlowState, FlowStep, GoalCluster,
    Proposal, ProposalStatus, QuestionType, RankedGoal, ScopeCategory, Session, SessionStatus,
    SubStepStatus, Vision, Vote, responses_from_dict, utcnow, uuid4str,
)
from errors import ConsentNotReachedError, InvalidVoteError, NotFoundError, WorkflowError
from export_service import build_docx
from store import EntityStore, Kind

logger = logging.getLogger(__name__)

GOALS_TOPIC = "goals"
MAX_VOTING_CLUSTERS = 5
SCOPE_PROPOSAL_REF = "scope"
SCOPE_VARIANT_REF = "scope-final"
CLUSTER_PROPOSAL_REF = "cluster"

STEP_FOR_QUESTION = {q: step for step, qs in workflow.STEP_QUESTIONS.items() for q in qs}


@dataclass(frozen=True)
class SessionHandle:
    session_id: str


@dataclass
class LoadedSession:
    session: Session
    flow_state: FlowState
    documents: List[Document]
    approved_texts: List[ApprovedText]

    def to_dict(self) -> dict:
        return {
            "session": self.session.to_dict(),
            "flow_state": self.flow_state.to_dict(),
            "progress": workflow.progress(self.flow_state),
            "documents": [d.to_dict() for d in self.documents],
            "approved_texts": [t.to_dict() for t in self.approved_texts],
        }


def _visie_question(step) -> QuestionType:
    step = FlowStep(step)
    if step not in workflow.VISIE_QUESTIONS:
        raise WorkflowError(f"{step.value} is not a vision step")
    return workflow.VISIE_QUESTIONS[step]


class SessionService:
    def __init__(self, store: EntityStore, analysis: Optional[AnalysisClient] = None,
                 dot_budget: int = DOT_BUDGET, top_n: int = TOP_N_GOALS):
        self.store = store
        self.analysis = analysis or AnalysisClient()
        self.dot_budget = dot_budget
        self.top_n = top_n

    # ---------- sessions ----------
    def create_session(self, name: str) -> SessionHandle:
        session = Session(name=(name or "").strip() or "Nieuwe sessie")
        self.store.create(Kind.SESSION, session)
        self.store.upsert(Kind.FLOW_STATE, workflow.initial_flow_state(session.id))
        logger.info("created session %s (%s)", session.id, session.name)
        return SessionHandle(session.id)

    def open(self, session_id: str) -> SessionHandle:
        self.store.require(Kind.SESSION, session_id)
        return SessionHandle(session_id)

    def session(self, handle: SessionHandle) -> Session:
        return self.store.require(Kind.SESSION, handle.session_id)

    def load_session(self, handle: SessionHandle) -> LoadedSession:
        session = self.session(handle)
        approved = self.approved_texts(handle)
        state = self.flow_state(handle)
        reconciled = workflow.reconcile_with_approved_texts(state, [t.question_type for t in approved])
        if reconciled is not state:
            state = self._save_flow(handle, reconciled)
            session = self.session(handle)
        return LoadedSession(
            session=session,
            flow_state=state,
            documents=self.documents(handle),
            approved_texts=approved,
        )

    def list_sessions(self) -> List[Session]:
        return sorted(self.store.list(Kind.SESSION), key=lambda s: s.updated_at, reverse=True)

    def find_resumable_session(self) -> Optional[Session]:
        for s in self.list_sessions():
            if s.status == SessionStatus.IN_PROGRESS:
                return s
        return None

    def close_session(self, handle: SessionHandle) -> Session:
        state = self.flow_state(handle)
        status = SessionStatus.COMPLETED if workflow.is_session_complete(state) else SessionStatus.IN_PROGRESS
        return self._touch(handle, status=status)

    def delete_session(self, handle: SessionHandle) -> None:
        self.session(handle)
        self.store.delete_session(handle.session_id)

    def _touch(self, handle: SessionHandle, **changes) -> Session:
        session = replace(self.session(handle), updated_at=utcnow(), **changes)
        self.store.update(Kind.SESSION, session)
        return session

    # ---------- documents ----------
    def documents(self, handle: SessionHandle) -> List[Document]:
        return self.store.list(Kind.DOCUMENT, handle.session_id)

    def respondent_ids(self, handle: SessionHandle) -> List[str]:
        return [d.respondent_id for d in self.documents(handle)]

    def add_document(self, handle: SessionHandle, filename: str, responses: Dict[str, str],
                     raw_text: str = "", respondent_name: str = "",
                     respondent_id: Optional[str] = None) -> Document:
        self.session(handle)
        doc = Document(
            session_id=handle.session_id,
            filename=filename,
            respondent_id=respondent_id or uuid4str(),
            respondent_name=respondent_name,
            raw_text=raw_text,
            responses=responses_from_dict(responses),
        )
        self.store.create(Kind.DOCUMENT, doc)
        self._touch(handle)
        logger.info("added document %s to session %s", filename, handle.session_id)
        return doc

    def import_canvas(self, handle: SessionHandle, filename: str, data: bytes) -> Document:
        self.session(handle)
        parsed = parse_canvas(filename, data, self.analysis)
        return self.add_document(
            handle, filename,
            responses={q.value: v for q, v in parsed.responses.items()},
            raw_text=parsed.raw_text,
            respondent_name=parsed.respondent_name,
        )

    def _document(self, handle: SessionHandle, document_id: str) -> Document:
        doc = self.store.get(Kind.DOCUMENT, document_id)
        if doc is None or doc.session_id != handle.session_id:
            raise NotFoundError(f"Document {document_id} not found")
        return doc

    def remove_document(self, handle: SessionHandle, document_id: str) -> None:
        self._document(handle, document_id)
        self.store.delete(Kind.DOCUMENT, document_id)
        self._touch(handle)

    def update_document_response(self, handle: SessionHandle, document_id: str,
                                 question_type, text: str) -> Document:
        doc = self._document(handle, document_id)
        responses = dict(doc.responses)
        responses[QuestionType(question_type)] = (text or "").strip()
        doc = replace(doc, responses=responses)
        self.store.update(Kind.DOCUMENT, doc)
        self._touch(handle)
        return doc

    def matrix(self, handle: SessionHandle, question_types: Optional[Sequence] = None) -> List[dict]:
        return consensus.response_matrix(self.documents(handle), question_types)

    # ---------- flow ----------
    def flow_state(self, handle: SessionHandle) -> FlowState:
        state = self.store.find(Kind.FLOW_STATE, session_id=handle.session_id)
        if state is None:
            self.session(handle)
            logger.info("no flow state for %s; starting fresh", handle.session_id)
            state = workflow.initial_flow_state(handle.session_id)
        return state

    def _save_flow(self, handle: SessionHandle, state: FlowState) -> FlowState:
        self.store.upsert(Kind.FLOW_STATE, state)
        self._touch(handle, current_step=state.current_step)
        return state

    def complete_step(self, handle: SessionHandle, step) -> FlowState:
        return self._save_flow(handle, workflow.complete_step(self.flow_state(handle), step))

    def unlock_step(self, handle: SessionHandle, step) -> FlowState:
        return self._save_flow(handle, workflow.unlock_step(self.flow_state(handle), step))

    def set_current_step(self, handle: SessionHandle, step) -> FlowState:
        return self._save_flow(handle, workflow.set_current_step(self.flow_state(handle), step))

    def navigate_to(self, handle: SessionHandle, step) -> FlowState:
        step = FlowStep(step)
        state = self.flow_state(handle)
        if not workflow.can_proceed_to(state, step):
            raise WorkflowError(f"Complete the earlier steps before opening {step.value}")
        if workflow.step_index(step) > workflow.step_index(state.current_step):
            state = workflow.unlock_step(state, step)
        return self._save_flow(handle, workflow.set_current_step(state, step))

    def step_ready(self, handle: SessionHandle, step) -> bool:
        """Whether `step` has what it needs to be completed."""
        step = FlowStep(step)
        if step == FlowStep.UPLOAD:
            return bool(self.documents(handle))
        state = self.flow_state(handle)
        if step in state.sub_steps:
            return state.sub_steps[step].status == SubStepStatus.APPROVED
        return True

    def advance(self, handle: SessionHandle) -> FlowState:
        state = self.flow_state(handle)
        if not self.step_ready(handle, state.current_step):
            raise WorkflowError(f"{state.current_step.value} is not finished yet")
        return self._save_flow(handle, workflow.advance(state))

    def _update_sub_step(self, handle: SessionHandle, step, **changes) -> FlowState:
        return self._save_flow(handle, workflow.update_sub_step(self.flow_state(handle), step, **changes))

    # ---------- vision: analysis & proposals ----------
    def responses_for(self, handle: SessionHandle, question_type) -> List[dict]:
        q = QuestionType(question_type)
        return [
            {"respondent_id": d.respondent_id, "answer": d.answer(q)}
            for d in self.documents(handle) if d.answer(q).strip()
        ]

    def analysis_for(self, handle: SessionHandle, question_type) -> Optional[Analysis]:
        key = question_type.value if isinstance(question_type, QuestionType) else str(question_type)
        return self.store.find(Kind.ANALYSIS, session_id=handle.session_id, question_type=key)

    def run_analysis(self, handle: SessionHandle, step) -> Analysis:
        q = _visie_question(step)
        result = self.analysis.analyze_themes(q, self.responses_for(handle, q))
        analysis = Analysis(
            session_id=handle.session_id,
            question_type=q.value,
            themes=result.themes,
            tensions=result.tensions,
            quick_wins=result.quick_wins,
            discussion_points=result.discussion_points,
        )
        self.store.upsert(Kind.ANALYSIS, analysis)
        state = self.flow_state(handle)
        changes = {"themes": result.themes}
        if state.sub_steps[FlowStep(step)].status != SubStepStatus.APPROVED:
            changes["status"] = SubStepStatus.ANALYZING
        self._save_flow(handle, workflow.update_sub_step(state, step, **changes))
        logger.info("analysed %s for %s: %d themes", q.value, handle.session_id, len(result.themes))
        return analysis

    def _edit_themes(self, handle: SessionHandle, step, edit) -> List:
        q = _visie_question(step)
        state = self.flow_state(handle)
        themes = edit(list(state.sub_steps[FlowStep(step)].themes))
        self._save_flow(handle, workflow.update_sub_step(state, step, themes=themes))
        stored = self.analysis_for(handle, q)
        if stored is not None:
            self.store.upsert(Kind.ANALYSIS, replace(stored, themes=themes))
        return themes

    def rename_theme(self, handle: SessionHandle, step, theme_id: str,
                     name: Optional[str] = None, description: Optional[str] = None) -> List:
        def edit(themes):
            if not any(t.id == theme_id for t in themes):
                raise NotFoundError(f"Theme {theme_id} not found")
            return [
                replace(t, name=name if name is not None else t.name,
                        description=description if description is not None else t.description)
                if t.id == theme_id else t
                for t in themes
            ]
        return self._edit_themes(handle, step, edit)

    def delete_theme(self, handle: SessionHandle, step, theme_id: str) -> List:
        return self._edit_themes(handle, step, lambda themes: [t for t in themes if t.id != theme_id])

    def generate_proposals(self, handle: SessionHandle, step) -> Proposal:
        q = _visie_question(step)
        state = self.flow_state(handle)
        sub = state.sub_steps[FlowStep(step)]
        result = self.analysis.generate_proposals(q, sub.themes, self.responses_for(handle, q))
        proposal = Proposal(
            session_id=handle.session_id,
            question_type=q.value,
            variants=result.variants,
            status=ProposalStatus.VOTING,
            recommendation=result.recommendation,
            recommendation_rationale=result.recommendation_rationale,
        )
        self.store.create(Kind.PROPOSAL, proposal)
        changes = {"proposal_ids": sub.proposal_ids + [proposal.id]}
        if sub.status != SubStepStatus.APPROVED:
            changes["status"] = SubStepStatus.VOTING
        self._save_flow(handle, workflow.update_sub_step(state, step, **changes))
        return proposal

    def proposals(self, handle: SessionHandle, question_type=None) -> List[Proposal]:
        if question_type is None:
            return self.store.list(Kind.PROPOSAL, handle.session_id)
        q = QuestionType(question_type).value
        return self.store.list(Kind.PROPOSAL, handle.session_id, where=lambda p: p.question_type == q)

    def proposal(self, handle: SessionHandle, proposal_id: str) -> Proposal:
        p = self.store.get(Kind.PROPOSAL, proposal_id)
        if p is None or p.session_id != handle.session_id:
            raise NotFoundError(f"Proposal {proposal_id} not found")
        return p

    def _variant(self, proposal: Proposal, variant_id: str):
        v = proposal.variant(variant_id)
        if v is None:
            raise NotFoundError(f"Variant {variant_id} not found")
        return v

    def edit_variant_text(self, handle: SessionHandle, proposal_id: str, variant_id: str, text: str) -> Proposal:
        proposal = self.proposal(handle, proposal_id)
        self._variant(proposal, variant_id)
        variants = [replace(v, text=text.strip()) if v.id == variant_id else v for v in proposal.variants]
        proposal = replace(proposal, variants=variants)
        self.store.update(Kind.PROPOSAL, proposal)
        return proposal

    # ---------- consent voting ----------
    def cast_vote(self, handle: SessionHandle, proposal_id: str, variant_id: str,
                  respondent_id: str, value, comment: Optional[str] = None) -> Vote:
        value = consensus.validate_vote(value, comment)
        proposal = self.proposal(handle, proposal_id)
        self._variant(proposal, variant_id)
        if respondent_id not in self.respondent_ids(handle):
            raise InvalidVoteError(f"Unknown respondent {respondent_id}")
        vote = Vote(
            session_id=handle.session_id,
            proposal_id=proposal_id,
            variant_id=variant_id,
            respondent_id=respondent_id,
            value=value,
            comment=(comment or "").strip() or None,
        )
        return self.store.upsert(Kind.VOTE, vote)

    def votes(self, handle: SessionHandle, proposal_id: str, variant_id: Optional[str] = None) -> List[Vote]:
        return self.store.list(
            Kind.VOTE, handle.session_id,
            where=lambda v: v.proposal_id == proposal_id and (variant_id is None or v.variant_id == variant_id),
        )

    def consent_for(self, handle: SessionHandle, proposal_id: str, variant_id: str) -> consensus.ConsentResult:
        self._variant(self.proposal(handle, proposal_id), variant_id)
        # only respondents still in the session count
        voters = set(self.respondent_ids(handle))
        votes = [v for v in self.votes(handle, proposal_id, variant_id) if v.respondent_id in voters]
        return consensus.consent_status(votes, len(voters))

    def approve_variant(self, handle: SessionHandle, proposal_id: str, variant_id: str,
                        override: bool = False) -> ApprovedText:
        """Approve on consent; `override` is the facilitator's explicit decision."""
        proposal = self.proposal(handle, proposal_id)
        variant = self._variant(proposal, variant_id)
        if not override:
            status = self.consent_for(handle, proposal_id, variant_id)
            if not status.approved:
                raise ConsentNotReachedError(
                    f"No consent yet: {status.pending} pending, {status.disagree} objection(s)"
                )
        else:
            logger.info("facilitator approved %s/%s without consent", proposal_id, variant_id)
        self.store.update(Kind.PROPOSAL, replace(
            proposal, status=ProposalStatus.APPROVED, approved_at=utcnow(), approved_variant_id=variant_id,
        ))
        return self.save_approved_text(handle, proposal.question_type, variant.text, proposal.id, variant.id)

    # ---------- approved texts ----------
    def save_approved_text(self, handle: SessionHandle, question_type, text: str,
                           proposal_id: str = "", variant_id: str = "") -> ApprovedText:
        q = QuestionType(question_type)
        approved = ApprovedText(
            session_id=handle.session_id,
            question_type=q,
            text=text,
            based_on_proposal_id=proposal_id,
            based_on_variant_id=variant_id,
        )
        self.store.upsert(Kind.APPROVED_TEXT, approved)
        step = STEP_FOR_QUESTION[q]
        if workflow.STEP_QUESTIONS[step][0] == q:
            self._update_sub_step(
                handle, step, status=SubStepStatus.APPROVED, approved_text=text, approved_variant_id=variant_id,
            )
        else:
            self._touch(handle)
        return approved

    def get_approved_text(self, handle: SessionHandle, question_type) -> Optional[ApprovedText]:
        return self.store.find(Kind.APPROVED_TEXT, session_id=handle.session_id,
                               question_type=QuestionType(question_type))

    def approved_texts(self, handle: SessionHandle) -> List[ApprovedText]:
        return self.store.list(Kind.APPROVED_TEXT, handle.session_id)

    # ---------- goals ----------
    def goal_statements(self, handle: SessionHandle):
        return goals_mod.collect_goals(self.documents(handle))

    def cluster_goals(self, handle: SessionHandle):
        statements = self.goal_statements(handle)
        result = self.analysis.analyze_themes(GOALS_TOPIC, goals_mod.goals_as_responses(statements))
        clusters = goals_mod.clusters_from_themes(result.themes, statements)
        if not clusters:
            # no grouping available: every goal stands on its own
            clusters = [
                GoalCluster(id=f"cluster-{i}", name=g.text, goals=[g])
                for i, g in enumerate(statements)
            ]
        self.store.upsert(Kind.ANALYSIS, Analysis(
            session_id=handle.session_id, question_type=GOALS_TOPIC,
            themes=result.themes, tensions=result.tensions,
            quick_wins=result.quick_wins, discussion_points=result.discussion_points,
        ))
        state = self.flow_state(handle)
        changes = dict(goal_clusters=clusters, ballots=[], ranking=[], themes=result.themes)
        if state.sub_steps[FlowStep.DOELEN].status != SubStepStatus.APPROVED:
            changes["status"] = SubStepStatus.ANALYZING
        self._save_flow(handle, workflow.update_sub_step(state, FlowStep.DOELEN, **changes))
        return clusters

    def goal_clusters(self, handle: SessionHandle):
        return self.flow_state(handle).sub_steps[FlowStep.DOELEN].goal_clusters

    def _cluster_ids(self, handle: SessionHandle) -> List[str]:
        return [c.id for c in self.goal_clusters(handle)]

    def rename_cluster(self, handle: SessionHandle, cluster_id: str, name: str):
        if cluster_id not in self._cluster_ids(handle):
            raise NotFoundError(f"Goal cluster {cluster_id} not found")
        clusters = [replace(c, name=name.strip()) if c.id == cluster_id else c
                    for c in self.goal_clusters(handle)]
        self._update_sub_step(handle, FlowStep.DOELEN, goal_clusters=clusters)
        return clusters

    def select_clusters(self, handle: SessionHandle, cluster_ids: Sequence[str]):
        """Keep only the chosen clusters for voting (at most five)."""
        known = self._cluster_ids(handle)
        unknown = [c for c in cluster_ids if c not in known]
        if unknown:
            raise NotFoundError(f"Goal cluster {unknown[0]} not found")
        if not cluster_ids or len(cluster_ids) > MAX_VOTING_CLUSTERS:
            raise WorkflowError(f"Select between 1 and {MAX_VOTING_CLUSTERS} goal clusters")
        chosen = set(cluster_ids)
        clusters = [c for c in self.goal_clusters(handle) if c.id in chosen]
        state = self.flow_state(handle)
        changes = dict(goal_clusters=clusters, ballots=[], ranking=[])
        if state.sub_steps[FlowStep.DOELEN].status != SubStepStatus.APPROVED:
            changes["status"] = SubStepStatus.VOTING
        self._save_flow(handle, workflow.update_sub_step(state, FlowStep.DOELEN, **changes))
        return clusters

    def submit_ballot(self, handle: SessionHandle, voter: str, allocations: Dict[str, int]):
        voter = (voter or "").strip()
        if not voter:
            raise InvalidVoteError("A ballot needs a voter")
        known = set(self._cluster_ids(handle))
        unknown = [c for c in allocations if c not in known]
        if unknown:
            raise InvalidVoteError(f"Unknown goal cluster {unknown[0]}")
        ballot = goals_mod.submit_ballot(goals_mod.ballot_from_allocations(voter, allocations, self.dot_budget))
        state = self.flow_state(handle)
        sub = state.sub_steps[FlowStep.DOELEN]
        ballots = [b for b in sub.ballots if b.voter != voter] + [ballot]
        changes = {"ballots": ballots}
        if sub.status != SubStepStatus.APPROVED:
            changes["status"] = SubStepStatus.VOTING
        self._save_flow(handle, workflow.update_sub_step(state, FlowStep.DOELEN, **changes))
        return ballot

    def goal_tally(self, handle: SessionHandle):
        sub = self.flow_state(handle).sub_steps[FlowStep.DOELEN]
        return goals_mod.tally_dot_votes(sub.goal_clusters, sub.ballots)

    def goal_ranking(self, handle: SessionHandle) -> goals_mod.GoalRanking:
        sub = self.flow_state(handle).sub_steps[FlowStep.DOELEN]
        if sub.ranking:
            return goals_mod.GoalRanking(cluster_ids=list(sub.ranking), max_ranks=self.top_n)
        return goals_mod.seed_ranking(self.goal_tally(handle), self.top_n)

    def set_ranking(self, handle: SessionHandle, cluster_ids: Sequence[str]) -> goals_mod.GoalRanking:
        known = self._cluster_ids(handle)
        ranking = goals_mod.GoalRanking(max_ranks=self.top_n)
        for cid in cluster_ids:
            if cid not in known:
                raise NotFoundError(f"Goal cluster {cid} not found")
            ranking = ranking.add(cid)
        self._update_sub_step(handle, FlowStep.DOELEN, ranking=list(ranking.cluster_ids))
        return ranking

    def approve_goals(self, handle: SessionHandle,
                      formulations: Optional[Dict[str, str]] = None) -> List[ApprovedText]:
        """Save the ranked goals as goal_1..goal_k; stale higher goals are dropped."""
        ranking = self.goal_ranking(handle)
        if not ranking.cluster_ids:
            raise WorkflowError("Rank at least one goal before approving")
        clusters = {c.id: c for c in self.goal_clusters(handle)}
        formulations = formulations or {}
        saved = []
        for q, cid in goals_mod.ranking_question_types(ranking):
            text = (formulations.get(cid) or "").strip() or goals_mod.default_formulation(clusters[cid])
            saved.append(self.save_approved_text(handle, q, text, CLUSTER_PROPOSAL_REF, cid))
        for q in GOAL_QUESTIONS[len(saved):]:
            stale = self.get_approved_text(handle, q)
            if stale is not None:
                self.store.delete(Kind.APPROVED_TEXT, stale.id)
        self._update_sub_step(
            handle, FlowStep.DOELEN,
            ranking=list(ranking.cluster_ids),
            approved_text="\n".join(f"{i}. {t.text}" for i, t in enumerate(saved, start=1)),
        )
        return saved

    # ---------- scope ----------
    def scope_items(self, handle: SessionHandle):
        sub = self.flow_state(handle).sub_steps[FlowStep.SCOPE]
        if sub.scope_items:
            return sub.scope_items
        items = scope_mod.collect_scope_items(self.documents(handle))
        if items:
            self._update_sub_step(handle, FlowStep.SCOPE, scope_items=items)
        return items

    def analyze_scope(self, handle: SessionHandle):
        items = self.scope_items(handle)
        approved_goals = [t.text for t in (self.get_approved_text(handle, q) for q in GOAL_QUESTIONS) if t]
        items = scope_mod.apply_scope_analysis(items, self.analysis.analyze_scope(items, approved_goals))
        state = self.flow_state(handle)
        changes = {"scope_items": items}
        if state.sub_steps[FlowStep.SCOPE].status != SubStepStatus.APPROVED:
            changes["status"] = SubStepStatus.ANALYZING
        self._save_flow(handle, workflow.update_sub_step(state, FlowStep.SCOPE, **changes))
        return items

    def add_scope_item(self, handle: SessionHandle, text: str, category=ScopeCategory.UNCLEAR):
        if not (text or "").strip():
            raise WorkflowError("A scope item needs text")
        items = scope_mod.add_item(self.scope_items(handle), text, category)
        self._update_sub_step(handle, FlowStep.SCOPE, scope_items=items)
        return items

    def move_scope_item(self, handle: SessionHandle, item_id: str, category):
        items = self.scope_items(handle)
        if not any(i.id == item_id for i in items):
            raise NotFoundError(f"Scope item {item_id} not found")
        items = scope_mod.move_item(items, item_id, category)
        self._update_sub_step(handle, FlowStep.SCOPE, scope_items=items)
        return items

    def approve_scope(self, handle: SessionHandle) -> ApprovedText:
        items = scope_mod.finalize_scope_items(self.scope_items(handle))
        self._update_sub_step(handle, FlowStep.SCOPE, scope_items=items)
        return self.save_approved_text(
            handle, QuestionType.OUT_OF_SCOPE, scope_mod.scope_text(items), SCOPE_PROPOSAL_REF, SCOPE_VARIANT_REF,
        )

    # ---------- export ----------
    def build_final_document(self, handle: SessionHandle) -> FinalDocument:
        texts = {t.question_type: t.text for t in self.approved_texts(handle)}
        previous = self.store.find(Kind.FINAL_DOCUMENT, session_id=handle.session_id)
        final = FinalDocument(
            session_id=handle.session_id,
            vision=Vision(**{q.value: texts.get(q, "") for q in workflow.VISIE_QUESTIONS.values()}),
            goals=[RankedGoal(i, texts[q]) for i, q in enumerate(GOAL_QUESTIONS, start=1) if q in texts],
            out_of_scope=scope_mod.split_scope_text(texts.get(QuestionType.OUT_OF_SCOPE, "")),
        )
        if previous is not None:
            final = replace(final, id=previous.id, exported_at=previous.exported_at)
        return self.store.upsert(Kind.FINAL_DOCUMENT, final)

    def export_docx(self, handle: SessionHandle):
        """Returns (filename, docx bytes)."""
        session = self.session(handle)
        final = self.build_final_document(handle)
        data = build_docx(final, session.name)
        self.store.upsert(Kind.FINAL_DOCUMENT, replace(final, exported_at=utcnow()))
        logger.info("exported session %s", handle.session_id)
        return f"Klant-in-Beeld-{final.generated_at.date().isoformat()}.docx", data

    def export_session_data(self, handle: SessionHandle) -> dict:
        loaded = self.load_session(handle)
        final = self.store.find(Kind.FINAL_DOCUMENT, session_id=handle.session_id)
        return {
            **loaded.to_dict(),
            "analyses": [a.to_dict() for a in self.store.list(Kind.ANALYSIS, handle.session_id)],
            "proposals": [p.to_dict() for p in self.proposals(handle)],
            "votes": [v.to_dict() for v in self.store.list(Kind.VOTE, handle.session_id)],
            "final_document": final.to_dict() if final else None,
            "exported_at": utcnow().isoformat(),
        }
