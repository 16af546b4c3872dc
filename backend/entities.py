# backend/entities.py
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def uuid4str() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def dt_to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------- question set ----------
class QuestionType(str, Enum):
    CURRENT_SITUATION = "current_situation"
    DESIRED_SITUATION = "desired_situation"
    CHANGE_DIRECTION = "change_direction"
    STAKEHOLDERS = "stakeholders"
    GOAL_1 = "goal_1"
    GOAL_2 = "goal_2"
    GOAL_3 = "goal_3"
    OUT_OF_SCOPE = "out_of_scope"


QUESTION_LABELS = {
    QuestionType.CURRENT_SITUATION: "Huidige situatie",
    QuestionType.DESIRED_SITUATION: "Gewenste situatie",
    QuestionType.CHANGE_DIRECTION: "Beweging/verandering",
    QuestionType.STAKEHOLDERS: "Belanghebbenden",
    QuestionType.GOAL_1: "Doel 1",
    QuestionType.GOAL_2: "Doel 2",
    QuestionType.GOAL_3: "Doel 3",
    QuestionType.OUT_OF_SCOPE: "Buiten scope",
}

QUESTION_CATEGORIES = {
    QuestionType.CURRENT_SITUATION: "visie",
    QuestionType.DESIRED_SITUATION: "visie",
    QuestionType.CHANGE_DIRECTION: "visie",
    QuestionType.STAKEHOLDERS: "visie",
    QuestionType.GOAL_1: "doelen",
    QuestionType.GOAL_2: "doelen",
    QuestionType.GOAL_3: "doelen",
    QuestionType.OUT_OF_SCOPE: "scope",
}

GOAL_QUESTIONS = [QuestionType.GOAL_1, QuestionType.GOAL_2, QuestionType.GOAL_3]


def empty_responses() -> Dict[QuestionType, str]:
    return {q: "" for q in QuestionType}


def responses_from_dict(data: Optional[Dict[str, Any]]) -> Dict[QuestionType, str]:
    """Fill all eight question types; unknown keys are dropped."""
    out = empty_responses()
    for k, v in (data or {}).items():
        try:
            q = QuestionType(k)
        except ValueError:
            continue
        out[q] = "" if v is None else str(v).strip()
    return out


# ---------- enums ----------
class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class FlowStep(str, Enum):
    UPLOAD = "upload"
    VISIE_HUIDIGE = "visie_huidige"
    VISIE_GEWENSTE = "visie_gewenste"
    VISIE_BEWEGING = "visie_beweging"
    VISIE_STAKEHOLDERS = "visie_stakeholders"
    DOELEN = "doelen"
    SCOPE = "scope"
    EXPORT = "export"


class StepStatus(str, Enum):
    LOCKED = "locked"
    ACTIVE = "active"
    COMPLETED = "completed"


class SubStepStatus(str, Enum):
    NOT_STARTED = "not_started"
    ANALYZING = "analyzing"
    VOTING = "voting"
    APPROVED = "approved"


class ConsensusLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class VariantStyle(str, Enum):
    BEKNOPT = "beknopt"
    VOLLEDIG = "volledig"
    GEBALANCEERD = "gebalanceerd"


class ProposalStatus(str, Enum):
    DRAFT = "draft"
    VOTING = "voting"
    APPROVED = "approved"
    REJECTED = "rejected"


class VoteValue(str, Enum):
    AGREE = "agree"
    DISAGREE = "disagree"
    ABSTAIN = "abstain"


class ScopeCategory(str, Enum):
    OUT_OF_SCOPE = "out_of_scope"
    IN_SCOPE = "in_scope"
    UNCLEAR = "unclear"


# ---------- session & documents ----------
@dataclass
class Session:
    name: str
    id: str = field(default_factory=uuid4str)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    status: SessionStatus = SessionStatus.IN_PROGRESS
    current_step: FlowStep = FlowStep.UPLOAD

    @property
    def session_id(self) -> str:
        return self.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.id,
            "name": self.name,
            "created_at": dt_to_text(self.created_at),
            "updated_at": dt_to_text(self.updated_at),
            "status": self.status.value,
            "current_step": self.current_step.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            created_at=parse_dt(data.get("created_at")),
            updated_at=parse_dt(data.get("updated_at")),
            status=SessionStatus(data.get("status", "in_progress")),
            current_step=FlowStep(data.get("current_step", "upload")),
        )


@dataclass
class Document:
    session_id: str
    filename: str
    respondent_id: str
    raw_text: str = ""
    responses: Dict[QuestionType, str] = field(default_factory=empty_responses)
    respondent_name: str = ""
    id: str = field(default_factory=uuid4str)
    uploaded_at: datetime = field(default_factory=utcnow)

    @property
    def display_name(self) -> str:
        if self.respondent_name:
            return self.respondent_name
        name = self.filename
        if name.lower().endswith(".docx"):
            name = name[:-5]
        return name.replace("_", " ")

    def answer(self, question: QuestionType) -> str:
        return self.responses.get(question, "") or ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "filename": self.filename,
            "respondent_id": self.respondent_id,
            "respondent_name": self.respondent_name,
            "uploaded_at": dt_to_text(self.uploaded_at),
            "raw_text": self.raw_text,
            "responses": {q.value: v for q, v in self.responses.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            filename=data.get("filename", ""),
            respondent_id=data.get("respondent_id", ""),
            respondent_name=data.get("respondent_name", ""),
            uploaded_at=parse_dt(data.get("uploaded_at")),
            raw_text=data.get("raw_text", ""),
            responses=responses_from_dict(data.get("responses")),
        )


# ---------- analysis ----------
@dataclass
class ThemeCluster:
    name: str
    description: str = ""
    question_type: str = ""
    mentioned_by: List[str] = field(default_factory=list)
    related_responses: List[str] = field(default_factory=list)
    consensus_level: ConsensusLevel = ConsensusLevel.LOW
    confidence: float = 0.0
    example_quotes: List[str] = field(default_factory=list)
    id: str = field(default_factory=uuid4str)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "question_type": self.question_type,
            "mentioned_by": list(self.mentioned_by),
            "related_responses": list(self.related_responses),
            "consensus_level": self.consensus_level.value,
            "confidence": self.confidence,
            "example_quotes": list(self.example_quotes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThemeCluster":
        return cls(
            id=data.get("id") or uuid4str(),
            name=data.get("name", ""),
            description=data.get("description", ""),
            question_type=data.get("question_type", ""),
            mentioned_by=list(data.get("mentioned_by") or []),
            related_responses=list(data.get("related_responses") or []),
            consensus_level=ConsensusLevel(data.get("consensus_level", "low")),
            confidence=float(data.get("confidence", 0.0)),
            example_quotes=list(data.get("example_quotes") or []),
        )


@dataclass
class Tension:
    theme_a: str
    theme_b: str
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"theme_a": self.theme_a, "theme_b": self.theme_b, "description": self.description}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tension":
        return cls(data.get("theme_a", ""), data.get("theme_b", ""), data.get("description", ""))


@dataclass
class Analysis:
    session_id: str
    question_type: str
    themes: List[ThemeCluster] = field(default_factory=list)
    tensions: List[Tension] = field(default_factory=list)
    quick_wins: List[str] = field(default_factory=list)
    discussion_points: List[str] = field(default_factory=list)
    id: str = field(default_factory=uuid4str)
    analyzed_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "question_type": self.question_type,
            "analyzed_at": dt_to_text(self.analyzed_at),
            "themes": [t.to_dict() for t in self.themes],
            "tensions": [t.to_dict() for t in self.tensions],
            "quick_wins": list(self.quick_wins),
            "discussion_points": list(self.discussion_points),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Analysis":
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            question_type=data["question_type"],
            analyzed_at=parse_dt(data.get("analyzed_at")),
            themes=[ThemeCluster.from_dict(t) for t in data.get("themes") or []],
            tensions=[Tension.from_dict(t) for t in data.get("tensions") or []],
            quick_wins=list(data.get("quick_wins") or []),
            discussion_points=list(data.get("discussion_points") or []),
        )


# ---------- proposals & votes ----------
@dataclass
class ProposalVariant:
    style: VariantStyle
    text: str
    emphasizes: str = ""
    includes_themes: List[str] = field(default_factory=list)
    id: str = field(default_factory=uuid4str)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "style": self.style.value,
            "text": self.text,
            "emphasizes": self.emphasizes,
            "includes_themes": list(self.includes_themes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProposalVariant":
        return cls(
            id=data.get("id") or uuid4str(),
            style=VariantStyle(data.get("style", "gebalanceerd")),
            text=data.get("text", ""),
            emphasizes=data.get("emphasizes", ""),
            includes_themes=list(data.get("includes_themes") or []),
        )


@dataclass
class Proposal:
    session_id: str
    question_type: str
    variants: List[ProposalVariant] = field(default_factory=list)
    status: ProposalStatus = ProposalStatus.DRAFT
    theme_id: Optional[str] = None
    recommendation: Optional[str] = None
    recommendation_rationale: Optional[str] = None
    id: str = field(default_factory=uuid4str)
    created_at: datetime = field(default_factory=utcnow)
    approved_at: Optional[datetime] = None
    approved_variant_id: Optional[str] = None

    def variant(self, variant_id: str) -> Optional[ProposalVariant]:
        for v in self.variants:
            if v.id == variant_id:
                return v
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "question_type": self.question_type,
            "theme_id": self.theme_id,
            "variants": [v.to_dict() for v in self.variants],
            "status": self.status.value,
            "recommendation": self.recommendation,
            "recommendation_rationale": self.recommendation_rationale,
            "created_at": dt_to_text(self.created_at),
            "approved_at": dt_to_text(self.approved_at),
            "approved_variant_id": self.approved_variant_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Proposal":
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            question_type=data["question_type"],
            theme_id=data.get("theme_id"),
            variants=[ProposalVariant.from_dict(v) for v in data.get("variants") or []],
            status=ProposalStatus(data.get("status", "draft")),
            recommendation=data.get("recommendation"),
            recommendation_rationale=data.get("recommendation_rationale"),
            created_at=parse_dt(data.get("created_at")),
            approved_at=parse_dt(data.get("approved_at")),
            approved_variant_id=data.get("approved_variant_id"),
        )


@dataclass
class Vote:
    session_id: str
    proposal_id: str
    variant_id: str
    respondent_id: str
    value: VoteValue
    comment: Optional[str] = None
    id: str = field(default_factory=uuid4str)
    voted_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "proposal_id": self.proposal_id,
            "variant_id": self.variant_id,
            "respondent_id": self.respondent_id,
            "value": self.value.value,
            "comment": self.comment,
            "voted_at": dt_to_text(self.voted_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Vote":
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            proposal_id=data["proposal_id"],
            variant_id=data["variant_id"],
            respondent_id=data["respondent_id"],
            value=VoteValue(data["value"]),
            comment=data.get("comment"),
            voted_at=parse_dt(data.get("voted_at")),
        )


# ---------- goals & scope ----------
@dataclass
class GoalStatement:
    respondent_id: str
    respondent_name: str
    text: str
    rank: int  # priority the respondent gave it (1..3)
    id: str = field(default_factory=uuid4str)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "respondent_id": self.respondent_id,
            "respondent_name": self.respondent_name,
            "text": self.text,
            "rank": self.rank,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GoalStatement":
        return cls(
            id=data.get("id") or uuid4str(),
            respondent_id=data.get("respondent_id", ""),
            respondent_name=data.get("respondent_name", ""),
            text=data.get("text", ""),
            rank=int(data.get("rank", 1)),
        )


@dataclass
class GoalCluster:
    name: str
    description: str = ""
    goals: List[GoalStatement] = field(default_factory=list)
    votes: int = 0
    id: str = field(default_factory=uuid4str)

    @property
    def average_rank(self) -> Optional[float]:
        if not self.goals:
            return None
        return sum(g.rank for g in self.goals) / len(self.goals)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "goals": [g.to_dict() for g in self.goals],
            "votes": self.votes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GoalCluster":
        return cls(
            id=data.get("id") or uuid4str(),
            name=data.get("name", ""),
            description=data.get("description", ""),
            goals=[GoalStatement.from_dict(g) for g in data.get("goals") or []],
            votes=int(data.get("votes", 0)),
        )


@dataclass
class DotBallot:
    voter: str
    budget: int = 3
    allocations: Dict[str, int] = field(default_factory=dict)
    submitted: bool = False

    @property
    def used(self) -> int:
        return sum(self.allocations.values())

    @property
    def remaining(self) -> int:
        return self.budget - self.used

    def to_dict(self) -> Dict[str, Any]:
        return {
            "voter": self.voter,
            "budget": self.budget,
            "allocations": dict(self.allocations),
            "submitted": self.submitted,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DotBallot":
        return cls(
            voter=data["voter"],
            budget=int(data.get("budget", 3)),
            allocations={k: int(v) for k, v in (data.get("allocations") or {}).items() if int(v) > 0},
            submitted=bool(data.get("submitted", False)),
        )


@dataclass
class ScopeItem:
    text: str
    category: ScopeCategory = ScopeCategory.UNCLEAR
    source: str = ""
    conflicts_with_goals: List[str] = field(default_factory=list)
    suggested_clarification: Optional[str] = None
    id: str = field(default_factory=uuid4str)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "category": self.category.value,
            "source": self.source,
            "conflicts_with_goals": list(self.conflicts_with_goals),
            "suggested_clarification": self.suggested_clarification,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScopeItem":
        return cls(
            id=data.get("id") or uuid4str(),
            text=data.get("text", ""),
            category=ScopeCategory(data.get("category", "unclear")),
            source=data.get("source", ""),
            conflicts_with_goals=list(data.get("conflicts_with_goals") or []),
            suggested_clarification=data.get("suggested_clarification"),
        )


# ---------- approval & export ----------
@dataclass
class ApprovedText:
    session_id: str
    question_type: QuestionType
    text: str
    based_on_proposal_id: str = ""
    based_on_variant_id: str = ""
    id: str = field(default_factory=uuid4str)
    approved_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "question_type": self.question_type.value,
            "text": self.text,
            "approved_at": dt_to_text(self.approved_at),
            "based_on_proposal_id": self.based_on_proposal_id,
            "based_on_variant_id": self.based_on_variant_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovedText":
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            question_type=QuestionType(data["question_type"]),
            text=data.get("text", ""),
            approved_at=parse_dt(data.get("approved_at")),
            based_on_proposal_id=data.get("based_on_proposal_id", ""),
            based_on_variant_id=data.get("based_on_variant_id", ""),
        )


@dataclass
class Vision:
    current_situation: str = ""
    desired_situation: str = ""
    change_direction: str = ""
    stakeholders: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "current_situation": self.current_situation,
            "desired_situation": self.desired_situation,
            "change_direction": self.change_direction,
            "stakeholders": self.stakeholders,
        }


@dataclass
class RankedGoal:
    rank: int
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"rank": self.rank, "text": self.text}


@dataclass
class FinalDocument:
    session_id: str
    vision: Vision = field(default_factory=Vision)
    goals: List[RankedGoal] = field(default_factory=list)
    out_of_scope: List[str] = field(default_factory=list)
    id: str = field(default_factory=uuid4str)
    generated_at: datetime = field(default_factory=utcnow)
    exported_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "vision": self.vision.to_dict(),
            "goals": [g.to_dict() for g in self.goals],
            "scope": {"out_of_scope": list(self.out_of_scope)},
            "generated_at": dt_to_text(self.generated_at),
            "exported_at": dt_to_text(self.exported_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FinalDocument":
        vision = data.get("vision") or {}
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            vision=Vision(**{k: vision.get(k, "") for k in Vision().to_dict()}),
            goals=[RankedGoal(int(g["rank"]), g.get("text", "")) for g in data.get("goals") or []],
            out_of_scope=list((data.get("scope") or {}).get("out_of_scope") or []),
            generated_at=parse_dt(data.get("generated_at")),
            exported_at=parse_dt(data.get("exported_at")),
        )


# ---------- flow state ----------
@dataclass
class SubStepState:
    status: SubStepStatus = SubStepStatus.NOT_STARTED
    themes: List[ThemeCluster] = field(default_factory=list)
    proposal_ids: List[str] = field(default_factory=list)
    approved_text: Optional[str] = None
    approved_variant_id: Optional[str] = None
    # doelen only
    goal_clusters: List[GoalCluster] = field(default_factory=list)
    ballots: List[DotBallot] = field(default_factory=list)
    ranking: List[str] = field(default_factory=list)
    # scope only
    scope_items: List[ScopeItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "themes": [t.to_dict() for t in self.themes],
            "proposal_ids": list(self.proposal_ids),
            "approved_text": self.approved_text,
            "approved_variant_id": self.approved_variant_id,
            "goal_clusters": [c.to_dict() for c in self.goal_clusters],
            "ballots": [b.to_dict() for b in self.ballots],
            "ranking": list(self.ranking),
            "scope_items": [i.to_dict() for i in self.scope_items],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubStepState":
        return cls(
            status=SubStepStatus(data.get("status", "not_started")),
            themes=[ThemeCluster.from_dict(t) for t in data.get("themes") or []],
            proposal_ids=list(data.get("proposal_ids") or []),
            approved_text=data.get("approved_text"),
            approved_variant_id=data.get("approved_variant_id"),
            goal_clusters=[GoalCluster.from_dict(c) for c in data.get("goal_clusters") or []],
            ballots=[DotBallot.from_dict(b) for b in data.get("ballots") or []],
            ranking=list(data.get("ranking") or []),
            scope_items=[ScopeItem.from_dict(i) for i in data.get("scope_items") or []],
        )


# steps that carry a SubStepState
SUB_STEPS = [
    FlowStep.VISIE_HUIDIGE,
    FlowStep.VISIE_GEWENSTE,
    FlowStep.VISIE_BEWEGING,
    FlowStep.VISIE_STAKEHOLDERS,
    FlowStep.DOELEN,
    FlowStep.SCOPE,
]


@dataclass
class FlowState:
    session_id: str
    current_step: FlowStep
    steps: Dict[FlowStep, StepStatus]
    sub_steps: Dict[FlowStep, SubStepState]
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def id(self) -> str:
        return self.session_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.session_id,
            "session_id": self.session_id,
            "current_step": self.current_step.value,
            "steps": {s.value: st.value for s, st in self.steps.items()},
            "sub_steps": {s.value: sub.to_dict() for s, sub in self.sub_steps.items()},
            "updated_at": dt_to_text(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowState":
        steps = {FlowStep(k): StepStatus(v) for k, v in (data.get("steps") or {}).items()}
        for s in FlowStep:
            steps.setdefault(s, StepStatus.LOCKED)
        subs = {FlowStep(k): SubStepState.from_dict(v) for k, v in (data.get("sub_steps") or {}).items()}
        for s in SUB_STEPS:
            subs.setdefault(s, SubStepState())
        return cls(
            session_id=data["session_id"],
            current_step=FlowStep(data.get("current_step", "upload")),
            steps=steps,
            sub_steps=subs,
            updated_at=parse_dt(data.get("updated_at")),
        )
