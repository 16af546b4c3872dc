# backend/goals.py
from dataclasses import dataclass, field, replace
from typing import Dict, List, Sequence, Tuple

from entities import (
    GOAL_QUESTIONS, Document, DotBallot, GoalCluster, GoalStatement, QuestionType, ThemeCluster,
)


DEFAULT_BUDGET = 3
DEFAULT_TOP_N = 3


def collect_goals(documents: Sequence[Document]) -> List[GoalStatement]:
    goals = []
    for doc in documents:
        for rank, q in enumerate(GOAL_QUESTIONS, start=1):
            text = doc.answer(q).strip()
            if text:
                goals.append(GoalStatement(
                    id=f"{doc.id}-goal-{rank}",
                    respondent_id=doc.respondent_id,
                    respondent_name=doc.display_name,
                    text=text,
                    rank=rank,
                ))
    return goals


def goals_as_responses(goals: Sequence[GoalStatement]) -> List[dict]:
    """Analysis input: every goal is its own 'respondent' so themes point back at goals."""
    return [{"respondent_id": g.id, "answer": f"[Prioriteit {g.rank}] {g.text}"} for g in goals]


def clusters_from_themes(themes: Sequence[ThemeCluster], goals: Sequence[GoalStatement]) -> List[GoalCluster]:
    by_id = {g.id: g for g in goals}
    first_by_respondent: Dict[str, GoalStatement] = {}
    for g in goals:
        first_by_respondent.setdefault(g.respondent_id, g)

    clusters = []
    for i, theme in enumerate(themes):
        members, seen = [], set()
        for ref in list(theme.related_responses) + list(theme.mentioned_by):
            g = by_id.get(ref) or first_by_respondent.get(ref)
            if g and g.id not in seen:
                seen.add(g.id)
                members.append(g)
        clusters.append(GoalCluster(
            id=theme.id or f"cluster-{i}",
            name=theme.name,
            description=theme.description,
            goals=members,
        ))
    return clusters


# ---------- dot voting ----------
def new_ballot(voter: str, budget: int = DEFAULT_BUDGET) -> DotBallot:
    return DotBallot(voter=voter, budget=budget)


def add_dot(ballot: DotBallot, cluster_id: str) -> DotBallot:
    if ballot.remaining <= 0:
        return ballot
    allocations = dict(ballot.allocations)
    allocations[cluster_id] = allocations.get(cluster_id, 0) + 1
    return replace(ballot, allocations=allocations)


def remove_dot(ballot: DotBallot, cluster_id: str) -> DotBallot:
    if ballot.allocations.get(cluster_id, 0) <= 0:
        return ballot
    allocations = dict(ballot.allocations)
    allocations[cluster_id] -= 1
    if allocations[cluster_id] == 0:
        del allocations[cluster_id]
    return replace(ballot, allocations=allocations)


def ballot_from_allocations(voter: str, allocations: Dict[str, int], budget: int = DEFAULT_BUDGET) -> DotBallot:
    """Replay a requested allocation dot by dot so the budget still holds."""
    ballot = new_ballot(voter, budget)
    for cluster_id, count in allocations.items():
        for _ in range(max(int(count), 0)):
            ballot = add_dot(ballot, cluster_id)
    return ballot


def submit_ballot(ballot: DotBallot) -> DotBallot:
    return replace(ballot, submitted=True)


def tally_dot_votes(clusters: Sequence[GoalCluster], ballots: Sequence[DotBallot]) -> List[GoalCluster]:
    """Sum submitted ballots per cluster; most points first, ties in input order."""
    totals = {c.id: 0 for c in clusters}
    for b in ballots:
        if not b.submitted:
            continue
        for cluster_id, count in b.allocations.items():
            if cluster_id in totals:
                totals[cluster_id] += count
    tallied = [replace(c, votes=totals[c.id]) for c in clusters]
    return sorted(tallied, key=lambda c: -c.votes)


# ---------- ranking ----------
@dataclass
class GoalRanking:
    cluster_ids: List[str] = field(default_factory=list)
    max_ranks: int = DEFAULT_TOP_N

    def _with(self, ids):
        return GoalRanking(cluster_ids=ids, max_ranks=self.max_ranks)

    def add(self, cluster_id: str) -> "GoalRanking":
        if len(self.cluster_ids) >= self.max_ranks or cluster_id in self.cluster_ids:
            return self
        return self._with(self.cluster_ids + [cluster_id])

    def remove(self, cluster_id: str) -> "GoalRanking":
        return self._with([c for c in self.cluster_ids if c != cluster_id])

    def move_up(self, index: int) -> "GoalRanking":
        if index <= 0 or index >= len(self.cluster_ids):
            return self
        ids = list(self.cluster_ids)
        ids[index - 1], ids[index] = ids[index], ids[index - 1]
        return self._with(ids)

    def move_down(self, index: int) -> "GoalRanking":
        if index < 0 or index >= len(self.cluster_ids) - 1:
            return self
        ids = list(self.cluster_ids)
        ids[index], ids[index + 1] = ids[index + 1], ids[index]
        return self._with(ids)

    def move_before(self, dragged_id: str, target_id: str) -> "GoalRanking":
        """Drag-and-drop: put `dragged_id` at the position `target_id` holds."""
        if dragged_id == target_id or dragged_id not in self.cluster_ids or target_id not in self.cluster_ids:
            return self
        ids = list(self.cluster_ids)
        target_index = ids.index(target_id)
        ids.remove(dragged_id)
        ids.insert(target_index, dragged_id)
        return self._with(ids)


def seed_ranking(tallied: Sequence[GoalCluster], n: int = DEFAULT_TOP_N) -> GoalRanking:
    return GoalRanking(cluster_ids=[c.id for c in tallied[:n]], max_ranks=n)


def ranking_question_types(ranking: GoalRanking) -> List[Tuple[QuestionType, str]]:
    """Rank 1..N becomes goal_1..goal_N; anything past the goal questions is dropped."""
    return list(zip(GOAL_QUESTIONS, ranking.cluster_ids))


def default_formulation(cluster: GoalCluster) -> str:
    return f"{cluster.name}: {cluster.description}" if cluster.description else cluster.name
