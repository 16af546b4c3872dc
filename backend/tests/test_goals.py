# backend/tests/test_goals.py
import goals
from entities import Document, DotBallot, GoalCluster, QuestionType, ThemeCluster


def test_fourth_dot_is_a_noop_with_budget_three():
    b = goals.new_ballot("anna", budget=3)
    for cid in ("a", "b", "a"):
        b = goals.add_dot(b, cid)
    assert b.used == 3 and b.remaining == 0
    assert goals.add_dot(b, "c") is b
    assert b.allocations == {"a": 2, "b": 1}


def test_remove_dot():
    b = goals.add_dot(goals.new_ballot("anna"), "a")
    assert goals.remove_dot(b, "a").allocations == {}
    assert goals.remove_dot(b, "zz") is b


def test_ballot_from_allocations_keeps_budget():
    b = goals.ballot_from_allocations("anna", {"a": 2, "b": 5}, budget=3)
    assert b.allocations == {"a": 2, "b": 1}
    assert not b.submitted
    assert goals.submit_ballot(b).submitted


def test_tally_counts_submitted_ballots_only():
    clusters = [GoalCluster(name="A", id="a"), GoalCluster(name="B", id="b"), GoalCluster(name="C", id="c")]
    ballots = [
        DotBallot(voter="1", allocations={"b": 2, "c": 1}, submitted=True),
        DotBallot(voter="2", allocations={"c": 1, "x": 2}, submitted=True),
        DotBallot(voter="3", allocations={"a": 3}, submitted=False),
    ]
    tallied = goals.tally_dot_votes(clusters, ballots)
    assert [(c.id, c.votes) for c in tallied] == [("b", 2), ("c", 2), ("a", 0)]


def test_ranking_moves():
    r = goals.GoalRanking(max_ranks=3)
    for cid in ("a", "b", "a", "c", "d"):
        r = r.add(cid)
    assert r.cluster_ids == ["a", "b", "c"]
    assert r.move_up(0) is r
    assert r.move_down(2) is r
    assert r.move_up(2).cluster_ids == ["a", "c", "b"]
    assert r.move_down(0).cluster_ids == ["b", "a", "c"]
    assert r.move_before("c", "a").cluster_ids == ["c", "a", "b"]
    assert r.remove("b").cluster_ids == ["a", "c"]


def test_seed_ranking_takes_top_n():
    tallied = [GoalCluster(name=n, id=n) for n in "abcd"]
    assert goals.seed_ranking(tallied, 3).cluster_ids == ["a", "b", "c"]


def _docs():
    return [
        Document(session_id="s", filename="anna.docx", respondent_id="r1", id="d1",
                 responses={QuestionType.GOAL_1: "Groei", QuestionType.GOAL_3: "Rust"}),
        Document(session_id="s", filename="bert.docx", respondent_id="r2", id="d2",
                 responses={QuestionType.GOAL_1: "Meer groei"}),
    ]


def test_collect_goals_skips_empty_answers():
    statements = goals.collect_goals(_docs())
    assert [(g.id, g.rank, g.text) for g in statements] == [
        ("d1-goal-1", 1, "Groei"), ("d1-goal-3", 3, "Rust"), ("d2-goal-1", 1, "Meer groei"),
    ]
    responses = goals.goals_as_responses(statements)
    assert responses[1] == {"respondent_id": "d1-goal-3", "answer": "[Prioriteit 3] Rust"}


def test_clusters_from_themes_resolve_goal_and_respondent_refs():
    statements = goals.collect_goals(_docs())
    themes = [ThemeCluster(name="Groei", id="t1", related_responses=["d1-goal-1"], mentioned_by=["r2"])]
    clusters = goals.clusters_from_themes(themes, statements)
    assert [g.id for g in clusters[0].goals] == ["d1-goal-1", "d2-goal-1"]
    assert clusters[0].average_rank == 1


def test_ranking_question_types_and_formulation():
    r = goals.GoalRanking(cluster_ids=["x", "y"])
    assert goals.ranking_question_types(r) == [(QuestionType.GOAL_1, "x"), (QuestionType.GOAL_2, "y")]
    assert goals.default_formulation(GoalCluster(name="Groei", description="omzet +10%")) == "Groei: omzet +10%"
    assert goals.default_formulation(GoalCluster(name="Groei")) == "Groei"
