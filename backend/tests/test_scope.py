# backend/tests/test_scope.py
import scope
from entities import Document, QuestionType, ScopeCategory, ScopeItem


def test_collect_splits_and_dedupes():
    docs = [
        Document(session_id="s", filename="anna.docx", respondent_id="r1",
                 responses={QuestionType.OUT_OF_SCOPE: "• Nieuwe IT-systemen; Reorganisatie"}),
        Document(session_id="s", filename="bert.docx", respondent_id="r2",
                 responses={QuestionType.OUT_OF_SCOPE: "reorganisatie, Huisvesting\n- Salarissen"}),
    ]
    items = scope.collect_scope_items(docs)
    assert [(i.id, i.text, i.source) for i in items] == [
        ("scope-0", "Nieuwe IT-systemen", "anna"),
        ("scope-1", "Reorganisatie", "anna"),
        ("scope-2", "Huisvesting", "bert"),
        ("scope-3", "Salarissen", "bert"),
    ]
    assert all(i.category == ScopeCategory.UNCLEAR for i in items)


def test_apply_analysis_matches_on_text():
    items = [ScopeItem(text="Huisvesting", id="a"), ScopeItem(text="Salarissen", id="b")]
    out = scope.apply_scope_analysis(items, [
        {"text": "huisvesting", "category": "in_scope", "conflicts": ["Doel 1"], "suggestion": "Alleen kantoor"},
        {"text": "Salarissen", "category": "nonsense"},
    ])
    assert out[0].category == ScopeCategory.IN_SCOPE
    assert out[0].conflicts_with_goals == ["Doel 1"]
    assert out[0].suggested_clarification == "Alleen kantoor"
    assert out[1].category == ScopeCategory.UNCLEAR


def test_add_move_and_finalize():
    items = scope.add_item([], "  Marketing ")
    assert items[0].text == "Marketing" and items[0].source == scope.MANUAL_SOURCE
    items = scope.add_item(items, "Inkoop", ScopeCategory.IN_SCOPE)
    items = scope.move_item(items, items[1].id, "out_of_scope")
    final = scope.finalize_scope_items(items)
    assert [i.category for i in final] == [ScopeCategory.OUT_OF_SCOPE, ScopeCategory.OUT_OF_SCOPE]
    assert scope.scope_text(final) == "• Marketing\n• Inkoop"
    assert scope.split_scope_text(scope.scope_text(final)) == ["Marketing", "Inkoop"]


def test_in_scope_items_stay_out_of_the_text():
    items = [ScopeItem(text="A", category=ScopeCategory.IN_SCOPE), ScopeItem(text="B")]
    assert scope.scope_text(scope.finalize_scope_items(items)) == "• B"
