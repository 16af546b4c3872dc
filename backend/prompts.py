# backend/prompts.py
PARSE_CANVAS_SYSTEM = (
    "Je extraheert antwoorden uit een ingevuld MT-canvas.\n"
    "Je geeft ALLEEN een JSON-object terug, zonder uitleg.\n"
    "Verzin nooit tekst; een veld dat niet is ingevuld wordt een lege string.\n"
)

PARSE_CANVAS_USER = (
    "Het canvas bevat deze vragen:\n"
    "- VISIE A: Huidige situatie\n"
    "- VISIE B: Gewenste situatie\n"
    "- VISIE C: Beweging\n"
    "- VISIE D: Belanghebbenden\n"
    "- DOEL 1 (hoogste prioriteit), DOEL 2, DOEL 3\n"
    "- SCOPE: wat valt buiten het programma\n\n"
    "Formaat:\n"
    '{{"respondent_name": "string of null", "responses": {{'
    '"current_situation": "", "desired_situation": "", "change_direction": "", '
    '"stakeholders": "", "goal_1": "", "goal_2": "", "goal_3": "", "out_of_scope": ""}}}}\n\n'
    "DOCUMENT:\n{document}"
)

ANALYZE_THEMES_SYSTEM = (
    "Je analyseert kwalitatieve antwoorden van MT-leden en vindt terugkerende thema's.\n"
    "Je geeft ALLEEN een JSON-object terug.\n"
    "consensus_level is 'high' als meer dan 66% het thema noemt, 'medium' bij 33-66%, anders 'low'.\n"
)

ANALYZE_THEMES_USER = (
    "VRAAG: {question_label}\n\n"
    "ANTWOORDEN:\n{responses}\n\n"
    "Geef thema's, spanningen, quick wins (thema's met hoge consensus) en discussiepunten.\n"
    "Formaat:\n"
    '{{"themes": [{{"id": "theme-1", "name": "", "description": "", '
    '"mentioned_by": ["respondent ids"], "related_responses": ["respondent ids"], '
    '"consensus_level": "high|medium|low", "confidence": 0.0, "example_quotes": [""]}}], '
    '"tensions": [{{"theme_a": "", "theme_b": "", "description": ""}}], '
    '"quick_wins": [""], "discussion_points": [""]}}'
)

GENERATE_PROPOSAL_SYSTEM = (
    "Je formuleert gedeelde teksten voor een managementteam.\n"
    "Schrijf concreet, toetsbaar en in actieve stijl.\n"
    "Je geeft ALLEEN een JSON-object terug.\n"
)

GENERATE_PROPOSAL_USER = (
    "Formuleer een gedeelde tekst voor: {question_label}\n\n"
    "THEMA'S:\n{themes}\n\n"
    "ORIGINELE ANTWOORDEN:\n{responses}\n\n"
    "Maak precies 3 varianten:\n"
    "1. beknopt: maximaal 2 zinnen\n"
    "2. volledig: alle nuances, maximaal 4 zinnen\n"
    "3. gebalanceerd: tussen beide in\n\n"
    "Formaat:\n"
    '{{"variants": [{{"style": "beknopt|volledig|gebalanceerd", "text": "", '
    '"emphasizes": "", "includes_themes": [""]}}], '
    '"recommendation": "gebalanceerd", "recommendation_rationale": ""}}'
)

ANALYZE_SCOPE_SYSTEM = (
    "Je beoordeelt scope-afbakeningen tegen goedgekeurde doelen.\n"
    "Je geeft ALLEEN een JSON-object terug.\n"
)

ANALYZE_SCOPE_USER = (
    "GOEDGEKEURDE DOELEN:\n{goals}\n\n"
    "SCOPE-ITEMS:\n{items}\n\n"
    "Bepaal per item of het buiten scope (out_of_scope), binnen scope (in_scope) of "
    "onduidelijk (unclear) is, en noem doelen waarmee het botst.\n"
    "Formaat:\n"
    '{{"scope_analysis": [{{"text": "item tekst", "category": "out_of_scope|in_scope|unclear", '
    '"conflicts": ["doel"], "suggestion": "verduidelijking of null"}}]}}'
)

NO_THEMES = "Geen thema's beschikbaar"
NO_RESPONSES = "Geen antwoorden beschikbaar"
