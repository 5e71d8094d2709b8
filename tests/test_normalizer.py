"""Tests for typed-table normalization."""
import json

import pytest

from folio.models.document import PERIODS, TableKind
from folio.services.normalizer import (
    canonicalize_keys,
    classify_row,
    fallback_financials,
    normalize_budget,
    normalize_financials,
    normalize_logframe,
    normalize_me_plan,
    normalize_risks,
    normalize_sdg_alignment,
    normalize_stakeholders,
    normalize_table,
    normalize_workplan,
    normalize_year_key,
    parse_number,
    risk_score,
    stakeholder_quadrant,
    to_list,
)
from folio.services.structured_extractor import extract_object

RAW_FINANCIALS = {
    "currency": "xof",
    "hypotheses": [{"libelle": "Prix moyen", "valeur": "1 500 XOF"}],
    "pnl": [
        {"label": "Revenue", "y1": "12,500.00", "Y2": "20 000", "year3": 30000, "Y 4": "40.000,00", "an5": 50000},
        {"label": "Cost of goods sold", "values": [5000, 8000, 12000, 16000, 20000]},
        {"label": "Operating expenses", "y1": 4000, "y2": 5000},
    ],
    "cashflow": [{"label": "Operating cash flow", "y1": "(1 200)", "y2": 3000}],
    "use_of_funds": [
        {"label": "Equipment", "amount": "30,000"},
        {"label": "Working capital", "montant": 10000},
    ],
    "break_even": {"metric": "months", "estimate": "20"},
    "scenarios": [{"name": "Base", "note": "Standard execution"}],
}


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "raw, expected",
    [
        ("12,500.00", 12500.0),
        ("8.000,00", 8000.0),
        ("1.234.567", 1234567.0),
        ("12,500", 12500.0),
        ("1,5", 1.5),
        ("3.75", 3.75),
        ("(1 200)", -1200.0),
        ("-450 USD", -450.0),
        ("USD 2 500 000", 2500000.0),
        ("USD -500", -500.0),
        ("XOF − 1 200", -1200.0),
        (42, 42.0),
        ("n/a", 0.0),
        ("", 0.0),
        (None, 0.0),
        (True, 0.0),
        (float("nan"), 0.0),
    ],
)
def test_parse_number(raw, expected):
    assert parse_number(raw) == expected


@pytest.mark.parametrize(
    "key, expected",
    [("y1", "Y1"), ("Y 2", "Y2"), ("year3", "Y3"), ("Year_4", "Y4"), ("an5", "Y5"), ("Année 2", "Y2"), ("3", "Y3")],
)
def test_normalize_year_key(key, expected):
    assert normalize_year_key(key) == expected


def test_normalize_year_key_rejects_other_keys():
    assert normalize_year_key("label") is None
    assert normalize_year_key("y12") is None
    assert normalize_year_key("format") is None


def test_canonicalize_keys_first_non_blank_wins():
    data = canonicalize_keys({"Forces": [], "strengths": ["Team"], "Menaces": ["Prices"]})
    assert data["strengths"] == ["Team"]
    assert data["threats"] == ["Prices"]


def test_to_list_accepts_bullets_and_lists():
    assert to_list("- one\n* two\n3. three") == ["one", "two", "three"]
    assert to_list(["a", "", None, {"k": "v", "w": "x"}]) == ["a", "v - x"]
    assert to_list(12) == []


# ---------------------------------------------------------------------------
# Financial statement
# ---------------------------------------------------------------------------

def test_financials_rows_have_every_period():
    statement, degraded = normalize_financials(RAW_FINANCIALS, "en")

    assert not degraded
    assert statement.currency == "XOF"
    for table in (statement.pnl, statement.cashflow, statement.revenue_drivers, statement.balance_sheet):
        for row in table:
            assert len(row.values) == len(PERIODS)


def test_financials_values_and_derived_rows():
    statement, _ = normalize_financials(RAW_FINANCIALS, "en")
    roles = [classify_row(r) for r in statement.pnl]

    assert roles == ["revenue", "cogs", "gross_profit", "gross_margin_pct", "opex", "ebitda", "ebitda_margin_pct"]
    revenue, cogs, gross, gm, opex, ebitda, em = statement.pnl
    assert revenue.values == (12500.0, 20000.0, 30000.0, 40000.0, 50000.0)
    assert opex.values == (4000.0, 5000.0, 0.0, 0.0, 0.0)
    assert gross.values[0] == 7500.0
    assert gm.values[0] == 60.0
    assert gm.fmt == "percent"
    assert ebitda.values[0] == 3500.0
    assert em.values[0] == 28.0
    assert statement.cashflow[0].values[0] == -1200.0
    assert statement.total_use_of_funds == 40000.0
    assert statement.assumptions[0].label == "Prix moyen"


def test_missing_mandatory_rows_are_inserted_in_order():
    statement, _ = normalize_financials({"pnl": [{"label": "Sales", "y1": 100}]}, "fr")
    roles = [classify_row(r) for r in statement.pnl]

    assert roles.index("revenue") < roles.index("cogs") < roles.index("opex")
    cogs = statement.pnl[roles.index("cogs")]
    assert cogs.label == "Coût des ventes (COGS)"
    assert cogs.values == (0.0,) * 5


def test_zero_revenue_uses_fallback_with_positive_revenue():
    statement, degraded = normalize_financials({"pnl": [{"label": "Revenue", "y1": 0}]}, "en", {"country": "Kenya"})

    assert degraded
    revenue = statement.pnl[0]
    assert classify_row(revenue) == "revenue"
    assert any(v > 0 for v in revenue.values)


def test_fallback_model_shape():
    raw = fallback_financials("en", {}, "EUR")
    assert raw["currency"] == "EUR"
    revenue = raw["pnl"][0]
    assert revenue["Y1"] == 120000.0
    assert raw["pnl"][1]["Y1"] == pytest.approx(120000 * 0.45)


def test_margins_are_zero_when_revenue_is_not_positive():
    statement, _ = normalize_financials(
        {"pnl": [{"label": "Revenue", "y1": 1000, "y2": 0}, {"label": "COGS", "y1": 500, "y2": 100}]}, "en"
    )
    gm = next(r for r in statement.pnl if classify_row(r) == "gross_margin_pct")
    assert gm.values[0] == 50.0
    assert gm.values[1] == 0.0


def test_financials_normalization_is_idempotent():
    once, _ = normalize_financials(RAW_FINANCIALS, "en")
    twice, degraded = normalize_financials(once.to_dict(), "en")

    assert not degraded
    assert twice == once


def test_financials_survive_json_and_extraction():
    table, _ = normalize_table(TableKind.FINANCIAL_STATEMENT, RAW_FINANCIALS, "fr", {})
    text = "Voici le tableau :\n```json\n" + json.dumps(table.to_dict(), ensure_ascii=False) + "\n```"
    again, degraded = normalize_table(TableKind.FINANCIAL_STATEMENT, extract_object(text), "fr", {})

    assert not degraded
    assert again == table


# ---------------------------------------------------------------------------
# Matrices and grids
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "influence, interest, expected",
    [
        ("high", "high", "manage_closely"),
        ("high", "medium", "keep_satisfied"),
        ("low", "high", "keep_informed"),
        ("medium", "medium", "monitor"),
    ],
)
def test_stakeholder_quadrant(influence, interest, expected):
    assert stakeholder_quadrant(influence, interest) == expected


def test_stakeholders_from_french_keys():
    raw = {"parties_prenantes": [
        {"nom": "Ministère", "intérêt": "Moyen", "pouvoir": "Élevé", "rôle": "Tutelle"},
        {"nom": "", "intérêt": "élevé"},
    ]}
    matrix, degraded = normalize_stakeholders(raw, "fr")

    assert not degraded
    assert len(matrix.stakeholders) == 1
    s = matrix.stakeholders[0]
    assert (s.interest, s.influence, s.quadrant) == ("medium", "high", "keep_satisfied")


@pytest.mark.parametrize(
    "probability, impact, score, level",
    [("high", "high", 9, "high"), ("medium", "high", 6, "high"), ("medium", "medium", 4, "medium"),
     ("low", "high", 3, "medium"), ("low", "medium", 2, "low")],
)
def test_risk_score(probability, impact, score, level):
    assert risk_score(probability, impact) == (score, level)


def test_risks_accept_bare_list_and_unknown_levels():
    matrix, degraded = normalize_risks([{"risque": "Inflation", "probabilité": "??", "impact": "forte"}], "fr")
    assert not degraded
    risk = matrix.risks[0]
    assert (risk.probability, risk.impact, risk.score, risk.level) == ("medium", "high", 6, "high")


@pytest.mark.parametrize("schema", list(TableKind))
def test_empty_input_falls_back_for_every_schema(schema):
    table, degraded = normalize_table(schema, {}, "en", {"product": "Solar kits"})
    assert degraded
    assert table.kind == schema
    assert table.to_dict()


@pytest.mark.parametrize("schema", list(TableKind))
def test_failed_extraction_is_always_degraded(schema):
    _, degraded = normalize_table(schema, None, "fr", {})
    assert degraded


def test_swot_and_canvas_keep_model_content():
    swot, degraded = normalize_table(TableKind.SWOT_MATRIX, {"forces": "- Team\n- Brand", "menaces": ["Prices"]}, "fr")
    assert not degraded
    assert swot.strengths == ("Team", "Brand")
    assert swot.threats == ("Prices",)

    canvas, degraded = normalize_table(TableKind.BUSINESS_CANVAS, {"canaux": ["Retail"]}, "fr")
    assert not degraded
    assert canvas.channels == ("Retail",)
    assert canvas.key_partners == ()


@pytest.mark.parametrize("schema", list(TableKind))
def test_normalizing_a_table_dict_again_changes_nothing(schema):
    context = {"product": "Solar kits"}
    table, _ = normalize_table(schema, None, "en", context)
    again, degraded = normalize_table(schema, table.to_dict(), "en", context)

    assert not degraded
    assert again == table


def test_row_format_is_restricted_to_known_formats():
    statement, _ = normalize_financials({"pnl": [
        {"label": "Revenue", "y1": 1000},
        {"label": "Share of exports", "format": "PERCENT", "y1": 12.5},
        {"label": "Units", "format": "pieces", "y1": 40},
    ]}, "en")
    formats = {r.label: r.fmt for r in statement.pnl}

    assert formats["Share of exports"] == "percent"
    assert formats["Units"] == "money"


# ---------------------------------------------------------------------------
# Donor proposal tables
# ---------------------------------------------------------------------------

def test_logframe_from_french_keys():
    raw = {
        "objectif_global": {"enonce": "Réduire la malnutrition infantile", "indicateurs": [
            {"nom": "Taux de malnutrition", "valeur_de_reference": "18%", "cible": "12%",
             "moyens_de_verification": "Enquête SMART"},
        ]},
        "effets": [
            {"enonce": "Les ménages diversifient leur alimentation", "hypotheses": "- Marchés accessibles",
             "produits": ["Jardins potagers installés", {"enonce": ""}]},
            {"enonce": ""},
        ],
    }
    frame, degraded = normalize_logframe(raw, "fr")

    assert not degraded
    assert frame.impact == "Réduire la malnutrition infantile"
    indicator = frame.impact_indicators[0]
    assert (indicator.baseline, indicator.target, indicator.means_of_verification) == ("18%", "12%", "Enquête SMART")
    assert len(frame.outcomes) == 1
    outcome = frame.outcomes[0]
    assert outcome.assumptions == ("Marchés accessibles",)
    assert [o.statement for o in outcome.outputs] == ["Jardins potagers installés"]


def test_logframe_without_results_falls_back():
    frame, degraded = normalize_logframe({"impact": {"statement": ""}}, "en", {"overall_goal": "Clean water for all"})
    assert degraded
    assert frame.impact == "Clean water for all"
    assert frame.outcomes


def test_me_plan_reads_owner_as_responsible():
    plan, degraded = normalize_me_plan({"cadre_de_suivi": [
        {"indicateur": "Ménages formés", "cible": "500", "responsable": "Chargé S&E", "source": "Registres"},
    ]}, "fr")

    assert not degraded
    row = plan.me_framework[0]
    assert (row.indicator, row.target, row.responsible, row.data_source) == (
        "Ménages formés", "500", "Chargé S&E", "Registres",
    )
    assert plan.evaluations == ()


def test_sdg_alignment_accepts_bare_targets():
    alignment, degraded = normalize_sdg_alignment(
        {"odd": [{"sdg": "ODD 6", "cibles": ["6.1", "6.2"], "contribution": "Forages"}, {"sdg": ""}]}, "fr"
    )
    assert not degraded
    assert len(alignment.sdgs) == 1
    goal = alignment.sdgs[0]
    assert [t.target for t in goal.targets] == ["6.1", "6.2"]
    assert {t.contribution for t in goal.targets} == {"Forages"}


def test_budget_totals_are_derived():
    raw = {
        "devise": "eur",
        "budget_par_categorie": [
            {"categorie": "Personnel", "sous_total": 999, "lignes": [
                {"designation": "Coordinateur", "quantite": "12", "cout_unitaire": "1 500", "cout_total": 1},
                {"designation": "Comptable", "total": "6 000"},
            ]},
            {"categorie": "Audit", "sous_total": "2 500"},
        ],
        "couts_indirects": {"taux": 0.07, "notes": "Frais de siège"},
        "by_activity": [{"activity": "Formation", "costs": [{"line_item": "Salle", "qty": 4, "unit_cost": 250}]}],
    }
    budget, degraded = normalize_budget(raw, "fr")

    assert not degraded
    assert budget.currency == "EUR"
    personnel = budget.categories[0]
    assert [line.total_cost for line in personnel.items] == [18000.0, 6000.0]
    assert personnel.total == 24000.0
    assert budget.categories[1].total == 2500.0
    assert budget.direct_total == 26500.0
    assert budget.indirect_rate == 7.0
    assert budget.indirect_total == 1855.0
    assert budget.grand_total == 28355.0
    assert budget.by_activity[0].amount == 1000.0


def test_budget_without_amounts_falls_back():
    budget, degraded = normalize_budget({"by_category": [{"category": "Personnel"}]}, "en", {"duration_months": 24})
    assert degraded
    assert budget.direct_total > 0
    assert budget.grand_total == round(budget.direct_total + budget.indirect_total, 2)
    assert budget.indirect_rate == 7


def test_workplan_months_are_clamped():
    plan, degraded = normalize_workplan({
        "duree": 6,
        "activites": [
            {"activite": "Diagnostic", "debut": 0, "fin": 2},
            {"activite": "Construction", "debut": "M3", "fin": 1},
            {"activite": "Suivi", "debut": 4, "fin": 500},
            {"activite": ""},
        ],
    }, "fr")

    assert not degraded
    assert [(a.start_month, a.end_month) for a in plan.activities] == [(1, 2), (3, 3), (4, 120)]
    assert plan.duration_months == 120


def test_workplan_fallback_follows_requested_duration():
    plan, degraded = normalize_workplan({}, "en", {"duration_months": "36"})
    assert degraded
    assert plan.duration_months == 36
    assert plan.activities[-1].end_month == 36
    assert all(1 <= a.start_month <= a.end_month <= 36 for a in plan.activities)
