"""
Coerce loosely-shaped model JSON into canonical typed tables.

Models answer in French or English, rename fields, write numbers as
"12,500.00" or "8.000,00", use "year 1" instead of "Y1" and sometimes return
nothing useful at all.  Every normalizer here:

  1. maps field names through one alias table (``canonicalize_keys``),
  2. coerces values (numbers, period keys, low/medium/high levels, lists),
  3. inserts mandatory rows, then checks for degenerate content and swaps in
     deterministic synthetic content when needed,
  4. computes derived rows / fields.

The result is idempotent: normalizing ``table.to_dict()`` gives back an
equal table.

Public API
----------
parse_number(value)                                  -> float
normalize_year_key(key)                              -> Optional[str]
to_list(value)                                       -> List[str]
canonicalize_keys(obj)                               -> Dict[str, Any]
normalize_financials(raw, lang, context)             -> (FinancialStatement, degraded)
normalize_canvas / normalize_swot / normalize_kpi_calendar /
normalize_stakeholders / normalize_risks /
normalize_logframe / normalize_me_plan /
normalize_sdg_alignment / normalize_workplan       -> (table, degraded)
normalize_budget(raw, lang, context)                 -> (Budget, degraded)
normalize_table(schema, raw, lang, context)          -> (TypedTable, degraded)
"""
from __future__ import annotations

import dataclasses
import logging
import math
import re
import unicodedata
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from folio.models.document import (
    CANVAS_FIELDS,
    PERIODS,
    Assumption,
    BreakEven,
    Budget,
    BudgetActivity,
    BudgetCategory,
    BudgetLine,
    BusinessCanvas,
    Evaluation,
    FinancialRow,
    FinancialStatement,
    FundAllocation,
    Indicator,
    Kpi,
    KpiCalendar,
    LogFrame,
    LogFrameOutcome,
    LogFrameOutput,
    MeIndicator,
    MePlan,
    Milestone,
    ReportingItem,
    Risk,
    RiskMatrix,
    Scenario,
    SdgAlignment,
    SdgGoal,
    SdgTarget,
    Stakeholder,
    StakeholderMatrix,
    SwotMatrix,
    TableKind,
    TypedTable,
    Workplan,
    WorkplanActivity,
)
from folio.utils.helpers import safe_divide, safe_enum, truncate_text

logger = logging.getLogger(__name__)

Context = Mapping[str, Any]


# ---------------------------------------------------------------------------
# Field alias table (canonical name -> accepted spellings)
# ---------------------------------------------------------------------------

FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    # Business model canvas
    "key_partners": ("partenaires_cles", "partners", "partenaires"),
    "key_activities": ("activites_cles", "activities"),
    "key_resources": ("ressources_cles", "resources"),
    "value_propositions": ("propositions_de_valeur", "value_proposition", "proposition_de_valeur"),
    "customer_relationships": ("relations_clients", "relation_client"),
    "channels": ("canaux",),
    "customer_segments": ("segments_clients", "segments"),
    "cost_structure": ("structure_de_couts", "costs", "couts"),
    "revenue_streams": ("sources_de_revenus", "revenus"),
    # SWOT
    "strengths": ("forces",),
    "weaknesses": ("faiblesses",),
    "opportunities": ("opportunites",),
    "threats": ("menaces",),
    "interpretation": ("analyse", "analysis", "synthese"),
    # KPI calendar
    "calendar": ("calendrier", "timeline", "chronogramme"),
    "period": ("periode",),
    "milestones": ("jalons",),
    "deliverables": ("livrables",),
    "owner": ("responsable",),
    "kpis": ("indicateurs",),
    "kpi": ("indicateur",),
    "target_12m": ("cible_12m", "target", "cible"),
    "frequency": ("frequence",),
    # Stakeholders
    "stakeholders": ("parties_prenantes", "acteurs"),
    "name": ("nom",),
    "interest": ("interet",),
    "influence": ("pouvoir", "power"),
    "engagement_strategy": ("strategie_engagement", "strategie_d_engagement", "engagement"),
    # Risks
    "risks": ("risques",),
    "risk": ("risque",),
    "category": ("categorie",),
    "probability": ("probabilite", "likelihood", "vraisemblance"),
    "mitigation": ("attenuation", "mesures_d_attenuation", "mesures"),
    # Financials
    "currency": ("devise", "monnaie"),
    "assumptions": ("hypotheses",),
    "revenue_drivers": ("drivers", "moteurs_de_revenus", "inducteurs"),
    "pnl": ("p_l", "p&l", "income_statement", "compte_de_resultat", "profit_and_loss"),
    "cashflow": ("cash_flow", "flux_de_tresorerie", "tresorerie"),
    "balance_sheet": ("bilan",),
    "break_even": ("point_mort", "seuil_de_rentabilite", "breakeven"),
    "use_of_funds": ("utilisation_des_fonds", "emploi_des_fonds"),
    "scenarios": (),
    "label": ("libelle", "poste", "item", "line"),
    "value": ("valeur",),
    "amount": ("montant",),
    "notes": ("commentaire", "commentaires"),
    "metric": ("metrique", "unite"),
    "estimate": ("estimation",),
    "explanation": ("explication",),
    "format": ("__format",),
    # Logical framework
    "impact": ("objectif_global",),
    "statement": ("enonce", "intitule"),
    "outcomes": ("effets", "resultats", "resultats_attendus", "results"),
    "outputs": ("produits", "extrants"),
    "baseline": ("situation_de_reference", "valeur_de_reference", "reference"),
    "means_of_verification": ("moyens_de_verification", "sources_de_verification", "source_of_verification"),
    # Monitoring & evaluation
    "me_framework": ("cadre_de_suivi", "monitoring_framework", "suivi"),
    "evaluations": ("evaluation",),
    "reporting": ("rapportage", "rapports", "reports"),
    "timing": ("moment", "echeance"),
    "purpose": ("objectif", "but"),
    "deliverable": ("livrable", "rapport"),
    "audience": ("destinataires", "public"),
    "data_source": ("source", "source_des_donnees", "sources_de_donnees"),
    "collection_method": ("methode_de_collecte", "methode", "method"),
    "disaggregation": ("desagregation", "ventilation"),
    # SDG alignment
    "sdgs": ("odd", "objectifs_de_developpement_durable"),
    "targets": ("cibles",),
    "project_indicators": ("indicateurs_du_projet", "indicateurs_projet"),
    # Budget
    "by_category": ("budget_par_categorie", "par_categorie", "categories"),
    "items": ("lignes", "lines", "postes"),
    "category_total": ("total_categorie", "sous_total", "subtotal"),
    "line_item": ("ligne", "designation", "rubrique"),
    "qty": ("quantity", "quantite", "qte"),
    "unit_cost": ("cout_unitaire", "prix_unitaire"),
    "total_cost": ("cout_total", "total"),
    "by_activity": ("budget_par_activite", "par_activite"),
    "indirect_costs": ("couts_indirects", "frais_indirects"),
    "rate": ("taux",),
    # Workplan
    "activity": ("activite", "tache", "task"),
    "duration_months": ("duree_mois", "duree", "duration"),
    "component": ("composante", "volet"),
    "start_month": ("mois_debut", "debut", "start"),
    "end_month": ("mois_fin", "fin", "end"),
}


def _canon_key(key: Any) -> str:
    text = unicodedata.normalize("NFKD", str(key)).encode("ascii", "ignore").decode("ascii")
    text = text.strip().lower()
    return re.sub(r"[\s\-'’]+", "_", text)


_ALIAS_INDEX: Dict[str, str] = {}
for _canonical, _aliases in FIELD_ALIASES.items():
    _ALIAS_INDEX[_canonical] = _canonical
    for _alias in _aliases:
        _ALIAS_INDEX[_canon_key(_alias)] = _canonical


def canonicalize_keys(obj: Any) -> Dict[str, Any]:
    """
    Return a copy of *obj* with every key mapped to its canonical name.

    Unknown keys are kept (in canonical spelling).  When two spellings map to
    the same field the first non-empty value wins.  Non-dicts become ``{}``.
    """
    if not isinstance(obj, dict):
        return {}
    out: Dict[str, Any] = {}
    for key, value in obj.items():
        ck = _canon_key(key)
        name = _ALIAS_INDEX.get(ck, ck)
        if name not in out or _is_blank(out[name]):
            out[name] = value
    return out


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


# ---------------------------------------------------------------------------
# Scalar coercion
# ---------------------------------------------------------------------------

def parse_number(value: Any) -> float:
    """
    Locale-tolerant number parser.

    Keeps digits, separators and the sign.  With both ``,`` and ``.`` present
    the one appearing last is the decimal separator; a separator occurring
    more than once is a thousands separator; a lone comma followed by exactly
    three digits is a thousands separator.  Anything unparsable is 0.
    """
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0

    text = str(value if value is not None else "").strip()
    if not text:
        return 0.0

    # The sign belongs to the first numeric token: "USD -500", "-500 USD", "(500)"
    first = re.search(r"[\d.,]*\d", text)
    prefix = text[: first.start()].rstrip() if first else ""
    negative = prefix.endswith(("-", "−")) or (text.startswith("(") and text.endswith(")"))
    cleaned = re.sub(r"[^\d,.]", "", text)
    if not re.search(r"\d", cleaned):
        return 0.0

    has_comma = "," in cleaned
    has_dot = "." in cleaned
    if has_comma and has_dot:
        decimal = "," if cleaned.rfind(",") > cleaned.rfind(".") else "."
        thousands = "." if decimal == "," else ","
        cleaned = cleaned.replace(thousands, "").replace(decimal, ".")
    elif has_comma or has_dot:
        sep = "," if has_comma else "."
        if cleaned.count(sep) > 1:
            cleaned = cleaned.replace(sep, "")
        elif sep == "," and re.search(r",\d{3}$", cleaned):
            cleaned = cleaned.replace(",", "")
        else:
            cleaned = cleaned.replace(sep, ".")

    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return -number if negative else number


_YEAR_KEY_RE = re.compile(r"^(?:y|yr|year|an|annee)\s*_?\s*([1-9])(?!\d)")
_BARE_YEAR_RE = re.compile(r"^([1-9])$")


def normalize_year_key(key: Any) -> Optional[str]:
    """Map ``y1``, ``Y 1``, ``year1``, ``Year 1``, ``1``, ``y1:`` to ``Y1``; else ``None``."""
    text = unicodedata.normalize("NFKD", str(key or "")).encode("ascii", "ignore").decode("ascii")
    text = text.strip().lower()
    if not text:
        return None
    m = _BARE_YEAR_RE.match(text) or _YEAR_KEY_RE.match(text)
    return f"Y{m.group(1)}" if m else None


def to_list(value: Any) -> List[str]:
    """Coerce a list, or a newline / bullet separated string, into clean strings."""
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            if isinstance(item, dict):
                item = " - ".join(str(v).strip() for v in item.values() if str(v).strip())
            text = _text(item)
            if text:
                items.append(text)
        return items
    if isinstance(value, str):
        lines = [re.sub(r"^\s*(?:[-*•]|\d+[.)])\s*", "", line) for line in value.splitlines()]
        return [line.strip() for line in lines if line.strip()]
    return []


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "; ".join(t for t in (_text(v) for v in value) if t)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


_LEVELS: Dict[str, str] = {
    "low": "low", "faible": "low", "bas": "low", "basse": "low", "l": "low",
    "medium": "medium", "moyen": "medium", "moyenne": "medium", "modere": "medium",
    "moderate": "medium", "m": "medium",
    "high": "high", "eleve": "high", "elevee": "high", "haut": "high", "haute": "high",
    "fort": "high", "forte": "high", "h": "high",
}
_LEVEL_RANK = {"low": 1, "medium": 2, "high": 3}


def _level(value: Any, default: str = "medium") -> str:
    key = _canon_key(_text(value))
    return _LEVELS.get(key, default)


def _tr(lang: str, fr: str, en: str) -> str:
    return en if lang == "en" else fr


# ---------------------------------------------------------------------------
# Financial statement
# ---------------------------------------------------------------------------

_ROW_FORMATS = frozenset({"money", "number", "percent"})

ROW_LABELS: Dict[str, Dict[str, str]] = {
    "revenue": {"en": "Revenue", "fr": "Chiffre d'affaires"},
    "cogs": {"en": "COGS", "fr": "Coût des ventes (COGS)"},
    "opex": {"en": "OPEX", "fr": "Charges d'exploitation (OPEX)"},
    "gross_profit": {"en": "Gross Profit", "fr": "Marge brute"},
    "ebitda": {"en": "EBITDA", "fr": "EBITDA"},
    "gross_margin_pct": {"en": "Gross Margin %", "fr": "Marge brute %"},
    "ebitda_margin_pct": {"en": "EBITDA Margin %", "fr": "Marge d'EBITDA %"},
}

# Checked in order; the first match classifies an amount row
_AMOUNT_ROW_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    ("gross_profit", re.compile(r"gross\s*(profit|margin)|marge\s*brute|benefice\s*brut")),
    ("ebitda", re.compile(r"ebitda|\bebe\b|excedent\s*brut|operating\s*(profit|income)")),
    ("cogs", re.compile(
        r"\bcogs\b|cost\s*of\s*(goods|sales|revenue)|cout[s]?\s*des\s*(ventes|marchandises|biens)"
        r"|cout\s*de\s*revient|achats\s*consommes|direct\s*costs"
    )),
    ("opex", re.compile(
        r"\bopex\b|operating\s*(expenses|costs)|charges\s*d\s*exploitation|frais\s*generaux"
        r"|depenses\s*d\s*exploitation|overheads?"
    )),
    ("revenue", re.compile(r"revenue|\bsales\b|turnover|ventes|chiffre|recettes|\bca\b")),
)
_PCT_ROW_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    ("gross_margin_pct", re.compile(r"gross|brute?")),
    ("ebitda_margin_pct", re.compile(r"ebitda|\bebe\b|operating|exploitation")),
)


def _label_key(label: str) -> str:
    text = unicodedata.normalize("NFKD", label).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9%&]+", " ", text.lower()).strip()


def classify_row(row: FinancialRow) -> Optional[str]:
    """Return the canonical P&L role of *row* (``revenue``, ``cogs``...), or ``None``."""
    key = _label_key(row.label)
    if row.fmt == "percent" or "%" in key:
        for role, pattern in _PCT_ROW_PATTERNS:
            if pattern.search(key):
                return role
        return None
    for role, pattern in _AMOUNT_ROW_PATTERNS:
        if pattern.search(key):
            return role
    return None


def _find_role(rows: Sequence[FinancialRow], role: str) -> int:
    for i, row in enumerate(rows):
        if classify_row(row) == role:
            return i
    return -1


def _normalize_row(raw: Any, default_fmt: str) -> Optional[FinancialRow]:
    if not isinstance(raw, dict):
        return None
    row = canonicalize_keys(raw)
    label = _text(row.get("label"))
    if not label:
        return None
    fmt = safe_enum(row.get("format"), _ROW_FORMATS, default_fmt)

    values = [0.0] * len(PERIODS)
    positional = row.get("values")
    if isinstance(positional, (list, tuple)):
        for i, v in enumerate(positional[: len(PERIODS)]):
            values[i] = parse_number(v)
    for key, value in raw.items():
        period = normalize_year_key(key)
        if period in PERIODS:
            values[PERIODS.index(period)] = parse_number(value)
    return FinancialRow(label=label, values=tuple(values), fmt=fmt)


def _normalize_rows(raw: Any, default_fmt: str) -> List[FinancialRow]:
    if not isinstance(raw, list):
        return []
    return [r for r in (_normalize_row(item, default_fmt) for item in raw) if r is not None]


def _combine(a: FinancialRow, b: FinancialRow, fn: Callable[[float, float], float]) -> Tuple[float, ...]:
    return tuple(round(fn(a.value(i), b.value(i)), 2) for i in range(len(PERIODS)))


def _ensure_pnl(rows: List[FinancialRow], lang: str) -> List[FinancialRow]:
    """Insert missing Revenue, COGS and OPEX rows (zero-filled) in P&L order."""
    zeros = tuple(0.0 for _ in PERIODS)
    anchor = -1
    for role in ("revenue", "cogs", "opex"):
        idx = _find_role(rows, role)
        if idx == -1:
            idx = anchor + 1
            rows.insert(idx, FinancialRow(ROW_LABELS[role][lang], zeros, "money"))
        anchor = idx
    return rows


def _add_derived_rows(rows: List[FinancialRow], lang: str) -> List[FinancialRow]:
    """Gross profit, EBITDA and their margins, each inserted only when absent."""
    def row(role: str) -> FinancialRow:
        return rows[_find_role(rows, role)]

    if _find_role(rows, "gross_profit") == -1:
        values = _combine(row("revenue"), row("cogs"), lambda r, c: r - c)
        rows.insert(_find_role(rows, "cogs") + 1, FinancialRow(ROW_LABELS["gross_profit"][lang], values, "money"))

    if _find_role(rows, "ebitda") == -1:
        values = _combine(row("gross_profit"), row("opex"), lambda g, o: g - o)
        rows.insert(_find_role(rows, "opex") + 1, FinancialRow(ROW_LABELS["ebitda"][lang], values, "money"))

    for pct_role, base_role in (("gross_margin_pct", "gross_profit"), ("ebitda_margin_pct", "ebitda")):
        if _find_role(rows, pct_role) == -1:
            values = _combine(row(base_role), row("revenue"), lambda x, r: safe_divide(x, r) * 100 if r > 0 else 0.0)
            rows.insert(_find_role(rows, base_role) + 1, FinancialRow(ROW_LABELS[pct_role][lang], values, "percent"))
    return rows


def _build_statement(fin: Dict[str, Any], lang: str) -> FinancialStatement:
    currency = _text(fin.get("currency")).upper() or "USD"
    pnl = _ensure_pnl(_normalize_rows(fin.get("pnl"), "money"), lang)

    be = canonicalize_keys(fin.get("break_even"))
    break_even = BreakEven(
        metric=_text(be.get("metric")) or _tr(lang, "mois", "months"),
        estimate=_text(be.get("estimate")),
        explanation=_text(be.get("explanation")),
    )

    assumptions = []
    for item in fin.get("assumptions") or []:
        a = canonicalize_keys(item)
        if _text(a.get("label")):
            assumptions.append(Assumption(_text(a.get("label")), _text(a.get("value"))))

    funds = []
    for item in fin.get("use_of_funds") or []:
        u = canonicalize_keys(item)
        if _text(u.get("label")):
            funds.append(FundAllocation(_text(u.get("label")), parse_number(u.get("amount")), _text(u.get("notes"))))

    scenarios = []
    for item in fin.get("scenarios") or []:
        s = canonicalize_keys(item)
        name = _text(s.get("name")) or _text(s.get("label"))
        if name:
            scenarios.append(Scenario(name, _text(s.get("note")) or _text(s.get("notes"))))

    return FinancialStatement(
        currency=currency,
        periods=PERIODS,
        assumptions=tuple(assumptions),
        revenue_drivers=tuple(_normalize_rows(fin.get("revenue_drivers"), "number")),
        pnl=tuple(pnl),
        cashflow=tuple(_normalize_rows(fin.get("cashflow"), "money")),
        balance_sheet=tuple(_normalize_rows(fin.get("balance_sheet"), "money")),
        break_even=break_even,
        use_of_funds=tuple(funds),
        scenarios=tuple(scenarios),
    )


def _with_derived(statement: FinancialStatement, lang: str) -> FinancialStatement:
    return dataclasses.replace(statement, pnl=tuple(_add_derived_rows(list(statement.pnl), lang)))


def _has_revenue(statement: FinancialStatement) -> bool:
    idx = _find_role(statement.pnl, "revenue")
    return idx != -1 and any(v > 0 for v in statement.pnl[idx].values)


def fallback_financials(lang: str, context: Context, currency: str = "USD") -> Dict[str, Any]:
    """Conservative synthetic five-year model: fixed growth, COGS 45 %, OPEX 30 %."""
    base_revenue = 120000
    growth = (1, 1.35, 1.7, 2.05, 2.45)
    revenue = [round(base_revenue * g) for g in growth]
    cogs = [round(r * 0.45) for r in revenue]
    opex = [round(r * 0.30) for r in revenue]
    capex = [35000, 12000, 8000, 8000, 8000]
    financing = [60000, 0, 0, 0, 0]
    operating = [r - c - o for r, c, o in zip(revenue, cogs, opex)]

    def row(label: str, values: Sequence[float], fmt: str = "money") -> Dict[str, Any]:
        out: Dict[str, Any] = {"label": label, "format": fmt}
        out.update({p: float(v) for p, v in zip(PERIODS, values)})
        return out

    return {
        "currency": currency,
        "assumptions": [
            {"label": _tr(lang, "Base revenus Y1", "Base revenue Y1"), "value": f"{base_revenue} {currency}"},
            {"label": _tr(lang, "COGS (% revenus)", "COGS (% of revenue)"), "value": "45%"},
            {"label": _tr(lang, "OPEX (% revenus)", "OPEX (% of revenue)"), "value": "30%"},
            {"label": _tr(lang, "Croissance", "Growth"), "value": _tr(lang, "prudente (montée en charge)", "conservative (ramp-up)")},
            {"label": _tr(lang, "CAPEX initial", "Initial CAPEX"), "value": f"{capex[0]} {currency}"},
            {"label": _tr(lang, "Contexte", "Context"), "value": _text(context.get("country")) or "—"},
        ],
        "revenue_drivers": [
            row(_tr(lang, "Volumes / ventes (index)", "Sales volume (index)"), [100, 135, 170, 205, 245], "number"),
            row(_tr(lang, "Prix moyen (index)", "Average price (index)"), [100, 102, 104, 106, 108], "number"),
        ],
        "pnl": [
            row(ROW_LABELS["revenue"][lang], revenue),
            row(ROW_LABELS["cogs"][lang], cogs),
            row(ROW_LABELS["opex"][lang], opex),
        ],
        "cashflow": [
            row(_tr(lang, "Flux d'exploitation", "Operating cash flow"), operating),
            row(_tr(lang, "Flux d'investissement (CAPEX)", "Investing cash flow (CAPEX)"), [-c for c in capex]),
            row(_tr(lang, "Flux de financement", "Financing cash flow"), financing),
        ],
        "balance_sheet": [
            row(_tr(lang, "Trésorerie", "Cash"), [max(0, op - c + f) for op, c, f in zip(operating, capex, financing)]),
            row(_tr(lang, "Stocks", "Inventory"), [round(r * 0.05) for r in revenue]),
            row(_tr(lang, "Total actif", "Total assets"), [round(r * 0.40) for r in revenue]),
            row(_tr(lang, "Total passif", "Total liabilities"), [round(r * 0.18) for r in revenue]),
            row(_tr(lang, "Capitaux propres", "Equity"), [round(r * 0.22) for r in revenue]),
        ],
        "break_even": {
            "metric": _tr(lang, "mois", "months"),
            "estimate": "18",
            "explanation": _tr(
                lang,
                "Estimation prudente basée sur la montée en charge et la capacité de distribution.",
                "Conservative estimate based on ramp-up and distribution capacity.",
            ),
        },
        "use_of_funds": [
            {"label": _tr(lang, "Équipements & installation", "Equipment & installation"), "amount": 45000,
             "notes": _tr(lang, "Unité de production, hygiène, emballage", "Production unit, hygiene, packaging")},
            {"label": _tr(lang, "Fonds de roulement", "Working capital"), "amount": 15000,
             "notes": _tr(lang, "Stock initial, logistique, distribution", "Initial stock, logistics, distribution")},
        ],
        "scenarios": [
            {"name": "Base", "note": _tr(lang, "Croissance modérée, exécution standard.", "Moderate growth, standard execution.")},
            {"name": _tr(lang, "Optimiste", "Optimistic"), "note": _tr(lang, "Accords B2B rapides et distribution élargie.", "Fast B2B deals and wider distribution.")},
            {"name": _tr(lang, "Prudent", "Conservative"), "note": _tr(lang, "Adoption plus lente et pression sur les coûts.", "Slower adoption and cost pressure.")},
        ],
    }


def normalize_financials(raw: Any, lang: str = "fr", context: Optional[Context] = None) -> Tuple[FinancialStatement, bool]:
    """
    Return ``(statement, degraded)``.

    Mandatory rows are inserted first; a revenue row without any positive
    period triggers the synthetic fallback; derived rows come last.
    """
    lang = "en" if lang == "en" else "fr"
    context = context or {}
    fin = canonicalize_keys(raw)
    statement = _build_statement(fin, lang)
    degraded = False

    if not _has_revenue(statement):
        logger.warning("normalize_financials: revenue is zero in every period, using fallback model")
        statement = _build_statement(fallback_financials(lang, context, statement.currency), lang)
        degraded = True

    return _with_derived(statement, lang), degraded


# ---------------------------------------------------------------------------
# Business model canvas
# ---------------------------------------------------------------------------

def _clip(text: str, limit: int) -> str:
    return truncate_text(text, limit, "…") if text else ""


def fallback_canvas(lang: str, context: Context) -> BusinessCanvas:
    product = _clip(_text(context.get("product")), 140)
    customers = _clip(_text(context.get("customers")), 160)
    model = _clip(_text(context.get("business_model")), 170)
    t = lambda fr, en: _tr(lang, fr, en)  # noqa: E731
    return BusinessCanvas(
        key_partners=(
            t("Fournisseurs & producteurs", "Suppliers & producers"),
            t("Partenaires de distribution", "Distribution partners"),
            t("Autorités & conformité", "Regulators & compliance"),
            t("Partenaires financiers", "Financial partners"),
        ),
        key_activities=(
            t("Production / délivrance du service", "Production / service delivery"),
            t("Contrôle qualité & standards", "Quality control & standards"),
            t("Vente & distribution", "Sales & distribution"),
            t("Marketing & support client", "Marketing & customer support"),
        ),
        key_resources=(
            t("Équipe & savoir-faire", "Team & know-how"),
            t("Infrastructure & équipements", "Facilities & equipment"),
            t("Marque & canaux", "Brand & channels"),
            t("Processus & procédures", "Processes & SOPs"),
        ),
        value_propositions=(
            f"{t('Offre', 'Offering')}: {product}" if product else t("Qualité élevée et livraison fiable", "High-quality, reliable delivery"),
            t("Conformité, traçabilité, constance", "Compliance, traceability and consistency"),
            t("Expérience client et résultats mesurables", "Better customer experience and measurable outcomes"),
        ),
        customer_relationships=(
            t("Contrats B2B & engagements", "B2B contracts & SLAs"),
            t("Support client et boucle de retour", "Customer support and feedback loop"),
            t("Fidélisation & rétention", "Loyalty & retention programs"),
        ),
        channels=(
            t("Retail & distributeurs", "Retail & distributors"),
            t("Vente directe (B2B)", "Direct sales (B2B)"),
            t("Digital & partenariats", "Digital & partnerships"),
        ),
        customer_segments=(
            customers or t("Ménages urbains & acheteurs B2B", "Urban households & B2B buyers"),
            t("Comptes institutionnels", "Institutional accounts"),
        ),
        cost_structure=(
            t("Intrants / matières premières", "Inputs / raw materials"),
            t("Main-d'œuvre & opérations", "Labor & operations"),
            t("Logistique & distribution", "Logistics & distribution"),
            t("Marketing & conformité", "Marketing & compliance"),
        ),
        revenue_streams=(
            model or t("Ventes / contrats", "Product sales / contracts"),
            t("Approvisionnement récurrent B2B", "B2B recurring supply"),
            t("Grossistes / marges revendeurs", "Wholesale / reseller margins"),
        ),
    )


def normalize_canvas(raw: Any, lang: str = "fr", context: Optional[Context] = None) -> Tuple[BusinessCanvas, bool]:
    data = canonicalize_keys(raw)
    canvas = BusinessCanvas(**{name: tuple(to_list(data.get(name))) for name in CANVAS_FIELDS})
    if canvas.is_empty():
        logger.warning("normalize_canvas: every block empty, using fallback canvas")
        return fallback_canvas(lang, context or {}), True
    return canvas, False


# ---------------------------------------------------------------------------
# SWOT
# ---------------------------------------------------------------------------

def fallback_swot(lang: str, context: Context) -> SwotMatrix:
    t = lambda fr, en: _tr(lang, fr, en)  # noqa: E731
    return SwotMatrix(
        strengths=(
            t("Équipe engagée et connaissance du terrain", "Committed team with local knowledge"),
            t("Offre différenciée sur la qualité", "Quality-differentiated offering"),
        ),
        weaknesses=(
            t("Ressources financières limitées au démarrage", "Limited financial resources at launch"),
            t("Notoriété de marque encore faible", "Brand awareness still low"),
        ),
        opportunities=(
            t("Demande croissante sur le marché cible", "Growing demand in the target market"),
            t("Partenariats B2B et institutionnels", "B2B and institutional partnerships"),
        ),
        threats=(
            t("Pression concurrentielle sur les prix", "Competitive price pressure"),
            t("Volatilité des coûts d'approvisionnement", "Supply cost volatility"),
        ),
        interpretation=t(
            "Capitaliser sur les forces pour saisir les opportunités tout en sécurisant le financement.",
            "Leverage strengths to capture opportunities while securing funding.",
        ),
    )


def normalize_swot(raw: Any, lang: str = "fr", context: Optional[Context] = None) -> Tuple[SwotMatrix, bool]:
    data = canonicalize_keys(raw)
    swot = SwotMatrix(
        strengths=tuple(to_list(data.get("strengths"))),
        weaknesses=tuple(to_list(data.get("weaknesses"))),
        opportunities=tuple(to_list(data.get("opportunities"))),
        threats=tuple(to_list(data.get("threats"))),
        interpretation=_text(data.get("interpretation")),
    )
    if swot.is_empty():
        logger.warning("normalize_swot: all quadrants empty, using fallback SWOT")
        return fallback_swot(lang, context or {}), True
    return swot, False


# ---------------------------------------------------------------------------
# KPI calendar
# ---------------------------------------------------------------------------

def fallback_kpi_calendar(lang: str, context: Context) -> KpiCalendar:
    t = lambda fr, en: _tr(lang, fr, en)  # noqa: E731
    return KpiCalendar(
        calendar=(
            Milestone("M1–M3", t("Lancement pilote; Procédures qualité", "Pilot launch; Quality SOPs"),
                      t("Production pilote; Première distribution", "Pilot production; Initial distribution"),
                      t("Opérations", "Operations")),
            Milestone("M4–M6", t("Contrats B2B; Référencement retail", "B2B contracts; Retail onboarding"),
                      t("Volume mensuel stable; Reporting", "Stable monthly volume; Reporting"),
                      t("Ventes", "Sales")),
            Milestone("M7–M12", t("Montée en capacité; Nouveaux canaux", "Scale production; New channels"),
                      t("Trajectoire de rentabilité; Tableau de bord KPIs", "Profitability path; KPI dashboard"),
                      t("Direction", "Management")),
        ),
        kpis=(
            Kpi(t("Chiffre d'affaires mensuel", "Monthly revenue"), t("Ventes totales par mois", "Total sales per month"),
                t(">= cible selon montée en charge", ">= target based on ramp-up"), t("Mensuel", "Monthly"), "Finance"),
            Kpi(t("Marge brute %", "Gross margin %"), t("(CA - COGS) / CA", "(Revenue - COGS) / Revenue"),
                ">= 40%", t("Mensuel", "Monthly"), "Finance"),
            Kpi(t("Livraison à temps", "On-time delivery"), t("% de livraisons à temps", "% deliveries on time"),
                ">= 95%", t("Hebdomadaire", "Weekly"), t("Opérations", "Operations")),
            Kpi(t("Comptes B2B actifs", "Active B2B accounts"), t("Nombre d'acheteurs récurrents", "Number of recurring buyers"),
                "10–20", t("Mensuel", "Monthly"), t("Ventes", "Sales")),
        ),
    )


def normalize_kpi_calendar(raw: Any, lang: str = "fr", context: Optional[Context] = None) -> Tuple[KpiCalendar, bool]:
    data = canonicalize_keys(raw)
    calendar = []
    for item in data.get("calendar") or []:
        m = canonicalize_keys(item)
        period = _text(m.get("period"))
        if period:
            calendar.append(Milestone(period, _text(m.get("milestones")), _text(m.get("deliverables")), _text(m.get("owner"))))
    kpis = []
    for item in data.get("kpis") or []:
        k = canonicalize_keys(item)
        name = _text(k.get("kpi")) or _text(k.get("name"))
        if name:
            kpis.append(Kpi(name, _text(k.get("definition")), _text(k.get("target_12m")), _text(k.get("frequency")), _text(k.get("owner"))))
    if not calendar and not kpis:
        logger.warning("normalize_kpi_calendar: no milestones or KPIs, using fallback calendar")
        return fallback_kpi_calendar(lang, context or {}), True
    return KpiCalendar(tuple(calendar), tuple(kpis)), False


# ---------------------------------------------------------------------------
# Stakeholder matrix
# ---------------------------------------------------------------------------

QUADRANTS: Tuple[str, ...] = ("manage_closely", "keep_satisfied", "keep_informed", "monitor")


def stakeholder_quadrant(influence: str, interest: str) -> str:
    """Power-interest grid placement; only "high" counts as high."""
    powerful = influence == "high"
    interested = interest == "high"
    if powerful and interested:
        return "manage_closely"
    if powerful:
        return "keep_satisfied"
    if interested:
        return "keep_informed"
    return "monitor"


def _stakeholder(name: str, type_: str, interest: str, influence: str, role: str, strategy: str) -> Stakeholder:
    return Stakeholder(name, type_, interest, influence, role, strategy, stakeholder_quadrant(influence, interest))


def fallback_stakeholders(lang: str, context: Context) -> StakeholderMatrix:
    t = lambda fr, en: _tr(lang, fr, en)  # noqa: E731
    return StakeholderMatrix((
        _stakeholder(t("Bénéficiaires directs", "Direct beneficiaries"), "beneficiary", "high", "medium",
                     t("Participent aux activités", "Take part in activities"),
                     t("Consultations régulières et mécanisme de plainte", "Regular consultations and feedback mechanism")),
        _stakeholder(t("Autorités locales", "Local authorities"), "authority", "medium", "high",
                     t("Autorisations et coordination", "Permits and coordination"),
                     t("Réunions de coordination trimestrielles", "Quarterly coordination meetings")),
        _stakeholder(t("Partenaires de mise en œuvre", "Implementing partners"), "partner", "high", "high",
                     t("Exécution des activités", "Deliver activities"),
                     t("Comité de pilotage conjoint", "Joint steering committee")),
        _stakeholder(t("Bailleur", "Donor"), "donor", "high", "high",
                     t("Financement et suivi", "Funding and oversight"),
                     t("Rapports narratifs et financiers", "Narrative and financial reporting")),
        _stakeholder(t("Leaders communautaires", "Community leaders"), "community", "medium", "medium",
                     t("Mobilisation communautaire", "Community mobilisation"),
                     t("Information et implication ponctuelle", "Information and occasional involvement")),
    ))


def normalize_stakeholders(raw: Any, lang: str = "fr", context: Optional[Context] = None) -> Tuple[StakeholderMatrix, bool]:
    data = canonicalize_keys(raw)
    items = data.get("stakeholders")
    if items is None and isinstance(raw, list):
        items = raw
    entries = []
    for item in items or []:
        s = canonicalize_keys(item)
        name = _text(s.get("name"))
        if not name:
            continue
        entries.append(_stakeholder(
            name,
            _text(s.get("type")),
            _level(s.get("interest")),
            _level(s.get("influence")),
            _text(s.get("role")),
            _text(s.get("engagement_strategy")),
        ))
    if not entries:
        logger.warning("normalize_stakeholders: no stakeholders, using fallback matrix")
        return fallback_stakeholders(lang, context or {}), True
    return StakeholderMatrix(tuple(entries)), False


# ---------------------------------------------------------------------------
# Risk matrix
# ---------------------------------------------------------------------------

def risk_score(probability: str, impact: str) -> Tuple[int, str]:
    """Score on a 1–9 grid (rank × rank) and its level."""
    score = _LEVEL_RANK[probability] * _LEVEL_RANK[impact]
    if score >= 6:
        return score, "high"
    if score >= 3:
        return score, "medium"
    return score, "low"


def _risk(risk: str, category: str, probability: str, impact: str, mitigation: str, owner: str) -> Risk:
    score, level = risk_score(probability, impact)
    return Risk(risk, category, probability, impact, mitigation, owner, score, level)


def fallback_risks(lang: str, context: Context) -> RiskMatrix:
    t = lambda fr, en: _tr(lang, fr, en)  # noqa: E731
    return RiskMatrix((
        _risk(t("Retards de mise en œuvre", "Implementation delays"), "operational", "medium", "medium",
              t("Planification détaillée et suivi mensuel", "Detailed planning and monthly tracking"), t("Coordination", "Project manager")),
        _risk(t("Insécurité dans la zone d'intervention", "Insecurity in the target area"), "security", "medium", "high",
              t("Plan de sécurité et accès flexible", "Security plan and flexible access"), t("Responsable sécurité", "Security officer")),
        _risk(t("Mauvaise gestion des fonds", "Misuse of funds"), "fiduciary", "low", "high",
              t("Contrôles internes et audits", "Internal controls and audits"), "Finance"),
        _risk(t("Faible adhésion des bénéficiaires", "Low beneficiary uptake"), "social", "low", "medium",
              t("Sensibilisation et participation communautaire", "Awareness and community participation"), t("Équipe terrain", "Field team")),
    ))


def normalize_risks(raw: Any, lang: str = "fr", context: Optional[Context] = None) -> Tuple[RiskMatrix, bool]:
    data = canonicalize_keys(raw)
    items = data.get("risks")
    if items is None and isinstance(raw, list):
        items = raw
    entries = []
    for item in items or []:
        r = canonicalize_keys(item)
        name = _text(r.get("risk")) or _text(r.get("name"))
        if not name:
            continue
        entries.append(_risk(
            name,
            _text(r.get("category")),
            _level(r.get("probability")),
            _level(r.get("impact")),
            _text(r.get("mitigation")),
            _text(r.get("owner")),
        ))
    if not entries:
        logger.warning("normalize_risks: no risks, using fallback matrix")
        return fallback_risks(lang, context or {}), True
    return RiskMatrix(tuple(entries)), False


def _items(data: Dict[str, Any], *names: str) -> List[Any]:
    """First non-blank list among *names*; a lone dict counts as a one-item list."""
    for name in names:
        value = data.get(name)
        if isinstance(value, dict) and value:
            return [value]
        if isinstance(value, list) and value:
            return value
    return []


# ---------------------------------------------------------------------------
# Logical framework
# ---------------------------------------------------------------------------

def _indicator(raw: Any) -> Optional[Indicator]:
    if isinstance(raw, str):
        return Indicator(raw.strip()) if raw.strip() else None
    i = canonicalize_keys(raw)
    name = _text(i.get("name")) or _text(i.get("indicator")) or _text(i.get("kpi"))
    if not name:
        return None
    return Indicator(name, _text(i.get("baseline")), _text(i.get("target_12m")), _text(i.get("means_of_verification")))


def _indicator_list(data: Dict[str, Any]) -> Tuple[Indicator, ...]:
    found = (_indicator(item) for item in _items(data, "indicators", "kpis"))
    return tuple(i for i in found if i is not None)


def _results_level(raw: Any) -> Dict[str, Any]:
    """A results-chain level given either as a dict or as a bare statement."""
    if isinstance(raw, str):
        return {"statement": raw}
    return canonicalize_keys(raw)


def fallback_logframe(lang: str, context: Context) -> LogFrame:
    t = lambda fr, en: _tr(lang, fr, en)  # noqa: E731
    goal = _clip(_text(context.get("overall_goal")), 220)
    mov = t("Rapports de suivi et enquêtes", "Monitoring reports and surveys")

    def indicator(fr: str, en: str) -> Indicator:
        return Indicator(t(fr, en), t("À établir (enquête de base)", "To be set (baseline survey)"),
                         t("Amélioration mesurable", "Measurable improvement"), mov)

    return LogFrame(
        impact=goal or t("Les conditions de vie des groupes cibles sont durablement améliorées.",
                         "Living conditions of the target groups are sustainably improved."),
        impact_indicators=(indicator("Taux de satisfaction des bénéficiaires", "Beneficiary satisfaction rate"),),
        impact_assumptions=(t("Contexte sécuritaire et politique stable", "Stable security and political context"),),
        outcomes=(
            LogFrameOutcome(
                t("Les bénéficiaires accèdent à des services de qualité.", "Beneficiaries access quality services."),
                (indicator("Nombre de bénéficiaires servis", "Number of beneficiaries served"),),
                (t("Adhésion des communautés", "Community buy-in"),),
                (
                    LogFrameOutput(t("Services mis en place", "Services set up"),
                                   (indicator("Points de service opérationnels", "Operational service points"),)),
                    LogFrameOutput(t("Personnel formé", "Staff trained"),
                                   (indicator("Personnes formées", "People trained"),)),
                ),
            ),
            LogFrameOutcome(
                t("Les capacités locales sont renforcées.", "Local capacities are strengthened."),
                (indicator("Structures locales autonomes", "Self-reliant local structures"),),
                (t("Engagement des autorités locales", "Local authority commitment"),),
                (
                    LogFrameOutput(t("Plans de transfert adoptés", "Handover plans adopted"),
                                   (indicator("Plans signés", "Signed plans"),)),
                ),
            ),
        ),
    )


def normalize_logframe(raw: Any, lang: str = "fr", context: Optional[Context] = None) -> Tuple[LogFrame, bool]:
    data = canonicalize_keys(raw)
    impact = _results_level(data.get("impact"))

    outcomes = []
    for item in _items(data, "outcomes"):
        o = _results_level(item)
        statement = _text(o.get("statement"))
        if not statement:
            continue
        outputs = []
        for out_item in _items(o, "outputs"):
            out = _results_level(out_item)
            if _text(out.get("statement")):
                outputs.append(LogFrameOutput(_text(out.get("statement")), _indicator_list(out)))
        outcomes.append(LogFrameOutcome(
            statement, _indicator_list(o), tuple(to_list(o.get("assumptions"))), tuple(outputs),
        ))

    frame = LogFrame(
        impact=_text(impact.get("statement")),
        impact_indicators=_indicator_list(impact),
        impact_assumptions=tuple(to_list(impact.get("assumptions"))),
        outcomes=tuple(outcomes),
    )
    if not frame.impact and not frame.outcomes:
        logger.warning("normalize_logframe: no impact or outcomes, using fallback logframe")
        return fallback_logframe(lang, context or {}), True
    return frame, False


# ---------------------------------------------------------------------------
# Monitoring & evaluation plan
# ---------------------------------------------------------------------------

def fallback_me_plan(lang: str, context: Context) -> MePlan:
    t = lambda fr, en: _tr(lang, fr, en)  # noqa: E731
    team = t("Chargé S&E", "M&E officer")
    sex_age = t("Sexe, âge", "Sex, age")
    return MePlan(
        me_framework=(
            MeIndicator(t("Bénéficiaires directs atteints", "Direct beneficiaries reached"), "0",
                        t("Selon la cible du projet", "Per project target"), t("Mensuel", "Monthly"),
                        t("Registres d'activités", "Activity registers"), t("Listes de présence", "Attendance lists"),
                        team, sex_age),
            MeIndicator(t("Personnes formées", "People trained"), "0", t("Selon le plan de formation", "Per training plan"),
                        t("Trimestriel", "Quarterly"), t("Rapports de formation", "Training reports"),
                        t("Pré/post tests", "Pre/post tests"), team, sex_age),
            MeIndicator(t("Satisfaction des bénéficiaires", "Beneficiary satisfaction"),
                        t("À établir", "To be set"), ">= 80%", t("Semestriel", "Semiannual"),
                        t("Enquêtes", "Surveys"), t("Questionnaire", "Questionnaire"), team, sex_age),
        ),
        evaluations=(
            Evaluation(t("Enquête de base", "Baseline"), t("Mois 1-2", "Months 1-2"),
                       t("Établir les valeurs de référence", "Set reference values")),
            Evaluation(t("Revue à mi-parcours", "Midterm review"), t("Mi-parcours", "Midpoint"),
                       t("Ajuster la mise en œuvre", "Adjust implementation")),
            Evaluation(t("Évaluation finale", "Endline"), t("Dernier trimestre", "Final quarter"),
                       t("Mesurer les résultats", "Measure results")),
        ),
        reporting=(
            ReportingItem(t("Rapport narratif", "Narrative report"), t("Trimestriel", "Quarterly"), t("Bailleur", "Donor")),
            ReportingItem(t("Rapport financier", "Financial report"), t("Semestriel", "Semiannual"), t("Bailleur", "Donor")),
        ),
    )


def normalize_me_plan(raw: Any, lang: str = "fr", context: Optional[Context] = None) -> Tuple[MePlan, bool]:
    data = canonicalize_keys(raw)
    indicators = []
    for item in _items(data, "me_framework", "indicators", "kpis"):
        m = canonicalize_keys(item)
        name = _text(m.get("indicator")) or _text(m.get("kpi")) or _text(m.get("name"))
        if not name:
            continue
        indicators.append(MeIndicator(
            name,
            _text(m.get("baseline")),
            _text(m.get("target_12m")),
            _text(m.get("frequency")),
            _text(m.get("data_source")),
            _text(m.get("collection_method")),
            _text(m.get("responsible")) or _text(m.get("owner")),
            _text(m.get("disaggregation")),
        ))
    evaluations = []
    for item in _items(data, "evaluations"):
        e = canonicalize_keys(item)
        if _text(e.get("type")):
            evaluations.append(Evaluation(_text(e.get("type")), _text(e.get("timing")), _text(e.get("purpose"))))
    reporting = []
    for item in _items(data, "reporting"):
        r = canonicalize_keys(item)
        if _text(r.get("deliverable")):
            reporting.append(ReportingItem(_text(r.get("deliverable")), _text(r.get("frequency")), _text(r.get("audience"))))

    if not indicators:
        logger.warning("normalize_me_plan: no indicators, using fallback M&E plan")
        return fallback_me_plan(lang, context or {}), True
    return MePlan(tuple(indicators), tuple(evaluations), tuple(reporting)), False


# ---------------------------------------------------------------------------
# SDG alignment
# ---------------------------------------------------------------------------

def fallback_sdg_alignment(lang: str, context: Context) -> SdgAlignment:
    t = lambda fr, en: _tr(lang, fr, en)  # noqa: E731
    return SdgAlignment((
        SdgGoal("SDG 1", (SdgTarget("1.4", t("Accès accru aux services de base", "Wider access to basic services"),
                                    t("Bénéficiaires directs atteints", "Direct beneficiaries reached")),)),
        SdgGoal("SDG 5", (SdgTarget("5.5", t("Participation des femmes aux décisions", "Women's participation in decisions"),
                                    t("Part de femmes dans les comités", "Share of women on committees")),)),
        SdgGoal("SDG 17", (SdgTarget("17.17", t("Partenariats avec les acteurs locaux", "Partnerships with local actors"),
                                     t("Accords de partenariat signés", "Partnership agreements signed")),)),
    ))


def _sdg_targets(goal: Dict[str, Any]) -> Tuple[SdgTarget, ...]:
    contribution = _text(goal.get("contribution"))
    indicators = _text(goal.get("project_indicators")) or _text(goal.get("indicators"))
    targets = []
    raw_targets = goal.get("targets")
    if isinstance(raw_targets, str):
        raw_targets = to_list(raw_targets)
    for item in raw_targets if isinstance(raw_targets, list) else []:
        if isinstance(item, dict):
            tg = canonicalize_keys(item)
            target = _text(tg.get("target_12m")) or _text(tg.get("name"))
            if target or _text(tg.get("contribution")):
                targets.append(SdgTarget(target, _text(tg.get("contribution")), _text(tg.get("project_indicators"))))
        elif _text(item):
            targets.append(SdgTarget(_text(item), contribution, indicators))
    if not targets and contribution:
        targets.append(SdgTarget("", contribution, indicators))
    return tuple(targets)


def normalize_sdg_alignment(raw: Any, lang: str = "fr", context: Optional[Context] = None) -> Tuple[SdgAlignment, bool]:
    data = canonicalize_keys(raw)
    items = _items(data, "sdgs")
    if not items and isinstance(raw, list):
        items = raw
    goals = []
    for item in items:
        g = canonicalize_keys(item) if isinstance(item, dict) else {"sdg": item}
        name = _text(g.get("sdg")) or _text(g.get("name"))
        if name:
            goals.append(SdgGoal(name, _sdg_targets(g)))
    if not goals:
        logger.warning("normalize_sdg_alignment: no goals, using fallback alignment")
        return fallback_sdg_alignment(lang, context or {}), True
    return SdgAlignment(tuple(goals)), False


# ---------------------------------------------------------------------------
# Budget
# ---------------------------------------------------------------------------

def _money(value: float) -> float:
    return round(value, 2)


def _budget_line(raw: Any) -> Optional[BudgetLine]:
    line = canonicalize_keys(raw)
    name = _text(line.get("line_item")) or _text(line.get("label"))
    if not name:
        return None
    qty = parse_number(line.get("qty"))
    unit_cost = parse_number(line.get("unit_cost"))
    if qty > 0 and unit_cost > 0:
        total = _money(qty * unit_cost)
    else:
        total = _money(parse_number(line.get("total_cost")))
    return BudgetLine(name, _text(line.get("unit")) or _text(line.get("metric")), qty, unit_cost, total,
                      _text(line.get("notes")))


def _budget_categories(data: Dict[str, Any]) -> List[BudgetCategory]:
    categories = []
    for item in _items(data, "by_category"):
        c = canonicalize_keys(item)
        name = _text(c.get("category"))
        if not name:
            continue
        lines = tuple(line for line in (_budget_line(i) for i in _items(c, "items")) if line is not None)
        total = _money(sum(line.total_cost for line in lines)) if lines else _money(parse_number(c.get("category_total")))
        categories.append(BudgetCategory(name, lines, total))
    if categories:
        return categories

    # Flat list of lines, each naming its own category
    grouped: Dict[str, List[BudgetLine]] = {}
    for item in _items(data, "items"):
        line = _budget_line(item)
        if line is not None:
            name = _text(canonicalize_keys(item).get("category")) or "—"
            grouped.setdefault(name, []).append(line)
    return [
        BudgetCategory(name, tuple(lines), _money(sum(line.total_cost for line in lines)))
        for name, lines in grouped.items()
    ]


def _activity_amount(raw: Dict[str, Any]) -> float:
    amount = parse_number(raw.get("amount")) or parse_number(raw.get("activity_total"))
    if not amount:
        # "costs" is folded into the canvas alias "cost_structure"
        lines = (_budget_line(i) for i in _items(raw, "cost_structure"))
        amount = sum(line.total_cost for line in lines if line is not None)
    return _money(amount)


def _build_budget(data: Dict[str, Any], currency: str) -> Budget:
    categories = _budget_categories(data)
    activities = []
    for item in _items(data, "by_activity"):
        a = canonicalize_keys(item)
        if _text(a.get("activity")):
            activities.append(BudgetActivity(_text(a.get("activity")), _activity_amount(a)))

    indirect = canonicalize_keys(data.get("indirect_costs"))
    rate = parse_number(indirect.get("rate"))
    if 0 < rate < 1:
        rate = round(rate * 100, 4)
    direct_total = _money(sum(c.total for c in categories))
    indirect_total = _money(direct_total * rate / 100) if rate > 0 else _money(parse_number(indirect.get("amount")))
    return Budget(
        currency=currency,
        categories=tuple(categories),
        by_activity=tuple(activities),
        indirect_rate=rate,
        indirect_notes=_text(indirect.get("notes")),
        direct_total=direct_total,
        indirect_total=indirect_total,
        grand_total=_money(direct_total + indirect_total),
    )


def fallback_budget(lang: str, context: Context, currency: str = "USD") -> Dict[str, Any]:
    """Indicative line-item budget with a 7 % indirect cost rate."""
    t = lambda fr, en: _tr(lang, fr, en)  # noqa: E731
    months = _duration(context) or 12

    def line(item: str, unit: str, qty: float, unit_cost: float) -> Dict[str, Any]:
        return {"line_item": item, "unit": unit, "qty": qty, "unit_cost": unit_cost}

    month = t("mois", "month")
    return {
        "currency": currency,
        "by_category": [
            {"category": t("Personnel", "Personnel"), "items": [
                line(t("Coordinateur de projet", "Project coordinator"), month, months, 1800),
                line(t("Animateurs terrain", "Field facilitators"), month, months * 2, 700),
            ]},
            {"category": t("Équipements", "Equipment"), "items": [
                line(t("Matériel informatique", "IT equipment"), t("lot", "set"), 1, 4500),
            ]},
            {"category": t("Formation", "Training"), "items": [
                line(t("Sessions de formation", "Training sessions"), t("session", "session"), 8, 1200),
            ]},
            {"category": t("Déplacements", "Travel"), "items": [
                line(t("Missions de suivi", "Monitoring visits"), t("mission", "trip"), months, 250),
            ]},
            {"category": t("Suivi-évaluation", "Monitoring & evaluation"), "items": [
                line(t("Enquêtes de base et finale", "Baseline and endline surveys"), t("enquête", "survey"), 2, 3500),
            ]},
        ],
        "indirect_costs": {"rate": 7, "notes": t("Frais de gestion", "Management overheads")},
    }


def normalize_budget(raw: Any, lang: str = "fr", context: Optional[Context] = None) -> Tuple[Budget, bool]:
    """
    Return ``(budget, degraded)``.  Line totals are ``qty * unit_cost`` when
    both are given; a budget whose direct total is not positive falls back.
    """
    context = context or {}
    data = canonicalize_keys(raw)
    currency = _text(data.get("currency")).upper() or "USD"
    budget = _build_budget(data, currency)
    if budget.direct_total <= 0:
        logger.warning("normalize_budget: direct total is zero, using fallback budget")
        return _build_budget(canonicalize_keys(fallback_budget(lang, context, currency)), currency), True
    return budget, False


# ---------------------------------------------------------------------------
# Workplan
# ---------------------------------------------------------------------------

MAX_WORKPLAN_MONTHS = 120


def _month(value: Any, default: int) -> int:
    month = int(parse_number(value))
    if month < 1:
        return default
    return min(month, MAX_WORKPLAN_MONTHS)


def _duration(context: Context) -> int:
    return min(max(int(parse_number(context.get("duration_months"))), 0), MAX_WORKPLAN_MONTHS)


def fallback_workplan(lang: str, context: Context) -> Workplan:
    """Generic phasing stretched over the requested duration (12 months by default)."""
    t = lambda fr, en: _tr(lang, fr, en)  # noqa: E731
    d = max(_duration(context), 6) if _duration(context) else 12

    def at(fraction: float) -> int:
        return max(1, min(d, round(d * fraction)))

    return Workplan(d, (
        WorkplanActivity(t("Démarrage et recrutement", "Inception and recruitment"), t("Gestion", "Management"),
                         1, at(0.1), (t("Équipe en place", "Team in place"),), (t("Rapport de démarrage", "Inception report"),)),
        WorkplanActivity(t("Enquête de base", "Baseline survey"), t("Suivi-évaluation", "M&E"),
                         at(0.1), at(0.2), (t("Données de référence", "Reference data"),), (t("Rapport d'enquête", "Survey report"),)),
        WorkplanActivity(t("Mise en œuvre des activités principales", "Core activity delivery"), t("Opérations", "Operations"),
                         at(0.2), at(0.85), (t("Revue à mi-parcours", "Midterm review"),), (t("Rapports trimestriels", "Quarterly reports"),)),
        WorkplanActivity(t("Renforcement des capacités", "Capacity building"), t("Formation", "Training"),
                         at(0.25), at(0.75), (t("Sessions réalisées", "Sessions held"),), (t("Rapports de formation", "Training reports"),)),
        WorkplanActivity(t("Évaluation finale et clôture", "Final evaluation and closure"), t("Suivi-évaluation", "M&E"),
                         at(0.85), d, (t("Transfert aux partenaires", "Handover to partners"),), (t("Rapport final", "Final report"),)),
    ))


def normalize_workplan(raw: Any, lang: str = "fr", context: Optional[Context] = None) -> Tuple[Workplan, bool]:
    context = context or {}
    data = canonicalize_keys(raw)
    items = _items(data, "key_activities", "activites")
    if not items and isinstance(raw, list):
        items = raw
    activities = []
    for item in items:
        a = canonicalize_keys(item)
        name = _text(a.get("activity")) or _text(a.get("name"))
        if not name:
            continue
        start = _month(a.get("start_month"), 1)
        end = max(start, _month(a.get("end_month"), start))
        activities.append(WorkplanActivity(
            name, _text(a.get("component")), start, end,
            tuple(to_list(a.get("milestones"))), tuple(to_list(a.get("deliverables"))),
        ))
    if not activities:
        logger.warning("normalize_workplan: no activities, using fallback workplan")
        return fallback_workplan(lang, context), True

    duration = _month(data.get("duration_months"), 0) or _duration(context) or 12
    duration = max(duration, max(a.end_month for a in activities))
    return Workplan(duration, tuple(activities)), False


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

_NORMALIZERS: Dict[TableKind, Callable[..., Tuple[TypedTable, bool]]] = {
    TableKind.FINANCIAL_STATEMENT: normalize_financials,
    TableKind.BUSINESS_CANVAS: normalize_canvas,
    TableKind.SWOT_MATRIX: normalize_swot,
    TableKind.KPI_CALENDAR: normalize_kpi_calendar,
    TableKind.STAKEHOLDER_MATRIX: normalize_stakeholders,
    TableKind.RISK_MATRIX: normalize_risks,
    TableKind.LOGFRAME: normalize_logframe,
    TableKind.ME_PLAN: normalize_me_plan,
    TableKind.SDG_ALIGNMENT: normalize_sdg_alignment,
    TableKind.BUDGET: normalize_budget,
    TableKind.WORKPLAN: normalize_workplan,
}


def normalize_table(
    schema: TableKind,
    raw: Optional[Dict[str, Any]],
    lang: str = "fr",
    context: Optional[Context] = None,
) -> Tuple[TypedTable, bool]:
    """
    Normalize *raw* for *schema*.  ``raw=None`` (every retry failed) always
    yields the schema's synthetic content with ``degraded=True``.
    """
    table, degraded = _NORMALIZERS[schema](raw or {}, lang, context or {})
    return table, degraded or raw is None
