"""
Immutable document model produced by the generation pipeline.

Everything a renderer needs lives here: ordered ``SectionResult`` values whose
content is either prose or one of the ``TypedTable`` variants.  Tables are
already normalized when they land in a section (every declared row exists for
every declared period, every matrix entry carries every field, derived rows
are computed), so renderers never patch data.

Every table exposes ``to_dict()`` returning the plain JSON shape that the
normalizer accepts; normalizing that dict again yields an equal table.
"""
from __future__ import annotations

import dataclasses
import enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

PERIODS: Tuple[str, ...] = ("Y1", "Y2", "Y3", "Y4", "Y5")


class SectionKind(str, enum.Enum):
    TEXT = "text"
    STRUCTURED = "structured"


class TableKind(str, enum.Enum):
    FINANCIAL_STATEMENT = "financial_statement"
    STAKEHOLDER_MATRIX = "stakeholder_matrix"
    RISK_MATRIX = "risk_matrix"
    BUSINESS_CANVAS = "business_canvas"
    KPI_CALENDAR = "kpi_calendar"
    SWOT_MATRIX = "swot_matrix"
    LOGFRAME = "logframe"
    ME_PLAN = "me_plan"
    SDG_ALIGNMENT = "sdg_alignment"
    BUDGET = "budget"
    WORKPLAN = "workplan"


# ---------------------------------------------------------------------------
# Per-call values
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class GenerationRequest:
    """One section's worth of input to a generation controller."""

    section_key: str
    kind: SectionKind
    language: str
    title: str = ""
    context: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    schema: Optional[TableKind] = None
    outline: Tuple[str, ...] = ()
    sources_block: str = ""


@dataclasses.dataclass(frozen=True)
class RawAttempt:
    """A single completion response, kept only until it has been judged."""

    text: str
    attempt_index: int


# ---------------------------------------------------------------------------
# Financial statement
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class FinancialRow:
    label: str
    values: Tuple[float, ...]
    fmt: str = "money"  # money | number | percent

    def value(self, index: int) -> float:
        return self.values[index] if 0 <= index < len(self.values) else 0.0

    def to_dict(self, periods: Tuple[str, ...]) -> Dict[str, Any]:
        out: Dict[str, Any] = {"label": self.label, "format": self.fmt}
        for i, period in enumerate(periods):
            out[period] = self.value(i)
        return out


@dataclasses.dataclass(frozen=True)
class Assumption:
    label: str
    value: str


@dataclasses.dataclass(frozen=True)
class BreakEven:
    metric: str = ""
    estimate: str = ""
    explanation: str = ""


@dataclasses.dataclass(frozen=True)
class FundAllocation:
    label: str
    amount: float
    notes: str = ""


@dataclasses.dataclass(frozen=True)
class Scenario:
    name: str
    note: str = ""


@dataclasses.dataclass(frozen=True)
class FinancialStatement:
    """Five-year projections: P&L, cash flow, balance sheet and funding detail."""

    kind: ClassVar[TableKind] = TableKind.FINANCIAL_STATEMENT

    currency: str = "USD"
    periods: Tuple[str, ...] = PERIODS
    assumptions: Tuple[Assumption, ...] = ()
    revenue_drivers: Tuple[FinancialRow, ...] = ()
    pnl: Tuple[FinancialRow, ...] = ()
    cashflow: Tuple[FinancialRow, ...] = ()
    balance_sheet: Tuple[FinancialRow, ...] = ()
    break_even: BreakEven = BreakEven()
    use_of_funds: Tuple[FundAllocation, ...] = ()
    scenarios: Tuple[Scenario, ...] = ()

    @property
    def total_use_of_funds(self) -> float:
        return sum(item.amount for item in self.use_of_funds)

    def to_dict(self) -> Dict[str, Any]:
        def rows(table: Tuple[FinancialRow, ...]) -> List[Dict[str, Any]]:
            return [r.to_dict(self.periods) for r in table]

        return {
            "currency": self.currency,
            "periods": list(self.periods),
            "assumptions": [dataclasses.asdict(a) for a in self.assumptions],
            "revenue_drivers": rows(self.revenue_drivers),
            "pnl": rows(self.pnl),
            "cashflow": rows(self.cashflow),
            "balance_sheet": rows(self.balance_sheet),
            "break_even": dataclasses.asdict(self.break_even),
            "use_of_funds": [dataclasses.asdict(u) for u in self.use_of_funds],
            "scenarios": [dataclasses.asdict(s) for s in self.scenarios],
        }


# ---------------------------------------------------------------------------
# Matrices
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class Stakeholder:
    name: str
    type: str = ""
    interest: str = "medium"
    influence: str = "medium"
    role: str = ""
    engagement_strategy: str = ""
    quadrant: str = "monitor"


@dataclasses.dataclass(frozen=True)
class StakeholderMatrix:
    kind: ClassVar[TableKind] = TableKind.STAKEHOLDER_MATRIX

    stakeholders: Tuple[Stakeholder, ...] = ()

    def in_quadrant(self, quadrant: str) -> Tuple[Stakeholder, ...]:
        return tuple(s for s in self.stakeholders if s.quadrant == quadrant)

    def to_dict(self) -> Dict[str, Any]:
        return {"stakeholders": [dataclasses.asdict(s) for s in self.stakeholders]}


@dataclasses.dataclass(frozen=True)
class Risk:
    risk: str
    category: str = ""
    probability: str = "medium"
    impact: str = "medium"
    mitigation: str = ""
    owner: str = ""
    score: int = 4
    level: str = "medium"


@dataclasses.dataclass(frozen=True)
class RiskMatrix:
    kind: ClassVar[TableKind] = TableKind.RISK_MATRIX

    risks: Tuple[Risk, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"risks": [dataclasses.asdict(r) for r in self.risks]}


CANVAS_FIELDS: Tuple[str, ...] = (
    "key_partners",
    "key_activities",
    "key_resources",
    "value_propositions",
    "customer_relationships",
    "channels",
    "customer_segments",
    "cost_structure",
    "revenue_streams",
)


@dataclasses.dataclass(frozen=True)
class BusinessCanvas:
    kind: ClassVar[TableKind] = TableKind.BUSINESS_CANVAS

    key_partners: Tuple[str, ...] = ()
    key_activities: Tuple[str, ...] = ()
    key_resources: Tuple[str, ...] = ()
    value_propositions: Tuple[str, ...] = ()
    customer_relationships: Tuple[str, ...] = ()
    channels: Tuple[str, ...] = ()
    customer_segments: Tuple[str, ...] = ()
    cost_structure: Tuple[str, ...] = ()
    revenue_streams: Tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in CANVAS_FIELDS)

    def to_dict(self) -> Dict[str, Any]:
        return {name: list(getattr(self, name)) for name in CANVAS_FIELDS}


@dataclasses.dataclass(frozen=True)
class SwotMatrix:
    kind: ClassVar[TableKind] = TableKind.SWOT_MATRIX

    strengths: Tuple[str, ...] = ()
    weaknesses: Tuple[str, ...] = ()
    opportunities: Tuple[str, ...] = ()
    threats: Tuple[str, ...] = ()
    interpretation: str = ""

    def is_empty(self) -> bool:
        return not (self.strengths or self.weaknesses or self.opportunities or self.threats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "opportunities": list(self.opportunities),
            "threats": list(self.threats),
            "interpretation": self.interpretation,
        }


@dataclasses.dataclass(frozen=True)
class Milestone:
    period: str
    milestones: str = ""
    deliverables: str = ""
    owner: str = ""


@dataclasses.dataclass(frozen=True)
class Kpi:
    kpi: str
    definition: str = ""
    target_12m: str = ""
    frequency: str = ""
    owner: str = ""


@dataclasses.dataclass(frozen=True)
class KpiCalendar:
    kind: ClassVar[TableKind] = TableKind.KPI_CALENDAR

    calendar: Tuple[Milestone, ...] = ()
    kpis: Tuple[Kpi, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calendar": [dataclasses.asdict(m) for m in self.calendar],
            "kpis": [dataclasses.asdict(k) for k in self.kpis],
        }


# ---------------------------------------------------------------------------
# Donor proposal tables
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class Indicator:
    name: str
    baseline: str = ""
    target: str = ""
    means_of_verification: str = ""


@dataclasses.dataclass(frozen=True)
class LogFrameOutput:
    statement: str
    indicators: Tuple[Indicator, ...] = ()


@dataclasses.dataclass(frozen=True)
class LogFrameOutcome:
    statement: str
    indicators: Tuple[Indicator, ...] = ()
    assumptions: Tuple[str, ...] = ()
    outputs: Tuple[LogFrameOutput, ...] = ()


def _indicators(items: Tuple[Indicator, ...]) -> List[Dict[str, Any]]:
    return [dataclasses.asdict(i) for i in items]


@dataclasses.dataclass(frozen=True)
class LogFrame:
    """Results chain: one impact, outcomes, and the outputs under each outcome."""

    kind: ClassVar[TableKind] = TableKind.LOGFRAME

    impact: str = ""
    impact_indicators: Tuple[Indicator, ...] = ()
    impact_assumptions: Tuple[str, ...] = ()
    outcomes: Tuple[LogFrameOutcome, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "impact": {
                "statement": self.impact,
                "indicators": _indicators(self.impact_indicators),
                "assumptions": list(self.impact_assumptions),
            },
            "outcomes": [
                {
                    "statement": o.statement,
                    "indicators": _indicators(o.indicators),
                    "assumptions": list(o.assumptions),
                    "outputs": [
                        {"statement": out.statement, "indicators": _indicators(out.indicators)}
                        for out in o.outputs
                    ],
                }
                for o in self.outcomes
            ],
        }


@dataclasses.dataclass(frozen=True)
class MeIndicator:
    indicator: str
    baseline: str = ""
    target: str = ""
    frequency: str = ""
    data_source: str = ""
    collection_method: str = ""
    responsible: str = ""
    disaggregation: str = ""


@dataclasses.dataclass(frozen=True)
class Evaluation:
    type: str
    timing: str = ""
    purpose: str = ""


@dataclasses.dataclass(frozen=True)
class ReportingItem:
    deliverable: str
    frequency: str = ""
    audience: str = ""


@dataclasses.dataclass(frozen=True)
class MePlan:
    kind: ClassVar[TableKind] = TableKind.ME_PLAN

    me_framework: Tuple[MeIndicator, ...] = ()
    evaluations: Tuple[Evaluation, ...] = ()
    reporting: Tuple[ReportingItem, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "me_framework": [dataclasses.asdict(i) for i in self.me_framework],
            "evaluations": [dataclasses.asdict(e) for e in self.evaluations],
            "reporting": [dataclasses.asdict(r) for r in self.reporting],
        }


@dataclasses.dataclass(frozen=True)
class SdgTarget:
    target: str
    contribution: str = ""
    project_indicators: str = ""


@dataclasses.dataclass(frozen=True)
class SdgGoal:
    sdg: str
    targets: Tuple[SdgTarget, ...] = ()


@dataclasses.dataclass(frozen=True)
class SdgAlignment:
    kind: ClassVar[TableKind] = TableKind.SDG_ALIGNMENT

    sdgs: Tuple[SdgGoal, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sdgs": [
                {"sdg": g.sdg, "targets": [dataclasses.asdict(t) for t in g.targets]}
                for g in self.sdgs
            ]
        }


@dataclasses.dataclass(frozen=True)
class BudgetLine:
    line_item: str
    unit: str = ""
    qty: float = 0.0
    unit_cost: float = 0.0
    total_cost: float = 0.0
    notes: str = ""


@dataclasses.dataclass(frozen=True)
class BudgetCategory:
    category: str
    items: Tuple[BudgetLine, ...] = ()
    total: float = 0.0


@dataclasses.dataclass(frozen=True)
class BudgetActivity:
    activity: str
    amount: float = 0.0


@dataclasses.dataclass(frozen=True)
class Budget:
    """
    Detailed budget by category.  Line totals, category totals and the three
    summary totals are derived during normalization; indirect costs are
    ``direct_total * indirect_rate / 100`` when a rate is given.
    """

    kind: ClassVar[TableKind] = TableKind.BUDGET

    currency: str = "USD"
    categories: Tuple[BudgetCategory, ...] = ()
    by_activity: Tuple[BudgetActivity, ...] = ()
    indirect_rate: float = 0.0
    indirect_notes: str = ""
    direct_total: float = 0.0
    indirect_total: float = 0.0
    grand_total: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currency": self.currency,
            "by_category": [
                {
                    "category": c.category,
                    "category_total": c.total,
                    "items": [dataclasses.asdict(line) for line in c.items],
                }
                for c in self.categories
            ],
            "by_activity": [dataclasses.asdict(a) for a in self.by_activity],
            "indirect_costs": {
                "rate": self.indirect_rate,
                "amount": self.indirect_total,
                "notes": self.indirect_notes,
            },
            "totals": {
                "direct_total": self.direct_total,
                "indirect_total": self.indirect_total,
                "grand_total": self.grand_total,
            },
        }


@dataclasses.dataclass(frozen=True)
class WorkplanActivity:
    activity: str
    component: str = ""
    start_month: int = 1
    end_month: int = 1
    milestones: Tuple[str, ...] = ()
    deliverables: Tuple[str, ...] = ()

    def active_in(self, first_month: int, last_month: int) -> bool:
        return self.start_month <= last_month and self.end_month >= first_month


@dataclasses.dataclass(frozen=True)
class Workplan:
    kind: ClassVar[TableKind] = TableKind.WORKPLAN

    duration_months: int = 12
    activities: Tuple[WorkplanActivity, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "duration_months": self.duration_months,
            "activities": [
                {
                    "activity": a.activity,
                    "component": a.component,
                    "start_month": a.start_month,
                    "end_month": a.end_month,
                    "milestones": list(a.milestones),
                    "deliverables": list(a.deliverables),
                }
                for a in self.activities
            ],
        }


TypedTable = Union[
    FinancialStatement,
    StakeholderMatrix,
    RiskMatrix,
    BusinessCanvas,
    KpiCalendar,
    SwotMatrix,
    LogFrame,
    MePlan,
    SdgAlignment,
    Budget,
    Workplan,
]


# ---------------------------------------------------------------------------
# Sections and document
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class SectionResult:
    """
    One finished section.  ``degraded`` is True when the content came from a
    fallback or the continuation budget ran out before the text looked complete.
    """

    key: str
    title: str
    kind: SectionKind
    content: Union[str, TypedTable]
    degraded: bool = False

    @property
    def is_table(self) -> bool:
        return not isinstance(self.content, str)

    def to_dict(self) -> Dict[str, Any]:
        body: Any = self.content if isinstance(self.content, str) else self.content.to_dict()
        out: Dict[str, Any] = {
            "key": self.key,
            "title": self.title,
            "kind": self.kind.value,
            "degraded": self.degraded,
            "content": body,
        }
        if self.is_table:
            out["table"] = self.content.kind.value
        return out


@dataclasses.dataclass(frozen=True)
class DocumentModel:
    title: str
    metadata: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    sections: Tuple[SectionResult, ...] = ()

    def section(self, key: str) -> Optional[SectionResult]:
        for section in self.sections:
            if section.key == key:
                return section
        return None

    @property
    def degraded_keys(self) -> List[str]:
        return [s.key for s in self.sections if s.degraded]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "metadata": dict(self.metadata),
            "sections": [s.to_dict() for s in self.sections],
        }
