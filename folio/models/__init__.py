"""Domain and API models."""
from folio.models.document import (  # noqa: F401
    PERIODS,
    Budget,
    BusinessCanvas,
    DocumentModel,
    FinancialRow,
    FinancialStatement,
    GenerationRequest,
    KpiCalendar,
    LogFrame,
    MePlan,
    RawAttempt,
    RiskMatrix,
    SdgAlignment,
    SectionKind,
    SectionResult,
    StakeholderMatrix,
    SwotMatrix,
    TableKind,
    TypedTable,
    Workplan,
)
