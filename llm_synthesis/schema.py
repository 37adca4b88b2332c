"""Value types crossing the narrative generation boundary."""

from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

RequestKind = Literal["overall", "overview", "batch"]
GenerationMode = Literal["single", "batched", "fallback"]


class GenerationRequest(BaseModel):
    """One text payload for the generation channel.

    ``expected_names`` lists the display names the response must annotate;
    it is metadata for validation and deterministic adapters, not part of
    the prompt itself.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    prompt: str = Field(min_length=1)
    channel: str = Field(min_length=1)
    temperature: float = Field(ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    system_prompt: Optional[str] = None
    kind: RequestKind = "overall"
    expected_names: Tuple[str, ...] = ()


class TokenUsage(BaseModel):
    """Token counts the channel reported for one call."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)


class GenerationResponse(BaseModel):
    """Raw text of one call plus its token usage, when the channel reports it."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    text: str
    usage: Optional[TokenUsage] = None


class UsageSummary(BaseModel):
    """Token usage summed over every answered call of one session.

    ``call_count`` includes calls whose response carried no usage, so the
    token totals are a lower bound when the channel does not report usage.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    call_count: int = Field(default=0, ge=0)
    calls_by_kind: Dict[str, int] = Field(default_factory=dict)


class AnnotatedEvaluation(BaseModel):
    """Narrative for one student, recovered from its start/end markers."""

    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)

    entity_id: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    body_text: str


class ValidationReport(BaseModel):
    """Annotation contract check for one generation response."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    batch_index: int = Field(ge=0)
    expected_ids: List[str]
    found_ids: List[str]
    missing_ids: List[str]
    extra_ids: List[str]
    has_terminator: bool
    is_valid: bool

    @property
    def errors(self) -> List[str]:
        problems = []
        if self.missing_ids:
            problems.append(f"missing: {', '.join(self.missing_ids)}")
        if self.extra_ids:
            problems.append(f"extra: {', '.join(self.extra_ids)}")
        if not self.has_terminator:
            problems.append("missing terminator")
        return problems


class ReportSummary(BaseModel):
    """Aggregate counters carried by the final report."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    total_records: int = Field(ge=0)
    matched_records: int = Field(ge=0)
    unmatched_records: int = Field(ge=0)
    anomaly_count: int = Field(ge=0)
    match_rate: float = Field(ge=0.0, le=1.0)
    total_class_size: int = Field(ge=0)
    active_entities: int = Field(ge=0)
    inactive_entities: int = Field(ge=0)
    inactive_names: List[str] = Field(default_factory=list)


class FinalReport(BaseModel):
    """Report model handed to the external renderer."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    evaluations: List[AnnotatedEvaluation]
    overall_text: str
    summary: ReportSummary
    missing_evaluation_ids: List[str] = Field(default_factory=list)
    validation_reports: List[ValidationReport] = Field(default_factory=list)
    mode: GenerationMode
    model: Optional[str] = None
    usage: UsageSummary = Field(default_factory=UsageSummary)

    def evaluation_for(self, entity_id: str) -> Optional[AnnotatedEvaluation]:
        for evaluation in self.evaluations:
            if evaluation.entity_id == entity_id:
                return evaluation
        return None
