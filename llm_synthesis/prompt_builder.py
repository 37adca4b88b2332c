"""Prompt composition for classroom participation reports.

Prompts are assembled from small templates rendered by
``llm_synthesis.templating``; no prompt text is built by concatenation
outside this module.
"""

import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from app.config import AnalysisConfig, GenerationSettings
from app.domain.classroom import ClassSummary, EntityStats
from llm_synthesis.schema import GenerationRequest, RequestKind
from llm_synthesis.templating import format_value, render_template
from llm_synthesis.validator import TERMINATOR, assign_labels, end_marker, start_marker, strip_annotations

_PARTIALS = {
    "data_overview": """\
## Data overview
- Activity records: {{summary.total_records}} ({{summary.matched_records}} matched, {{summary.unmatched_records}} without a roster match, {{summary.anomaly_count}} dropped as invalid)
- Match rate: {{summary.match_rate_percent}}%
- Class size: {{summary.total_class_size}} students, {{summary.active_entities}} active, {{summary.inactive_entities}} without any activity
{{#if summary.categories}}
- Subjects: {{summary.categories}}
{{/if}}
- Total points awarded: {{summary.total_score}} (average {{summary.average_score}} per matched record)
""",
    "inactive_students": """\
{{#if summary.inactive_names}}
Students with no recorded activity: {{summary.inactive_names}}
{{/if}}
""",
    "overall_sections": """\
Write the class-level summary first. Cover overall participation, subject
highlights, students who stand out, and concrete suggestions for the next
teaching period.
""",
    "student_lines": """\
{{#each students}}
{{@index}}. {{this.name}}: {{this.participation_count}} activities, total points {{this.total_score}}, average {{this.average_score}}, trend {{this.trend}}, pattern {{this.performance_pattern}}{{#if this.category_text}}; subjects: {{this.category_text}}{{/if}}
{{/each}}
""",
    "annotation_contract": """\
{{#if use_annotations}}
## Output format (mandatory)
Wrap every student's evaluation in a start marker and an end marker that both
carry the student's name exactly as listed above, including any number in
parentheses that tells apart students who share a name:
{{start_example}}
evaluation text
{{end_example}}
Annotate every listed student exactly once and nobody else.
After the last student write the closing marker on its own line:
{{terminator}}
{{/if}}
""",
    "student_focus": """\
For each student, comment on participation, strengths, the subjects that need
work, and one practical suggestion. Keep the tone encouraging and specific.
""",
    "output_reminder": """\
Each student evaluation should be {{min_length}} to {{max_length}} words.
Write plain text without markdown code fences.
""",
}

_OVERALL_TEMPLATE = """\
Analyse the classroom participation records below and write a report for
the whole class.

{{> data_overview}}
{{> inactive_students}}

## Students ({{students.length}})
{{> student_lines}}

## Task
{{> overall_sections}}
Then write an individual evaluation for every student listed above.
{{> student_focus}}
{{> annotation_contract}}
{{> output_reminder}}"""

_OVERVIEW_TEMPLATE = """\
Analyse the classroom participation summary below and write the class-level
part of a report.

{{> data_overview}}
{{> inactive_students}}

## Task
{{> overall_sections}}
Do not write individual student evaluations and do not use any markers;
they are requested separately."""

_BATCH_TEMPLATE = """\
You are continuing a class report. This is batch {{batch_number}} of {{total_batches}}.

## Class summary (read-only context)
The following summary has already been written. Do not repeat or rewrite it;
keep the individual evaluations consistent with it.

{{overall_context}}

## Students in this batch ({{students.length}})
{{> student_lines}}

## Task
Write an individual evaluation for each student in this batch only.
{{> student_focus}}
{{> annotation_contract}}
{{> output_reminder}}"""


class PromptComposer:
    """Builds generation requests for single-shot and batched reports.

    Configuration is fixed at construction; each compose call depends only
    on its arguments.
    """

    def __init__(self, config: AnalysisConfig, settings: GenerationSettings) -> None:
        self._config = config
        self._settings = settings

    def entity_summary(self, stats: EntityStats, label: Optional[str] = None) -> Dict[str, Any]:
        """Flatten one EntityStats into the values used by the templates.

        ``name`` is the marker label when one is given, else the display name.
        """
        categories = [
            {
                "name": name,
                "count": bucket.count,
                "average": round(bucket.average_score, 2),
            }
            for name, bucket in stats.category_stats.items()
        ]
        category_text = ", ".join(
            f"{item['name']} x{item['count']} (avg {format_value(item['average'])})"
            for item in categories
        )
        return {
            "id": stats.id,
            "name": label or stats.display_name,
            "display_name": stats.display_name,
            "participation_count": stats.participation_count,
            "total_score": stats.total_score,
            "average_score": round(stats.average_score, 2),
            "positive_count": stats.positive_count,
            "zero_count": stats.zero_count,
            "unscored_count": stats.unscored_count,
            "trend": stats.trend,
            "performance_pattern": stats.performance_pattern,
            "active_days": stats.dated_bucket_count,
            "excellent_days": stats.excellent_days,
            "excellent_categories": stats.excellent_categories,
            "categories": categories,
            "category_text": category_text,
        }

    def compose_overall(
        self,
        summary: ClassSummary,
        entities: Sequence[EntityStats],
        labels: Optional[Mapping[str, str]] = None,
    ) -> GenerationRequest:
        """Single-shot request: class narrative plus every student's evaluation."""
        labels = labels if labels is not None else assign_labels(entities)
        context = self._base_context(entities, labels)
        context["summary"] = summary
        prompt = render_template(_OVERALL_TEMPLATE, context, _PARTIALS)
        return self._request(prompt, "overall", entities, labels)

    def compose_overview(self, summary: ClassSummary) -> GenerationRequest:
        """First request of a batched run: class narrative only."""
        context = self._base_context((), {})
        context["summary"] = summary
        prompt = render_template(_OVERVIEW_TEMPLATE, context, _PARTIALS)
        return self._request(prompt, "overview", (), {})

    def compose_batch(
        self,
        entities: Sequence[EntityStats],
        overall_context: str,
        batch_index: int,
        total_batches: int,
        labels: Optional[Mapping[str, str]] = None,
    ) -> GenerationRequest:
        """Request evaluations for one batch.

        Args:
            entities: Students of this batch only.
            overall_context: Previously generated class narrative. Any
                annotated evaluations it contains are removed first.
            batch_index: 0-based index of the batch.
            total_batches: Number of batches in the run.
            labels: Session-wide entity id to marker label mapping. Without
                it, labels are computed from this batch alone.
        """
        labels = labels if labels is not None else assign_labels(entities)
        context = self._base_context(entities, labels)
        context.update(
            {
                "overall_context": strip_annotations(overall_context),
                "batch_number": batch_index + 1,
                "total_batches": total_batches,
            }
        )
        prompt = render_template(_BATCH_TEMPLATE, context, _PARTIALS)
        return self._request(prompt, "batch", entities, labels)

    def _base_context(
        self,
        entities: Sequence[EntityStats],
        labels: Mapping[str, str],
    ) -> Dict[str, Any]:
        students: List[Dict[str, Any]] = [
            self.entity_summary(stats, labels.get(stats.id)) for stats in entities
        ]
        return {
            "students": students,
            "use_annotations": self._config.use_annotations,
            "min_length": self._config.min_length,
            "max_length": self._config.max_length,
            "start_example": start_marker("Student Name"),
            "end_example": end_marker("Student Name"),
            "terminator": TERMINATOR,
        }

    def _request(
        self,
        prompt: str,
        kind: RequestKind,
        entities: Sequence[EntityStats],
        labels: Mapping[str, str],
    ) -> GenerationRequest:
        return GenerationRequest(
            prompt=re.sub(r"\n{3,}", "\n\n", prompt).strip(),
            channel=self._settings.model,
            temperature=self._settings.temperature,
            max_tokens=self._settings.max_tokens,
            system_prompt=self._settings.system_prompt,
            kind=kind,
            expected_names=tuple(labels.get(stats.id, stats.display_name) for stats in entities),
        )
