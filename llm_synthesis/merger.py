"""Merges per-batch responses into one list of student evaluations."""

import logging
from typing import Dict, List, Optional, Sequence

from llm_synthesis.schema import AnnotatedEvaluation
from llm_synthesis.validator import (
    Expected,
    assign_labels,
    build_name_index,
    entity_identity,
    extract_annotated_pairs,
)

logger = logging.getLogger(__name__)


class ResultMerger:
    """Best-effort assembly of annotated evaluations across batches.

    A batch contributes every well-formed marker pair it contains, even when
    its ValidationReport is invalid. The first evaluation of a student wins;
    later duplicates are dropped.
    """

    def merge(
        self,
        per_batch_texts: Sequence[str],
        entities: Optional[Sequence[Expected]] = None,
        restore_entity_order: bool = False,
    ) -> List[AnnotatedEvaluation]:
        """Extract, de-duplicate and order evaluations from batch responses.

        Args:
            per_batch_texts: Raw responses in batch order.
            entities: Known students used to resolve marker labels to ids.
                Labels without a match keep the label as their id.
            restore_entity_order: Re-sort the result to the order of
                ``entities`` instead of first-seen order.

        Returns:
            One AnnotatedEvaluation per distinct student, carrying the
            student's display name rather than its marker label.
        """
        known = entities or ()
        name_index = build_name_index(known, assign_labels(known))
        display_names: Dict[str, str] = dict(entity_identity(item) for item in known)
        merged: Dict[str, AnnotatedEvaluation] = {}
        contributing = 0

        for batch_index, text in enumerate(per_batch_texts):
            pairs = extract_annotated_pairs(text)
            if not pairs:
                logger.warning(
                    "Batch %d has no complete annotation pair, skipped",
                    batch_index + 1,
                )
                continue
            contributing += 1
            for label, body in pairs:
                entity_id = name_index.get(label, label)
                if entity_id in merged:
                    logger.info(
                        "Duplicate evaluation for %s in batch %d, kept first",
                        label,
                        batch_index + 1,
                    )
                    continue
                merged[entity_id] = AnnotatedEvaluation(
                    entity_id=entity_id,
                    display_name=display_names.get(entity_id, label),
                    body_text=body,
                )

        logger.info(
            "Merged %d evaluations from %d/%d batches",
            len(merged),
            contributing,
            len(per_batch_texts),
        )

        evaluations = list(merged.values())
        if restore_entity_order and known:
            order = {entity_id: position for position, entity_id in enumerate(name_index.values())}
            evaluations.sort(key=lambda item: order.get(item.entity_id, len(order)))
        return evaluations
