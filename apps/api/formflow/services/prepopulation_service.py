"""Pre-population of instance responses from external member/provider records."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping, Protocol

from formflow.schemas.forms import Question, ResponseItem
from formflow.services.question_schema import coerce_response_value

logger = logging.getLogger(__name__)

PREPOPULATION_SOURCE = "prepopulation"


class PrePopulationLookup(Protocol):
    """Resolves external records by id. Returns None when not found."""

    def get_member(self, tenant_id: str, member_id: str) -> Mapping[str, Any] | None: ...

    def get_provider(self, tenant_id: str, provider_id: str) -> Mapping[str, Any] | None: ...


def prepopulate_responses(
    questions: Iterable[Question],
    lookup: PrePopulationLookup,
    tenant_id: str,
    *,
    member_id: str | None,
    provider_id: str | None,
    answered: set[str],
    now: datetime,
) -> list[ResponseItem]:
    """
    Build responses for questions with a ``pre_population_mapping``.

    Questions already in ``answered`` are left alone. Records are fetched at
    most once each and only when some question maps into them.
    """
    mapped = [
        q for q in questions
        if q.pre_population_mapping and q.id not in answered
    ]
    if not mapped:
        return []

    sources: dict[str, Mapping[str, Any] | None] = {}

    def record(source: str) -> Mapping[str, Any] | None:
        if source not in sources:
            if source == "member" and member_id:
                sources[source] = lookup.get_member(tenant_id, member_id)
            elif source == "provider" and provider_id:
                sources[source] = lookup.get_provider(tenant_id, provider_id)
            else:
                sources[source] = None
        return sources[source]

    responses: list[ResponseItem] = []
    for question in mapped:
        source, field = question.pre_population_mapping.split(".", 1)
        data = record(source)
        if not data or data.get(field) is None:
            continue
        try:
            value = coerce_response_value(question, data[field])
        except ValueError:
            # Values are not logged (PHI)
            logger.warning(
                "Skipping pre-population for question %s: incompatible %s value",
                question.id,
                question.pre_population_mapping,
            )
            continue
        responses.append(
            ResponseItem(
                question_id=question.id,
                value=value,
                responded_at=now,
                metadata={"source": PREPOPULATION_SOURCE, "field": question.pre_population_mapping},
            )
        )
    return responses
