"""Service layer modules."""

# Import service modules (not individual functions) for cleaner access
from formflow.services import (  # noqa: F401
    assignment_rules,
    category_service,
    conditional_logic,
    due_date_service,
    form_type_service,
    hierarchy_guard,
    instance_service,
    prepopulation_service,
    question_builder_service,
    question_schema,
    template_service,
)
