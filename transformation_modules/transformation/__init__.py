"""
Inventory Transformation Module (``transformation_modules.transformation``).

Responsibility
--------------
Thin ERP glue for turning raw materials into finished goods: reusable
templates (recipes), transformation orders created from them, the order
lifecycle, and execution into stock movements with cost allocation and
input -> output lineage.

Architecture position
---------------------
**Modules layer** -- value objects, ORM, workflow, config schema, and a
service facade (``service.TransformationService``) that delegates execution
to ``transformation_services.execution``.

The service is not re-exported here: it imports the services layer, which
in turn imports this package's models and ORM.  Import it from
``transformation_modules.transformation.service``.

Invariants enforced
-------------------
* Order status changes follow ``ORDER_WORKFLOW``; completion only through
  execution.
* Templates referenced by orders refuse structural edits.
* Stock balances never go negative through a transformation.

Failure modes
-------------
* Kernel errors from ``transformation_kernel.exceptions`` propagate from
  the service; execution reports them in ``ExecutionResult``.
"""

from transformation_modules.transformation.config import TransformationConfig
from transformation_modules.transformation.models import (
    ExecutionData,
    ExecutionResult,
    InputExecution,
    OrderInput,
    OrderOutput,
    OrderPage,
    OrderStatus,
    OutputExecution,
    StockAvailability,
    StockTransactionIds,
    TemplateInput,
    TemplateLineSpec,
    TemplateLockStatus,
    TemplateOutput,
    TemplateValidation,
    TransformationOrder,
    TransformationTemplate,
    TransitionCheck,
)
from transformation_modules.transformation.workflows import (
    ORDER_WORKFLOW,
    allowed_targets,
    validate_transition,
)

__all__ = [
    "ExecutionData",
    "ExecutionResult",
    "InputExecution",
    "ORDER_WORKFLOW",
    "OrderInput",
    "OrderOutput",
    "OrderPage",
    "OrderStatus",
    "OutputExecution",
    "StockAvailability",
    "StockTransactionIds",
    "TemplateInput",
    "TemplateLineSpec",
    "TemplateLockStatus",
    "TemplateOutput",
    "TemplateValidation",
    "TransformationConfig",
    "TransformationOrder",
    "TransformationTemplate",
    "TransitionCheck",
    "allowed_targets",
    "validate_transition",
]
