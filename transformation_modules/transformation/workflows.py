"""
Transformation Order Workflow.

State machine for transformation orders:

    DRAFT --prepare--> PREPARING --execute--> COMPLETED
      |                    |
      +------cancel--------+-----cancel-----> CANCELLED

COMPLETED and CANCELLED are terminal.  The PREPARING -> COMPLETED edge
requires execution: only the execution orchestrator takes it, together with
the stock movements it implies.
"""

from transformation_kernel.domain.workflow import Guard, Transition, Workflow
from transformation_kernel.exceptions import InvalidTransitionError
from transformation_kernel.logging_config import get_logger
from transformation_modules.transformation.models import OrderStatus

logger = get_logger("modules.transformation.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

EXECUTION_DATA_PROVIDED = Guard(
    name="execution_data_provided",
    description="Consumed and produced quantities supplied through execution",
)

logger.info(
    "transformation_workflow_guards_defined",
    extra={"guards": [EXECUTION_DATA_PROVIDED.name]},
)


# -----------------------------------------------------------------------------
# Order Workflow
# -----------------------------------------------------------------------------

ORDER_WORKFLOW = Workflow(
    name="transformation_order",
    description="Inventory transformation order lifecycle",
    initial_state=OrderStatus.DRAFT.value,
    states=tuple(s.value for s in OrderStatus),
    transitions=(
        Transition("DRAFT", "PREPARING", action="prepare"),
        Transition("DRAFT", "CANCELLED", action="cancel"),
        Transition("PREPARING", "CANCELLED", action="cancel"),
        Transition(
            "PREPARING", "COMPLETED", action="execute",
            guard=EXECUTION_DATA_PROVIDED, posts_stock=True, requires_execution=True,
        ),
    ),
    terminal_states=(OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value),
)

logger.info(
    "transformation_order_workflow_registered",
    extra={
        "workflow_name": ORDER_WORKFLOW.name,
        "state_count": len(ORDER_WORKFLOW.states),
        "transition_count": len(ORDER_WORKFLOW.transitions),
        "initial_state": ORDER_WORKFLOW.initial_state,
    },
)


def _status_value(status: OrderStatus | str) -> str:
    value = status.value if isinstance(status, OrderStatus) else str(status).upper()
    if value not in ORDER_WORKFLOW.states:
        raise InvalidTransitionError(str(status), "?", reason=f"Unknown status: {status}")
    return value


def validate_transition(
    current: OrderStatus | str,
    target: OrderStatus | str,
    via_execution: bool = False,
) -> Transition:
    """
    Return the workflow edge from ``current`` to ``target``.

    Raises:
        InvalidTransitionError: the edge is not declared, or it requires
            execution and ``via_execution`` is False.
    """
    from_state = _status_value(current)
    try:
        to_state = _status_value(target)
    except InvalidTransitionError:
        raise InvalidTransitionError(from_state, str(target), reason=f"Unknown status: {target}")

    transition = ORDER_WORKFLOW.find_transition(from_state, to_state)
    if transition is None:
        if ORDER_WORKFLOW.is_terminal(from_state):
            reason = f"{from_state} is a terminal status"
        else:
            reason = None
        raise InvalidTransitionError(from_state, to_state, reason=reason)

    if transition.requires_execution and not via_execution:
        raise InvalidTransitionError(
            from_state, to_state, reason="requires execution with consumed and produced quantities",
        )
    return transition


def allowed_targets(current: OrderStatus | str) -> tuple[str, ...]:
    """Statuses reachable by a plain status change (execution edge excluded)."""
    return tuple(
        t.to_state
        for t in ORDER_WORKFLOW.transitions_from(_status_value(current))
        if not t.requires_execution
    )
