"""
Production order workflow.

State machine for the production lifecycle: pending -> in_progress ->
completed, with stop as the one rollback path back to pending.
"""

from production_kernel.domain.production import OrderStatus
from production_kernel.domain.workflow import Guard, Transition, Workflow
from production_kernel.logging_config import get_logger

logger = get_logger("services.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

GROUPS_CONFIRMED = Guard(
    name="groups_confirmed",
    description="At least one material group is confirmed with a positive delivery",
)

START_MOVES_RECORDED = Guard(
    name="start_moves_recorded",
    description="Applied start moves are stored on the order",
)

OUTPUT_SPECIFIED = Guard(
    name="output_specified",
    description="Output product, output shelf and a positive quantity are given",
)

logger.info(
    "production_workflow_guards_defined",
    extra={
        "guards": [
            GROUPS_CONFIRMED.name,
            START_MOVES_RECORDED.name,
            OUTPUT_SPECIFIED.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Production Order Workflow
# -----------------------------------------------------------------------------

ACTION_START = "start"
ACTION_STOP = "stop"
ACTION_COMPLETE = "complete"

PRODUCTION_ORDER_WORKFLOW = Workflow(
    name="production_order",
    description="Production order lifecycle",
    initial_state=OrderStatus.PENDING.value,
    states=(
        OrderStatus.PENDING.value,
        OrderStatus.IN_PROGRESS.value,
        OrderStatus.COMPLETED.value,
    ),
    transitions=(
        Transition(
            OrderStatus.PENDING.value,
            OrderStatus.IN_PROGRESS.value,
            action=ACTION_START,
            guard=GROUPS_CONFIRMED,
            moves_stock=True,
        ),
        Transition(
            OrderStatus.IN_PROGRESS.value,
            OrderStatus.PENDING.value,
            action=ACTION_STOP,
            guard=START_MOVES_RECORDED,
            moves_stock=True,
        ),
        Transition(
            OrderStatus.IN_PROGRESS.value,
            OrderStatus.COMPLETED.value,
            action=ACTION_COMPLETE,
            guard=OUTPUT_SPECIFIED,
            moves_stock=True,
        ),
    ),
    terminal_states=(OrderStatus.COMPLETED.value,),
)

logger.info(
    "production_workflow_registered",
    extra={
        "workflow_name": PRODUCTION_ORDER_WORKFLOW.name,
        "state_count": len(PRODUCTION_ORDER_WORKFLOW.states),
        "transition_count": len(PRODUCTION_ORDER_WORKFLOW.transitions),
    },
)
