"""Graph workflow definitions."""

from pydantic_graph import Graph

from forksync.core.config import State
from forksync.core.log import logger


def create_sync_workflow() -> Graph:
    """Create the sync pipeline graph.

    Fetch → Simulate → ValidateIntegrity → Analyze → Decide →
        [ApplyMerge | RequestReview] → Report

    Returns:
        Graph with State as state_type, ending in a StatusReport
    """
    logger.debug("Building sync workflow graph")

    # Node return annotations are resolved against this namespace
    from forksync.workflow.nodes.analyze import Analyze
    from forksync.workflow.nodes.apply_merge import ApplyMerge
    from forksync.workflow.nodes.decide import Decide
    from forksync.workflow.nodes.fetch import Fetch
    from forksync.workflow.nodes.report import Report
    from forksync.workflow.nodes.request_review import RequestReview
    from forksync.workflow.nodes.simulate import Simulate
    from forksync.workflow.nodes.validate import ValidateIntegrity

    return Graph(
        nodes=(
            Fetch,
            Simulate,
            ValidateIntegrity,
            Analyze,
            Decide,
            ApplyMerge,
            RequestReview,
            Report,
        ),
        state_type=State,
    )


def create_reset_workflow() -> Graph:
    from forksync.workflow.nodes.reset import Reset

    return Graph(nodes=(Reset,), state_type=State)
