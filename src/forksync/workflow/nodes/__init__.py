"""Workflow nodes for the sync pipeline graph."""

from forksync.workflow.nodes.analyze import Analyze
from forksync.workflow.nodes.apply_merge import ApplyMerge
from forksync.workflow.nodes.decide import Decide
from forksync.workflow.nodes.fetch import Fetch
from forksync.workflow.nodes.report import Report
from forksync.workflow.nodes.request_review import RequestReview
from forksync.workflow.nodes.reset import Reset
from forksync.workflow.nodes.simulate import Simulate
from forksync.workflow.nodes.validate import ValidateIntegrity

__all__ = [
    "Fetch",
    "Simulate",
    "ValidateIntegrity",
    "Analyze",
    "Decide",
    "ApplyMerge",
    "RequestReview",
    "Report",
    "Reset",
]
