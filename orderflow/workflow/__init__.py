"""
Workflow rules (pure): item transitions, production substages, outsource and dispatch sub-flows.

Nothing in this package touches the database session; see orderflow.services.workflow.
"""

from .transitions import Action, Subflow, TransitionPlan, TransitionRequest, plan_transition  # noqa: F401
