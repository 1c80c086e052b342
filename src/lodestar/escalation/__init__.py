"""Escalation - support ticket sink for critical interventions."""

from lodestar.escalation.tickets import EscalationError, EscalationSink, RepositoryEscalationSink

__all__ = ["EscalationError", "EscalationSink", "RepositoryEscalationSink"]
