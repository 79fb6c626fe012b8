"""Presentation layer: console rendering of handled requests."""

from agent_choreography.presentation.console import ConsoleDashboard

__all__ = ["ConsoleDashboard"]
