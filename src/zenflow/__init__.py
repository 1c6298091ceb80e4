"""ZENFLOW: plan, task and git workflow enforcement for AI-assisted development."""

__version__ = "1.0.0"
