"""Best-effort issue tracking for task lifecycle events."""
