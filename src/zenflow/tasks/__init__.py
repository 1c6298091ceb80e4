"""Task lifecycle: data model, state machine, and tracker persistence."""
