"""Pure domain types for the approval engine: no I/O, no persistence."""
