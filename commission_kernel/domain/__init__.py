"""Pure domain types for the commission kernel (no I/O)."""
