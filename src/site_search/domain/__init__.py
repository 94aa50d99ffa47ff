"""Public value objects exchanged with search callers."""
