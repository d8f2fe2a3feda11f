"""Per-server runtime, supervisor and their building blocks."""
