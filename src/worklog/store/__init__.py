"""Per-store persistence: task records, index and schemas."""
