"""Pure value types for the stockroom kernel: clock, roles, entities, values."""
