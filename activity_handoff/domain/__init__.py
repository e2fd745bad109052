"""Domain layer: activity model, errors, ports."""
