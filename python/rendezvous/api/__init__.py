"""HTTP API layer: dependencies and route modules."""
