"""HTTP blueprints (JSON)."""
