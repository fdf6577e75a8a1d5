"""Config loading (YAML + JSON Schema)."""
