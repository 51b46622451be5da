"""Action configuration table."""
