"""Action factory, lifecycle engine and signal sources."""
