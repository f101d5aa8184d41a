"""Domain models: value objects, error hierarchy and failure kinds."""
