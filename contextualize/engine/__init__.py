"""Context isolation engine."""
