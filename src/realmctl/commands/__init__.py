"""Command groups registered on the root CLI."""
