"""Core primitives shared across the engine and its collaborators."""
