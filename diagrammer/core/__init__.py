"""Core cross-cutting utilities (logging, errors)."""
