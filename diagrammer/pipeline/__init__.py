"""Pipeline assembly.

Provides create_pipeline(), which wires the cache, generator, validation
engine, feedback loop and resilient client from environment configuration.
"""

from .lib import Pipeline, create_pipeline

__all__ = ["Pipeline", "create_pipeline"]
