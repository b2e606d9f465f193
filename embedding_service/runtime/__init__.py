"""Runtime state for the embedding service.

- ``model_cache``: the single-slot ``ModelCache`` holding the active embedder.
- ``metrics``: service-local metrics facade.
"""
