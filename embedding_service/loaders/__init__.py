"""Model loaders.

Exports ``PreloadOrchestrator`` which resolves model files, builds the
matching embedder and installs it into the ``ModelCache``.
"""

from .preload import ModelDescriptor, ModelFormat, PreloadOrchestrator

__all__ = ["ModelDescriptor", "ModelFormat", "PreloadOrchestrator"]
