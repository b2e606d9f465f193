"""Clients for external collaborators.

- ``huggingface``: ``HuggingFaceClient`` listing and downloading repository files.
"""

from .huggingface import GgufFileDetails, HuggingFaceClient

__all__ = ["GgufFileDetails", "HuggingFaceClient"]
