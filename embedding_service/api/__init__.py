"""HTTP API for the embedding service.

Exposes ``router`` with the preload, embeddings and GGUF listing routes.
"""
