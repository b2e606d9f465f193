"""Embedding service package.

Layout:
- ``api``: FastAPI route handlers and request/response models.
- ``tokenization``: vocabulary table and WordPiece tokenizer.
- ``encoders``: ``Embedder`` backends and the ``EmbeddingManager``.
- ``runtime``: the single-slot ``ModelCache`` and metrics facade.
- ``loaders``: ``PreloadOrchestrator`` that fetches and installs models.
- ``clients``: Hugging Face download client.

Import convenience:
- from embedding_service.encoders.embedding_manager import EmbeddingManager
"""
