"""Tests for the embedding service.

Unit tests cover tokenization, embedders, the model cache, preload
orchestration, the download client and the HTTP API. Inference backends
and the remote repository are replaced with in-process fakes.
"""
