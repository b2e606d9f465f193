"""Error taxonomy for the embedding service.

Every failure the service reports to clients derives from
``EmbeddingServiceError``. Routes map these onto HTTP 400 responses; the
model cache is only ever replaced by a successful preload, so none of these
leave the service in an unusable state.
"""


class EmbeddingServiceError(Exception):
    """Base exception for embedding service operations."""
    pass


class PreloadError(EmbeddingServiceError):
    """A preload attempt failed; the active model (if any) is unchanged."""
    pass


class EmbeddingError(EmbeddingServiceError):
    """An embedding request failed."""
    pass


class UnsupportedFormatError(PreloadError):
    """The model format tag is not one of the recognized formats."""
    pass


class DownloadError(PreloadError):
    """A model or vocabulary file could not be fetched from the remote repository."""
    pass


class ModelLoadError(PreloadError):
    """Native weights or the inference session could not be constructed."""
    pass


class VocabularyError(PreloadError, EmbeddingError):
    """The vocabulary file is malformed or lacks a sentinel token."""
    pass


class InferenceError(EmbeddingError):
    """The backend failed while computing an embedding."""
    pass


class NotLoadedError(EmbeddingError):
    """An embedding was requested before any model was preloaded."""

    def __init__(self, message: str = "Model is not loaded. Call /preload first."):
        super().__init__(message)
