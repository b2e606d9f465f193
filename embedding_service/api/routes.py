"""API routes for the embedding service."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field
import structlog

from ..clients.huggingface import HuggingFaceClient
from ..encoders.embedding_manager import EmbeddingManager
from ..errors import EmbeddingServiceError
from ..loaders.preload import ModelDescriptor, PreloadOrchestrator

logger = structlog.get_logger("embedding_service.api")

router = APIRouter()


class PreloadRequest(BaseModel):
    """Request model for the preload endpoint."""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    api_key: Optional[str] = Field(None, alias="ApiKey", description="Credential for the model repository")
    model_id: Optional[str] = Field(None, alias="ModelId", description="Repository id, e.g. owner/name")
    model_format: Optional[str] = Field(None, alias="ModelFormat", description="gguf or onnx")
    source_filename: Optional[str] = Field(None, alias="SourceFilename", description="File name in the repository")
    output_filename: Optional[str] = Field(None, alias="OutputFilename", description="Local file name or path")
    vocabulary_path: Optional[str] = Field(None, alias="VocabularyPath", description="Local vocabulary path (onnx)")

    def to_descriptor(self) -> ModelDescriptor:
        return ModelDescriptor(
            model_id=self.model_id,
            model_format=self.model_format,
            source_filename=self.source_filename,
            output_filename=self.output_filename,
            vocabulary_path=self.vocabulary_path,
            api_key=self.api_key,
        )


class PreloadResponse(BaseModel):
    """Response model for the preload endpoint."""
    model_config = ConfigDict(protected_namespaces=())

    status: str = Field(..., description="Load status")
    message: str = Field(..., description="Human-readable acknowledgement")
    model_format: str = Field(..., description="Format of the loaded model")
    model_id: Optional[str] = Field(None, description="Repository the model came from")


class EmbeddingRequest(BaseModel):
    """Request model for the embeddings endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    texts: List[str] = Field(..., alias="Texts", description="Texts to embed, in order")


class EmbeddingResponse(BaseModel):
    """Response model for the embeddings endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    embeddings: List[List[float]] = Field(..., alias="Embeddings", description="One vector per input text")


class GgufFileInfo(BaseModel):
    """A GGUF file available in a repository."""
    filename: str = Field(..., alias="Filename")
    content_length: int = Field(..., alias="ContentLength")
    object_id: Optional[str] = Field(None, alias="ObjectIdentifier")


def get_embedding_manager(request: Request) -> EmbeddingManager:
    """Get embedding manager from application state."""
    return request.app.state.embedding_manager


def get_preload_orchestrator(request: Request) -> PreloadOrchestrator:
    """Get preload orchestrator from application state."""
    return request.app.state.preload_orchestrator


@router.post("/preload", response_model=PreloadResponse)
async def preload(
    request: PreloadRequest,
    orchestrator: PreloadOrchestrator = Depends(get_preload_orchestrator)
):
    """Download (if needed) and load a model, making it the active embedder."""
    try:
        info = await orchestrator.preload(request.to_descriptor())
    except EmbeddingServiceError as e:
        raise HTTPException(status_code=400, detail=f"Error: {e}")

    return PreloadResponse(
        status="loaded",
        message="Model preloaded successfully!",
        model_format=info.model_format,
        model_id=info.model_id,
    )


@router.post("/embeddings", response_model=EmbeddingResponse)
async def embeddings(
    request: EmbeddingRequest,
    embedding_manager: EmbeddingManager = Depends(get_embedding_manager)
):
    """Generate one embedding per input text using the active model."""
    try:
        vectors = await embedding_manager.get_embeddings(request.texts)
    except EmbeddingServiceError as e:
        raise HTTPException(status_code=400, detail=f"Error generating embeddings: {e}")

    return EmbeddingResponse(embeddings=vectors)


@router.get("/models/gguf", response_model=List[GgufFileInfo])
async def list_gguf_files(
    model_id: str = Query(..., alias="ModelId", description="Repository id to inspect"),
    api_key: Optional[str] = Query(None, alias="ApiKey", description="Repository credential"),
    orchestrator: PreloadOrchestrator = Depends(get_preload_orchestrator)
):
    """List the GGUF files a repository publishes."""
    client: HuggingFaceClient = orchestrator.client_factory(
        api_key or orchestrator.config.ml_huggingface_api_key
    )
    try:
        files = await client.list_gguf_files(model_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("GGUF files listed", model_id=model_id, count=len(files))
    return [
        GgufFileInfo(
            Filename=f.filename,
            ContentLength=f.content_length,
            ObjectIdentifier=f.object_id,
        )
        for f in files
    ]
