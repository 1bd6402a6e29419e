"""Embedding client backed by sentence-transformers."""

import contextlib
import io
import logging
import os
import struct
import threading
from typing import Any, List, Optional

from memex.config import (
    EMBEDDING_BATCH_SIZE,
    EMBEDDING_DEVICE,
    EMBEDDING_LOCAL_FILES_ONLY,
    EMBEDDING_MODEL,
    EMBEDDING_NORMALIZE,
)
from memex.core.exceptions import GenerativeError

logger = logging.getLogger(__name__)
FLOAT32_BYTES = 4


class EmbeddingClient:
    """Lazily loaded sentence-transformers model producing fixed-length vectors."""

    def __init__(
        self,
        model: Optional[str] = None,
        batch_size: Optional[int] = None,
        device: Optional[str] = None,
        normalize_embeddings: Optional[bool] = None,
        local_files_only: Optional[bool] = None,
    ):
        self.model = model or EMBEDDING_MODEL
        self.batch_size = batch_size or EMBEDDING_BATCH_SIZE
        self.device = device or EMBEDDING_DEVICE
        self.normalize_embeddings = (
            EMBEDDING_NORMALIZE if normalize_embeddings is None else bool(normalize_embeddings)
        )
        self.local_files_only = (
            EMBEDDING_LOCAL_FILES_ONLY if local_files_only is None else bool(local_files_only)
        )
        self._model: Optional[Any] = None
        self._model_load_error: Optional[Exception] = None
        self._load_lock = threading.Lock()
        self.texts_embedded = 0

    def _load_sentence_transformer(self, local_files_only: bool) -> Any:
        from sentence_transformers import SentenceTransformer

        kwargs = {"device": self.device}
        if local_files_only:
            kwargs["local_files_only"] = True
        with _silence_process_output():
            return SentenceTransformer(self.model, **kwargs)

    def _ensure_model_loaded(self) -> Any:
        """Load the model once, preferring the local Hugging Face cache."""
        with self._load_lock:
            if self._model is not None:
                return self._model
            if self._model_load_error is not None:
                raise GenerativeError("Embedding model is unavailable") from self._model_load_error
            try:
                try:
                    self._model = self._load_sentence_transformer(local_files_only=True)
                    logger.debug("Loaded embedding model '%s' from local cache.", self.model)
                except Exception:
                    if self.local_files_only:
                        raise
                    logger.debug(
                        "Embedding model '%s' not cached locally, attempting remote load.",
                        self.model,
                    )
                    self._model = self._load_sentence_transformer(local_files_only=False)
            except Exception as exc:
                self._model_load_error = exc
                logger.error("Failed to load sentence-transformer model '%s': %s", self.model, exc)
                raise GenerativeError("Embedding model is unavailable") from exc
            return self._model

    def embed(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for a list of non-empty texts."""
        filtered_texts = [text for text in texts if text and text.strip()]
        if not filtered_texts:
            return []

        model = self._ensure_model_loaded()
        rows: List[List[float]] = []
        for i in range(0, len(filtered_texts), self.batch_size):
            batch = filtered_texts[i : i + self.batch_size]
            encoded = model.encode(
                batch,
                batch_size=len(batch),
                convert_to_numpy=True,
                show_progress_bar=False,
                normalize_embeddings=self.normalize_embeddings,
            )
            rows.extend([float(value) for value in row] for row in encoded.tolist())
        self.texts_embedded += len(filtered_texts)
        return rows

    def embed_single(self, text: str) -> List[float]:
        """Generate embedding for a single text."""
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        result = self.embed([text])
        return result[0] if result else []


def serialize_embedding(embedding: List[float]) -> bytes:
    """Pack an embedding as little-endian float32 for BLOB storage."""
    return struct.pack(f"<{len(embedding)}f", *embedding)


def deserialize_embedding(data: Optional[bytes]) -> List[float]:
    """Unpack a float32 BLOB; trailing partial values are ignored."""
    if not data:
        return []
    count = len(data) // FLOAT32_BYTES
    return list(struct.unpack(f"<{count}f", data[: count * FLOAT32_BYTES]))


@contextlib.contextmanager
def _silence_process_output():
    """Silence Python-level and native fd stdout/stderr during noisy model loads.

    Model downloads print progress bars; inside the native host any byte on
    stdout would corrupt the protocol stream.
    """
    captured_stdout = io.StringIO()
    captured_stderr = io.StringIO()
    stdout_fd = os.dup(1)
    stderr_fd = os.dup(2)
    devnull_fd = os.open(os.devnull, os.O_WRONLY)
    try:
        os.dup2(devnull_fd, 1)
        os.dup2(devnull_fd, 2)
        with contextlib.redirect_stdout(captured_stdout), contextlib.redirect_stderr(
            captured_stderr
        ):
            yield
    finally:
        os.dup2(stdout_fd, 1)
        os.dup2(stderr_fd, 2)
        os.close(stdout_fd)
        os.close(stderr_fd)
        os.close(devnull_fd)
