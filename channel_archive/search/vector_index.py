"""Qdrant-backed vector index for archived messages.

Messages are embedded locally with fastembed and stored one point per
message, keyed by the Discord message id so re-indexing a message replaces
its point instead of duplicating it.

Usage:
    index = QdrantVectorIndex(settings.vector_index)
    await index.add_documents(documents)
    hits = await index.search("release date", limit=5)
    await index.close()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models

from channel_archive.pipeline.logger import logger

if TYPE_CHECKING:
    from fastembed import TextEmbedding

    from channel_archive.config.settings import VectorIndexConfig
    from channel_archive.pipeline.models import VectorDocument


@dataclass
class SearchHit:
    """A message returned by a semantic search."""

    message_id: int
    score: float
    text: str
    channel_id: int | None = None
    author_id: int | None = None
    sent_at: str | None = None


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


class QdrantVectorIndex:
    """Embeds documents and stores them in a Qdrant collection."""

    def __init__(
        self,
        settings: VectorIndexConfig,
        client: AsyncQdrantClient | None = None,
        embedder: TextEmbedding | None = None,
    ) -> None:
        self.settings = settings
        self.collection = settings.collection
        self.client = client or AsyncQdrantClient(
            url=settings.url,
            api_key=settings.api_key,
            timeout=int(settings.timeout_seconds),
        )
        self._embedder = embedder
        self._collection_ready = False

    # -------------------------------------------------------------------------
    # Embeddings
    # -------------------------------------------------------------------------

    @property
    def embedder(self) -> TextEmbedding:
        """Embedding model, loaded on first use (downloads weights once)."""
        if self._embedder is None:
            from fastembed import TextEmbedding

            self._embedder = TextEmbedding(model_name=self.settings.embedding_model)
            logger.debug(f"Loaded embedding model {self.settings.embedding_model}")
        return self._embedder

    def _embed_sync(self, texts: list[str]) -> list[list[float]]:
        return [vector.tolist() for vector in self.embedder.embed(texts)]

    async def _embed(self, texts: list[str]) -> list[list[float]]:
        # Model inference is CPU bound; keep it off the event loop
        return await asyncio.to_thread(self._embed_sync, texts)

    # -------------------------------------------------------------------------
    # Collection
    # -------------------------------------------------------------------------

    async def _ensure_collection(self, vector_size: int) -> None:
        if self._collection_ready:
            return
        if not await self.client.collection_exists(self.collection):
            await self.client.create_collection(
                collection_name=self.collection,
                vectors_config=models.VectorParams(
                    size=vector_size, distance=models.Distance.COSINE
                ),
            )
            logger.info(f"Created vector collection {self.collection}")
        self._collection_ready = True

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def add_documents(self, documents: list[VectorDocument]) -> int:
        """Embed and upsert documents in one batch.

        Returns only after Qdrant acknowledged the write.

        Args:
            documents: Documents to index

        Returns:
            Number of points written
        """
        if not documents:
            return 0

        vectors = await self._embed([doc.text for doc in documents])
        await self._ensure_collection(len(vectors[0]))

        points = [
            models.PointStruct(
                id=doc.id,
                vector=vector,
                payload={"text": doc.text, **doc.metadata},
            )
            for doc, vector in zip(documents, vectors, strict=True)
        ]
        await self.client.upsert(
            collection_name=self.collection, points=points, wait=True
        )
        return len(points)

    async def search(self, query: str, limit: int = 5) -> list[SearchHit]:
        """Return the messages closest to a free-text query."""
        if not await self.client.collection_exists(self.collection):
            return []

        [vector] = await self._embed([query])
        response = await self.client.query_points(
            collection_name=self.collection,
            query=vector,
            limit=limit,
            with_payload=True,
        )

        hits: list[SearchHit] = []
        for point in response.points:
            payload = point.payload or {}
            hits.append(
                SearchHit(
                    message_id=int(point.id),
                    score=point.score,
                    text=payload.get("text", ""),
                    channel_id=_optional_int(payload.get("channelId")),
                    author_id=_optional_int(payload.get("authorId")),
                    sent_at=payload.get("sentAt"),
                )
            )
        return hits

    async def close(self) -> None:
        await self.client.close()
