"""Document chunking service."""

import uuid
from typing import List, Optional
from uuid import UUID

from grounding_engine.core.config import settings
from grounding_engine.core.exceptions import ConfigurationError
from grounding_engine.models.document import Chunk, TextFragment


class ChunkingService:
    """Service for splitting document text into overlapping windows."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        min_chunk_length: Optional[int] = None,
    ) -> None:
        """
        Initialize the chunking service.

        Args:
            chunk_size: Window size in characters.
            chunk_overlap: Characters shared by consecutive windows.
            min_chunk_length: Fragments shorter than this are dropped.
        """
        self.chunk_size = chunk_size if chunk_size is not None else settings.chunk_size
        self.chunk_overlap = (
            chunk_overlap if chunk_overlap is not None else settings.chunk_overlap
        )
        self.min_chunk_length = (
            min_chunk_length if min_chunk_length is not None else settings.min_chunk_length
        )
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be positive")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ConfigurationError("chunk_overlap must be in [0, chunk_size)")

    def _generate_chunk_uuid(self, document_id: UUID, version: int, chunk_index: int) -> str:
        """
        Generate a deterministic UUID for a chunk.

        Args:
            document_id: ID of the source document.
            version: Document version the chunk was cut from.
            chunk_index: Index of the chunk.

        Returns:
            UUID string for the chunk.
        """
        namespace = uuid.UUID("00000000-0000-0000-0000-000000000000")
        name = f"{document_id}:{version}:{chunk_index}"
        return str(uuid.uuid5(namespace, name))

    def split_text(self, text: str) -> List[TextFragment]:
        """
        Split text into overlapping windows.

        Window i starts at i * (chunk_size - chunk_overlap). Windows are cut
        until one reaches the end of the text, so the input is covered with
        no gaps. Windows too short to carry meaning are dropped and the
        survivors re-indexed from zero.

        Args:
            text: Text to split.

        Returns:
            Ordered fragments; empty for empty or whitespace-only text.
        """
        if not text or not text.strip():
            return []

        step = self.chunk_size - self.chunk_overlap
        length = len(text)
        fragments: List[TextFragment] = []
        start = 0
        while start < length:
            end = min(start + self.chunk_size, length)
            content = text[start:end]
            if len(content.strip()) >= self.min_chunk_length:
                fragments.append(
                    TextFragment(
                        chunk_index=len(fragments),
                        content=content,
                        start_char=start,
                        end_char=end,
                    )
                )
            if end >= length:
                break
            start += step
        return fragments

    def chunk_document(self, content: str, document_id: UUID, version: int = 1) -> List[Chunk]:
        """
        Chunk a document into smaller pieces.

        Args:
            content: Document content to chunk.
            document_id: ID of the source document.
            version: Document version being processed.

        Returns:
            List of chunks without embeddings.
        """
        return [
            Chunk(
                id=self._generate_chunk_uuid(document_id, version, fragment.chunk_index),
                document_id=document_id,
                chunk_index=fragment.chunk_index,
                content=fragment.content,
                start_char=fragment.start_char,
                end_char=fragment.end_char,
                document_version=version,
            )
            for fragment in self.split_text(content)
        ]
