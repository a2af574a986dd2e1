"""Document-level citations for generated answers."""

from typing import List
from uuid import UUID

from grounding_engine.models.retrieval import Citation, RankedChunk


def build_citations(results: List[RankedChunk]) -> List[Citation]:
    """
    Collapse ranked chunks into one citation per source document.

    Args:
        results: Ranked retrieval results.

    Returns:
        Citations in order of each document's first appearance.
    """
    seen: set[UUID] = set()
    citations = []
    for result in results:
        if result.document_id in seen:
            continue
        seen.add(result.document_id)
        citations.append(Citation(document_id=result.document_id, title=result.title))
    return citations
