"""Script to seed the knowledge base with shared sample documents."""

import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from grounding_engine.core.dependencies import services
from grounding_engine.models.document_api import IngestionRequest

logging.basicConfig(level=logging.INFO)

SAMPLE_DOCUMENTS = [
    {
        "title": "Hypertrophy Rep Ranges",
        "raw_text": "Muscle hypertrophy is driven primarily by mechanical tension. "
        "Sets taken close to failure in the 5-10 repetition range produce high tension on the "
        "working fibres while keeping fatigue manageable. Lighter loads can also build muscle "
        "when sets are taken to failure, but they accumulate more fatigue per unit of stimulus. "
        "Most lifters progress best by keeping the majority of their work in moderate rep ranges.",
    },
    {
        "title": "Rest Periods Between Sets",
        "raw_text": "Rest periods of 2-5 minutes between sets allow enough recovery to "
        "maintain performance on subsequent sets. Short rest periods reduce the number of "
        "repetitions completed and therefore the total mechanical tension of a session. "
        "Compound movements generally need longer rest than isolation exercises, and rest "
        "should be extended whenever performance drops sharply from one set to the next.",
    },
    {
        "title": "Training Volume and Frequency",
        "raw_text": "For each muscle group, 2-4 hard sets per session on a split that "
        "trains the muscle roughly every 72 hours gives a high weekly frequency without "
        "excessive soreness. Volume should be increased gradually, and a deload week every "
        "six to eight weeks helps manage accumulated fatigue. Progressive overload, adding "
        "load or repetitions over time, remains the central driver of long-term progress.",
    },
]


async def ingest_sample_documents() -> None:
    """Ingest the sample documents as shared knowledge."""
    await services.initialize()
    try:
        for doc in SAMPLE_DOCUMENTS:
            report = await services.ingestion.ingest(
                IngestionRequest(title=doc["title"], raw_text=doc["raw_text"], is_shared=True)
            )
            print(
                f"Ingested '{doc['title']}': {report.status}, "
                f"{report.chunks_created} chunks, {report.embeddings_generated} embedded"
            )
            for warning in report.warnings:
                print(f"  warning: {warning}")
            for error in report.errors:
                print(f"  error: {error}")
    finally:
        await services.shutdown()

    print(f"\nIngested {len(SAMPLE_DOCUMENTS)} documents")


if __name__ == "__main__":
    asyncio.run(ingest_sample_documents())
