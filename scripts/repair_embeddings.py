"""Audit stored embeddings and re-embed missing ones. Intended for cron or a job scheduler."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

from grounding_engine.core.dependencies import services

logging.basicConfig(level=logging.INFO)


async def repair(limit: Optional[int], audit_only: bool) -> int:
    """
    Run one audit and, unless disabled, one repair pass.

    Args:
        limit: Maximum number of chunks to re-embed.
        audit_only: Only report, do not re-embed.

    Returns:
        Process exit code: 0 when nothing is left missing.
    """
    await services.initialize()
    try:
        audit = await services.auditor.audit()
        print(f"Chunks: {audit.total_chunks}, embedded: {audit.embedded}, missing: {audit.missing}")
        for doc in audit.affected_documents:
            print(f"  {doc.title} ({doc.document_id}): {doc.missing_chunks} missing")

        if audit_only or audit.missing == 0:
            return 0 if audit.missing == 0 else 1

        report = await services.auditor.reembed_missing_chunks(limit=limit)
        print(report.message)
        if report.promoted_documents:
            print(f"Promoted to READY: {', '.join(str(d) for d in report.promoted_documents)}")

        remaining = await services.auditor.audit()
        print(f"Still missing after repair: {remaining.missing}")
        return 1 if remaining.missing else 0
    finally:
        await services.shutdown()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--limit", type=int, default=None, help="Maximum chunks to re-embed")
    parser.add_argument("--audit-only", action="store_true", help="Report without re-embedding")
    args = parser.parse_args()
    sys.exit(asyncio.run(repair(args.limit, args.audit_only)))
