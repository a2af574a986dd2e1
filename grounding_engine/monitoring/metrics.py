"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

query_counter = Counter("grounding_queries_total",
                        "Total number of queries processed")
query_errors_total = Counter(
    "grounding_query_errors_total", "Total number of query errors")
query_duration_seconds = Histogram(
    "grounding_query_duration_seconds", "Query processing duration", buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0])
grounded_answers_total = Counter(
    "grounding_grounded_answers_total", "Answers that used knowledge base fragments")
retrieval_degraded_total = Counter(
    "grounding_retrieval_degraded_total", "Queries answered without retrieval after an embedding failure")

ingestions_total = Counter(
    "grounding_ingestions_total", "Total number of ingestion runs", ["status"])
ingestion_errors_total = Counter(
    "grounding_ingestion_errors_total", "Total number of failed ingestion runs")
ingestion_duration_seconds = Histogram(
    "grounding_ingestion_duration_seconds", "Ingestion processing duration", buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0])
chunk_embedding_failures_total = Counter(
    "grounding_chunk_embedding_failures_total", "Chunks left without an embedding after ingestion")

audits_total = Counter("grounding_audits_total", "Total number of consistency audits")
repaired_chunks_total = Counter(
    "grounding_repaired_chunks_total", "Chunks re-embedded by repair passes")
