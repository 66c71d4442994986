"""
Task aggregation pipeline.

Modules:
    base: SourceClient base class and per-source sync state tracking
    aggregator: TaskAggregator, AggregatorState and SyncResult
    scheduler: APScheduler integration (one interval job per source)
    source_filter: Per-user visibility of task sources

Subpackages:
    extractors: Source clients (issue tracker, Microsoft Graph) and the drop folder watcher
    transformers: Field access, SLA/attention evaluation and source normalization
    loaders: Task store with idempotent upsert and stale cleanup

Architecture:
    Each source runs fetch -> normalize -> reconcile:

    1. Fetch - the source client returns raw items (empty list for "no items")
    2. Normalize - the per-source strategy maps items onto NormalizedTask
    3. Reconcile - upsert every task, then delete tasks missing from the fetch

    A failed fetch stops before reconcile, so no tasks are deleted.

Usage:
    from ingestion.aggregator import TaskAggregator
    from ingestion.extractors.graph_source import GraphSource

Example:
    aggregator = TaskAggregator(async_session_maker, settings_provider=settings_store)
    aggregator.register_source(TaskSource.CALENDAR, GraphSource(TaskSource.CALENDAR, graph))

    results = await aggregator.sync_all()
    print([(r.source, r.count, r.error) for r in results])
"""

__all__ = [
    "SourceClient",
    "SyncStateTracker",
    "TaskAggregator",
    "AggregatorState",
    "SyncResult",
    "SyncScheduler",
    "SourceNormalizer",
    "TaskStore",
]
