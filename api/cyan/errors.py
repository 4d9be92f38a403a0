"""
Error taxonomy for the metric engine.

- NotFoundError: a requested run, agent, or resource does not exist
- LineageBrokenError: the resource provenance graph is inconsistent
- StoreError: the DuckDB store, or a SQLite file being imported, failed

"Already processed" is not an error; see post.controller.WalkStatus.
"""


class CyanError(Exception):
    """Base class for all metric engine errors."""


class NotFoundError(CyanError):
    """A run, agent, resource, or metric name is absent."""


class LineageBrokenError(CyanError):
    """A provenance reference is missing or the graph contains a cycle.

    Attributes:
        resource_id: Resource whose lineage could not be resolved
    """

    def __init__(self, resource_id: int, message: str):
        super().__init__(f"resource {resource_id}: {message}")
        self.resource_id = resource_id


class StoreError(CyanError):
    """DuckDB I/O or constraint failure, or an unreadable import source."""
