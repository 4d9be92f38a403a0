"""
Post-processing: once-per-run derivation of the ``post_*`` tables.
"""

from .controller import (
    PostProcessor,
    WalkStatus,
    clear,
    finish,
    is_processed,
    list_runs,
    post_process_all,
    prepare,
    walk_all,
)
from .lineage import DecayLaw, LineageResolver, ResourceArena, TransformKind, TransformRules
from .walker import Holding, InventoryWalker

__all__ = [
    "DecayLaw",
    "Holding",
    "InventoryWalker",
    "LineageResolver",
    "PostProcessor",
    "ResourceArena",
    "TransformKind",
    "TransformRules",
    "WalkStatus",
    "clear",
    "finish",
    "is_processed",
    "list_runs",
    "post_process_all",
    "prepare",
    "walk_all",
]
