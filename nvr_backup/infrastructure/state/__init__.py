"""
Checkpoint persistence for backup runs.
"""

from .checkpoint import FileCheckpointStore, MemoryCheckpointStore, create_checkpoint_store

__all__ = ["FileCheckpointStore", "MemoryCheckpointStore", "create_checkpoint_store"]
