"""
Wiring of the backup pipeline.

Turns Settings into concrete collaborators. Both the CLI and the API build
their orchestrators here, so mock modes behave the same everywhere.
"""

import logging
from typing import Callable, Optional

from .config.settings import Settings
from .core.backup.clips import ClipSource, DeviceRegistry
from .core.backup.orchestrator import BackupConfig, BackupOrchestrator, CheckpointStore
from .core.backup.uploader import ObjectStore
from .infrastructure.registry.client import connect_registry
from .infrastructure.state.checkpoint import create_checkpoint_store
from .infrastructure.storage.client import create_object_store


def create_registry(settings: Settings, log: Optional[logging.Logger] = None) -> DeviceRegistry:
    return connect_registry(
        settings.to_registry_config(),
        mock_mode=settings.nvr_mock_mode,
        log=log,
    )


def store_factory_for(settings: Settings, log: Optional[logging.Logger] = None) -> Callable[[], ObjectStore]:
    """
    Deferred object store construction.

    Missing store settings surface as StorageConfigError the moment a run
    has clips to upload, before any upload is attempted.
    """
    def factory() -> ObjectStore:
        return create_object_store(
            settings.to_storage_config(),
            mock_mode=settings.store_mock_mode,
            log=log,
        )
    return factory


def build_orchestrator(
    settings: Settings,
    log: logging.Logger,
    registry: Optional[DeviceRegistry] = None,
    checkpoint_store: Optional[CheckpointStore] = None,
    store_factory: Optional[Callable[[], ObjectStore]] = None,
    config: Optional[BackupConfig] = None,
) -> BackupOrchestrator:
    """Orchestrator for settings; any collaborator can be overridden."""
    config = config or settings.to_backup_config()
    registry = registry or create_registry(settings, log)
    if checkpoint_store is None:
        checkpoint_store = create_checkpoint_store(settings.state_file_path, log=log)

    return BackupOrchestrator(
        config=config,
        checkpoint_store=checkpoint_store,
        clip_source=ClipSource(registry, config.retry_policy, log),
        store_factory=store_factory or store_factory_for(settings, log),
        log=log,
    )
