"""
NVR Backup - incremental backup of NVR video clips to cloud object storage.

This package contains the complete application:
- core: Framework-agnostic backup pipeline
- infrastructure: Registry, object store and checkpoint integrations
- api: FastAPI health checks and run trigger
- config: Application configuration
"""

__version__ = "0.1.0"
