"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- registry: camera/NVR device registry (HTTP)
- storage: object storage (S3-compatible, Google Cloud Storage by default)
- state: checkpoint persistence

These wrappers implement the protocols declared in core.backup.
"""
