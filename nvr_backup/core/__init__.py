"""
Core backup logic.

This package is framework-agnostic: it doesn't import boto3, requests or
pydantic. Registries, object stores and checkpoint stores are injected
through protocols, so the pipeline can be tested in isolation.
"""
