"""Artifact storage entry point."""
from core.config import InvoiceSettings
from .exceptions import InvalidKeyError, StorageError
from .local import LocalArtifactStorage


def create_invoice_storage(config: InvoiceSettings) -> LocalArtifactStorage:
    return LocalArtifactStorage(config.local_base_path, public_base_url=config.public_base_url)


__all__ = [
    "LocalArtifactStorage",
    "StorageError",
    "InvalidKeyError",
    "create_invoice_storage",
]
