"""Artifact storage exceptions."""


class StorageError(Exception):
    """Writing or deleting an invoice artifact failed."""


class InvalidKeyError(StorageError):
    """The artifact key escapes the storage root."""
