"""Clients for the external sources the pipeline reads from."""
from regularizer.clients.catalog_client import CatalogRecord, CatalogSession, ReferenceCatalog
from regularizer.clients.dataset_client import DatasetClient, DatasetUnavailableError
from regularizer.clients.openai_client import OpenAIClient

__all__ = [
    "CatalogRecord",
    "CatalogSession",
    "ReferenceCatalog",
    "DatasetClient",
    "DatasetUnavailableError",
    "OpenAIClient",
]
