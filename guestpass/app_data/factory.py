"""
Factory for creating the app data module.
"""

from typing import Callable, Optional

from guestpass.data_cache import DataCacheService
from guestpass.remote import DocumentStore
from .store import AppDataStore


def create_app_data_module(
    document_store: DocumentStore,
    cache: DataCacheService,
    residents_limit: int = 5000,
    units_page_size: int = 1000,
    communities_limit: int = 100,
    clock: Optional[Callable[[], int]] = None,
) -> dict:
    """
    Create the app data module.

    Returns:
        Dictionary with:
        - store: AppDataStore instance
    """
    store = AppDataStore(
        document_store=document_store,
        cache=cache,
        residents_limit=residents_limit,
        units_page_size=units_page_size,
        communities_limit=communities_limit,
        clock=clock,
    )

    return {
        "store": store,
    }
