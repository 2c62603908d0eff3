"""Storage backend singletons selected by the STORAGE_BACKEND setting."""

from functools import lru_cache

from storefront.core.config import get_settings
from storefront.core.supabase import get_supabase_client
from storefront.repositories.inventory import (
    InMemoryInventoryStore,
    InventoryStore,
    SupabaseInventoryStore,
)
from storefront.repositories.orders import (
    InMemoryOrderRepository,
    OrderRepository,
    SupabaseOrderRepository,
)


@lru_cache
def get_inventory_store() -> InventoryStore:
    """Get cached inventory store for the configured backend."""
    if get_settings().storage_backend == "memory":
        return InMemoryInventoryStore()
    return SupabaseInventoryStore(get_supabase_client())


@lru_cache
def get_order_repository() -> OrderRepository:
    """Get cached order repository for the configured backend."""
    if get_settings().storage_backend == "memory":
        return InMemoryOrderRepository()
    return SupabaseOrderRepository(get_supabase_client())
