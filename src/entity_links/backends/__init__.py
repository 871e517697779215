"""Backend implementations."""

from entity_links.backends.local import LocalBackend
from entity_links.backends.supabase import SupabaseBackend

__all__ = ["LocalBackend", "SupabaseBackend"]
