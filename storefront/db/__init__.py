from .client import supabase_client, SupabaseClient, is_conflict

__all__ = ["supabase_client", "SupabaseClient", "is_conflict"]
