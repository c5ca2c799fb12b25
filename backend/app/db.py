"""
Supabase client configuration.
Only Storage is used: uploads are staged there by the front end and removed
once analysis finishes.
"""

from functools import lru_cache
from typing import Optional

from supabase import create_client, Client

from app import config


@lru_cache(maxsize=1)
def get_supabase_admin() -> Optional[Client]:
    """
    Return the service-level Supabase client, or None when it is not configured.

    Created on first use so importing the app never requires credentials.
    """
    if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_KEY:
        return None
    return create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_KEY)
