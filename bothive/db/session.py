import logging

from bothive.core.config import MONGODB, SUPABASE, DatabaseConfig
from bothive.core.errors import ConfigurationError
from bothive.db.adapter import DatabaseAdapter

logger = logging.getLogger(__name__)


def create_adapter(config: DatabaseConfig) -> DatabaseAdapter:
    """
    Build the adapter for the configured provider.

    Called once at startup; the result is never swapped afterwards.
    """
    if config.provider == SUPABASE:
        from bothive.db.supabase_provider import SupabaseAdapter
        adapter = SupabaseAdapter(config)
    elif config.provider == MONGODB:
        from bothive.db.mongodb_provider import MongoDBAdapter
        adapter = MongoDBAdapter(config)
    else:
        raise ConfigurationError(f"Unsupported database provider: {config.provider}")

    logger.info(f"Database provider selected: {adapter.name}")
    return adapter
