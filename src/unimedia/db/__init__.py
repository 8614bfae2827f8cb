"""Storage backends for the plans table.

Provides:
- SQLite connection management and schema initialization
- SqlitePlanStore (local file, default)
- SupabasePlanStore (hosted table), imported on demand by open_plan_store
"""

from __future__ import annotations

from pathlib import Path

from unimedia.config.app_config import StoreConfig
from unimedia.core.plans import PlanStore
from unimedia.db.database import get_db, init_db
from unimedia.db.plans_repository import SqlitePlanStore


def open_plan_store(config: StoreConfig) -> PlanStore:
    """Build the PlanStore selected by configuration.

    Raises:
        ConfigError: If the hosted backend lacks URL or key
    """
    if config.backend == "supabase":
        from unimedia.db.supabase_repository import SupabasePlanStore

        return SupabasePlanStore.from_config(config)
    return SqlitePlanStore(Path(config.db_path))


__all__ = ["get_db", "init_db", "open_plan_store", "SqlitePlanStore"]
