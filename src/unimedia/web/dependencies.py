"""Request dependencies shared by route handlers."""

from fastapi import Request

from unimedia.config.app_config import load_app_config
from unimedia.core.plans import PlanStore
from unimedia.db import open_plan_store


def get_plan_store(request: Request) -> PlanStore:
    """Return the app's PlanStore, opening it from config on first use."""
    store = getattr(request.app.state, "plan_store", None)
    if store is None:
        config = getattr(request.app.state, "config", None) or load_app_config()
        store = open_plan_store(config.store)
        request.app.state.plan_store = store
    return store
