"""
Entity Store package.

The store is injected, never imported as a global client:
    - create_app() registers a SqlEntityStore via init_entity_store()
    - request code fetches it with get_entity_store()
    - unit tests construct InMemoryEntityStore directly and pass it to the
      pipeline / consistency service
"""

from flask import current_app

from app.store.base import EntityStore
from app.store.memory import InMemoryEntityStore

EXTENSION_KEY = "entity_store"


def init_entity_store(app, store: EntityStore | None = None) -> EntityStore:
    if store is None:
        from app.store.sql import SqlEntityStore
        store = SqlEntityStore()
    app.extensions[EXTENSION_KEY] = store
    return store


def get_entity_store() -> EntityStore:
    return current_app.extensions[EXTENSION_KEY]


__all__ = ["EntityStore", "InMemoryEntityStore", "get_entity_store", "init_entity_store"]
