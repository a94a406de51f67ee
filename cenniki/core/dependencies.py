"""
Request dependencies for the long-lived service objects.

The catalog store, notifier and scheduler are constructed once by the
application lifespan (see main.py) and kept on ``app.state``.
"""

from fastapi import Request

from cenniki.services.catalog_store import CatalogStore
from cenniki.services.notifier import PriceChangeNotifier
from cenniki.services.scheduler import PriceChangeScheduler


def get_catalog_store(request: Request) -> CatalogStore:
    return request.app.state.catalog_store


def get_notifier(request: Request) -> PriceChangeNotifier:
    return request.app.state.notifier


def get_scheduler(request: Request) -> PriceChangeScheduler:
    return request.app.state.scheduler
