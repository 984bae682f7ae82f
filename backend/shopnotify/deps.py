"""
FastAPI dependencies for the notification routes.

A new repository and dispatcher are built per request; the delivery router
(and its choice of real or null-object senders) is built once per process.
Tests override these with ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from shopnotify.config import get_settings
from shopnotify.services.delivery import DeliveryRouter, build_delivery_router
from shopnotify.services.dispatcher import NotificationDispatcher
from shopnotify.services.repository import NotificationRepository, SupabaseRepository


def get_repository() -> NotificationRepository:
    return SupabaseRepository()


@lru_cache(maxsize=1)
def get_delivery_router() -> DeliveryRouter:
    return build_delivery_router(get_settings())


def get_dispatcher(
    repository: NotificationRepository = Depends(get_repository),
    delivery: DeliveryRouter = Depends(get_delivery_router),
) -> NotificationDispatcher:
    return NotificationDispatcher(repository, delivery, get_settings())
