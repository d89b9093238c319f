"""Repositories mirroring the remote soundspot, audio item, favorite and subscription collections."""

from .audio_items import AudioItemRepository
from .base import Repository
from .favorites import FavoritesRepository
from .soundspots import SoundspotRepository
from .subscriptions import SubscriptionRepository

__all__ = [
    "AudioItemRepository",
    "FavoritesRepository",
    "Repository",
    "SoundspotRepository",
    "SubscriptionRepository",
]
