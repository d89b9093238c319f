"""
Favorites repository.

A favorite is identified by its (item_id, item_type) pair: adding a pair
that already exists returns the existing record instead of creating a
second one. Lookups read the local mirror, so they reflect an add or a
remove as soon as it succeeds.
"""

from typing import List, Optional, Union
import logging

from shared.constants import ENDPOINTS
from shared.exceptions import ValidationError
from shared.models import Favorite, ItemType

from .base import Repository, parse_collection, parse_entity

logger = logging.getLogger(__name__)


def _item_type(value: Union[ItemType, str]) -> ItemType:
    if isinstance(value, ItemType):
        return value
    try:
        return ItemType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in ItemType)
        raise ValidationError(f"Unknown item type {value!r}; expected one of {allowed}") from None


class FavoritesRepository(Repository):
    """The logged-in user's favorites."""

    def __init__(self, api, session):
        super().__init__(api, session)
        self.favorites: List[Favorite] = []

    def reset_user_data(self) -> None:
        self._replace("favorites", [])

    def fetch_favorites(self) -> List[Favorite]:
        if not self.session.is_logged_in:
            logger.debug("fetch_favorites: user not logged in")
            return []
        with self._operation():
            data = self.api.get(ENDPOINTS["FAVORITES"], default_message="Failed to fetch favorites")
            favorites = parse_collection(data, Favorite, "favorites", "data")
            self._replace("favorites", favorites)
            return favorites

    def add_to_favorites(self, item_id: str, item_type: Union[ItemType, str]) -> Favorite:
        """
        Favorite an item.

        Returns:
            The new favorite, or the existing one when the pair is already favorited
        """
        with self._operation():
            item_type = _item_type(item_type)
            existing = self._find(item_id, item_type)
            if existing:
                logger.debug("%s %s already favorited", item_type.value, item_id)
                return existing

            self._require_login()
            data = self.api.post(ENDPOINTS["FAVORITES"],
                                 json={"itemId": item_id, "itemType": item_type.value},
                                 default_message="Failed to add favorite")
            favorite = parse_entity(data, Favorite, "favorite")
            with self._lock:
                # A concurrent add of the same pair may have landed first
                existing = self._find(item_id, item_type)
                if existing:
                    return existing
                self._prepend(("favorites",), favorite)
            return favorite

    def remove_from_favorites(self, favorite_id: str) -> None:
        with self._operation():
            self._require_login()
            self.api.delete(f"{ENDPOINTS['FAVORITES']}/{favorite_id}",
                            default_message="Failed to remove favorite")
            self._remove_everywhere(("favorites",), favorite_id)

    def toggle_favorite(self, item_id: str, item_type: Union[ItemType, str]) -> bool:
        """Add or remove the favorite. Returns True if the item is now a favorite."""
        favorite_id = self.get_favorite_id(item_id, item_type)
        if favorite_id:
            self.remove_from_favorites(favorite_id)
            return False
        self.add_to_favorites(item_id, item_type)
        return True

    def is_favorite(self, item_id: str, item_type: Union[ItemType, str]) -> bool:
        return self._find(item_id, _item_type(item_type)) is not None

    def get_favorite_id(self, item_id: str, item_type: Union[ItemType, str]) -> Optional[str]:
        favorite = self._find(item_id, _item_type(item_type))
        return favorite.id if favorite else None

    def _find(self, item_id: str, item_type: ItemType) -> Optional[Favorite]:
        key = (item_id, item_type)
        return next((f for f in self.favorites if f.key == key), None)
