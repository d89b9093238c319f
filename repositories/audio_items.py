"""
Audio item repository.

Audio items hang off a soundspot and are played, rated and reviewed on
their own. Creating or uploading an item prepends it locally; updates and
deletes are applied to every mirror that holds the id.
"""

from typing import Any, Dict, List, Optional
import logging

from shared.api_client import open_upload
from shared.constants import ENDPOINTS, RATING_MAX, RATING_MIN
from shared.exceptions import SoundspotsError, StaleReviewError, ValidationError
from shared.models import AudioItem, Review, ReviewPage

from .base import Repository, form_fields, parse_collection, parse_entity

logger = logging.getLogger(__name__)

_ITEM_KEYS = ("audioItems", "items", "data")
_MIRRORS = ("audio_items", "my_audio_items", "new_stories", "best_reviewed", "pending_items")

# snake_case fields accepted by create/update -> API names
_ITEM_FIELDS = {
    "title": "title",
    "description": "description",
    "category": "category",
    "audio_url": "audioUrl",
    "duration": "duration",
    "soundspot_id": "soundspot",
    "soundspot": "soundspot",
}


def _to_api(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {_ITEM_FIELDS.get(k, k): v for k, v in fields.items() if v is not None}


class AudioItemRepository(Repository):
    """Audio item lists, uploads, plays and ratings."""

    def __init__(self, api, session):
        super().__init__(api, session)
        self.audio_items: List[AudioItem] = []
        self.my_audio_items: List[AudioItem] = []
        self.new_stories: List[AudioItem] = []
        self.best_reviewed: List[AudioItem] = []
        self.pending_items: List[AudioItem] = []

    def reset_user_data(self) -> None:
        self._replace("my_audio_items", [])
        if not self.session.is_admin_logged_in:
            self._replace("pending_items", [])

    # Fetching

    def fetch_audio_items(self) -> List[AudioItem]:
        with self._operation():
            return self._fetch_into("audio_items", ENDPOINTS["AUDIO_ITEMS"])

    def fetch_my_audio_items(self) -> List[AudioItem]:
        if not self.session.is_logged_in:
            logger.debug("fetch_my_audio_items: user not logged in")
            return []
        with self._operation():
            return self._fetch_into("my_audio_items", ENDPOINTS["AUDIO_ITEMS_MY_ITEMS"])

    def fetch_new_stories(self) -> List[AudioItem]:
        with self._operation():
            return self._fetch_into("new_stories", ENDPOINTS["AUDIO_ITEMS_NEW_STORIES"])

    def fetch_best_reviewed(self) -> List[AudioItem]:
        with self._operation():
            return self._fetch_into("best_reviewed", ENDPOINTS["AUDIO_ITEMS_BEST_REVIEWED"])

    def fetch_pending_items(self) -> List[AudioItem]:
        with self._operation():
            token = self._admin_token()
            return self._fetch_into("pending_items", ENDPOINTS["AUDIO_ITEMS_PENDING"], token=token)

    def fetch_by_soundspot(self, soundspot_id: str) -> List[AudioItem]:
        """Items of one soundspot. The result is returned, not mirrored."""
        with self._operation():
            data = self.api.get(f"{ENDPOINTS['AUDIO_ITEMS_BY_SOUNDSPOT']}/{soundspot_id}",
                                default_message="Failed to fetch audio items")
            return parse_collection(data, AudioItem, *_ITEM_KEYS)

    def get_audio_item(self, item_id: str) -> AudioItem:
        with self._operation():
            data = self.api.get(f"{ENDPOINTS['AUDIO_ITEMS']}/{item_id}",
                                default_message="Failed to fetch audio item")
            return parse_entity(data, AudioItem, "audioItem", "item")

    # Mutations

    def create_audio_item(self, title: str, soundspot_id: str, audio_url: str,
                          description: Optional[str] = None, category: Optional[str] = None,
                          duration: Optional[float] = None) -> AudioItem:
        """Create an item from an already hosted audio URL."""
        body = _to_api({
            "title": title,
            "soundspot_id": soundspot_id,
            "audio_url": audio_url,
            "description": description,
            "category": category,
            "duration": duration,
        })
        with self._operation():
            self._require_login()
            data = self.api.post(ENDPOINTS["AUDIO_ITEMS"], json=body,
                                 default_message="Failed to create audio item")
            item = parse_entity(data, AudioItem, "audioItem", "item")
            self._prepend(("audio_items", "my_audio_items"), item)
            return item

    def upload_audio_item(self, audio_path: str, title: str, soundspot_id: str,
                          description: Optional[str] = None,
                          category: Optional[str] = None) -> AudioItem:
        """Upload a local audio file as a new item of a soundspot."""
        with self._operation():
            self._require_login()
            fields = form_fields(title=title, soundspot=soundspot_id,
                                 description=description, category=category)
            with open_upload(audio_path, "audio") as files:
                data = self.api.post(ENDPOINTS["AUDIO_ITEMS"], data=fields, files=files,
                                     default_message="Failed to upload audio item")
            item = parse_entity(data, AudioItem, "audioItem", "item")
            self._prepend(("audio_items", "my_audio_items"), item)
            return item

    def update_audio_item(self, item_id: str, patch: Dict[str, Any]) -> AudioItem:
        """
        Update an item and replace it in every mirror that holds it.

        Args:
            patch: Fields to change, snake_case (title, description, category, ...)
        """
        with self._operation():
            self._require_login()
            data = self.api.put(f"{ENDPOINTS['AUDIO_ITEMS']}/{item_id}", json=_to_api(patch),
                                default_message="Failed to update audio item")
            item = parse_entity(data, AudioItem, "audioItem", "item")
            self._replace_everywhere(_MIRRORS, item)
            return item

    def delete_audio_item(self, item_id: str) -> None:
        with self._operation():
            self._require_login()
            self.api.delete(f"{ENDPOINTS['AUDIO_ITEMS']}/{item_id}",
                            default_message="Failed to delete audio item")
            self._remove_everywhere(_MIRRORS, item_id)
            logger.info("Deleted audio item %s", item_id)

    def track_play(self, item_id: str) -> None:
        """Count a play. Failures are logged and otherwise ignored."""
        try:
            self.api.post(f"{ENDPOINTS['AUDIO_ITEMS_PLAY']}/{item_id}",
                          default_message="Failed to track play")
        except SoundspotsError as e:
            logger.warning("Could not track play for %s: %s", item_id, e.message)

    # Ratings

    def add_review(self, item_id: str, rating: int, comment: Optional[str] = None) -> Review:
        """Rate an item from 1 to 5 stars, optionally with a comment."""
        with self._operation():
            self._require_login()
            if not isinstance(rating, int) or isinstance(rating, bool) \
                    or not RATING_MIN <= rating <= RATING_MAX:
                raise ValidationError(f"Rating must be between {RATING_MIN} and {RATING_MAX}")
            body: Dict[str, Any] = {"rating": rating}
            if comment:
                body["comment"] = comment
            data = self.api.post(f"{ENDPOINTS['AUDIO_ITEMS']}/{item_id}/reviews", json=body,
                                 default_message="Failed to submit review")
            return parse_entity(data, Review, "review")

    def get_reviews(self, item_id: str, page: int = 1, limit: int = 10) -> ReviewPage:
        with self._operation():
            data = self.api.get(f"{ENDPOINTS['AUDIO_ITEMS']}/{item_id}/reviews",
                                params={"page": page, "limit": limit},
                                default_message="Failed to fetch reviews")
            return ReviewPage.from_dict(data or {}, page=page)

    # Moderation

    def review_audio_item(self, item_id: str, approved: bool, notes: Optional[str] = None) -> None:
        """Approve or reject a pending item. An id no longer pending raises StaleReviewError."""
        with self._operation():
            token = self._admin_token()
            if not self._contains(self.pending_items, item_id):
                raise StaleReviewError(item_id)
            self.api.post(ENDPOINTS["AUDIO_ITEMS_REVIEW"],
                          json={"itemId": item_id, "approved": approved, "notes": notes},
                          token=token, default_message="Failed to review audio item")
            self._remove_everywhere(("pending_items",), item_id)
            logger.info("Audio item %s %s", item_id, "approved" if approved else "rejected")
            if approved:
                self._fetch_into("audio_items", ENDPOINTS["AUDIO_ITEMS"])

    def _fetch_into(self, name: str, path: str, token: Optional[str] = None) -> List[AudioItem]:
        data = self.api.get(path, token=token, default_message="Failed to fetch audio items")
        items = parse_collection(data, AudioItem, *_ITEM_KEYS)
        self._replace(name, items)
        return items
