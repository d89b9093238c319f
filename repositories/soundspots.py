"""
Soundspot repository.

Mirrors three lists: approved spots for public discovery, the user's own
spots, and the admin review queue. Deleting a spot removes it from all
three; reviewing one takes it out of the queue and, when approved,
refreshes the public list so it becomes discoverable.
"""

from typing import List, Optional
import logging

from shared.api_client import open_upload
from shared.constants import ENDPOINTS
from shared.exceptions import StaleReviewError, ValidationError
from shared.models import Soundspot

from .base import Repository, form_fields, parse_collection, parse_entity

logger = logging.getLogger(__name__)

_SPOT_KEYS = ("spots", "soundspots", "data")
_MIRRORS = ("soundspots", "my_spots", "pending_spots")


class SoundspotRepository(Repository):
    """Fetches and mutates soundspots, keeping the mirrored lists consistent."""

    def __init__(self, api, session):
        super().__init__(api, session)
        self.soundspots: List[Soundspot] = []
        self.my_spots: List[Soundspot] = []
        self.pending_spots: List[Soundspot] = []

    def reset_user_data(self) -> None:
        self._replace("my_spots", [])
        if not self.session.is_admin_logged_in:
            self._replace("pending_spots", [])

    # Fetching

    def fetch_soundspots(self) -> List[Soundspot]:
        """Replace the public list with the approved spots from the server."""
        with self._operation():
            return self._fetch_public()

    def fetch_my_spots(self) -> List[Soundspot]:
        """Replace the user's own spots. No-op without a regular session."""
        if not self.session.is_logged_in:
            logger.debug("fetch_my_spots: user not logged in")
            return []
        with self._operation():
            return self._fetch_mine()

    def fetch_pending_spots(self) -> List[Soundspot]:
        """Replace the review queue (admin or reviewer only)."""
        with self._operation():
            token = self._admin_token()
            data = self.api.get(ENDPOINTS["SOUNDSPOTS_PENDING"], token=token,
                                default_message="Failed to fetch pending spots")
            spots = parse_collection(data, Soundspot, *_SPOT_KEYS)
            self._replace("pending_spots", spots)
            return spots

    def get_soundspot(self, spot_id: str) -> Soundspot:
        with self._operation():
            data = self.api.get(f"{ENDPOINTS['SOUNDSPOT']}/{spot_id}",
                                default_message="Failed to fetch soundspot")
            return parse_entity(data, Soundspot, "soundspot", "spot")

    # Mutations

    def create_soundspot(self, name: str, latitude: float, longitude: float,
                         audio_path: str, script: Optional[str] = None) -> Soundspot:
        """Create a spot with its narration; the public list is re-fetched afterwards."""
        with self._operation():
            fields = form_fields(name=name, latitude=latitude, longitude=longitude, script=script)
            with open_upload(audio_path, "audio") as files:
                data = self.api.post(ENDPOINTS["SOUNDSPOT"], data=fields, files=files,
                                     default_message="Failed to create soundspot")
            created = parse_entity(data, Soundspot, "soundspot", "spot")
            self._fetch_public()
            return created

    def upload_spot(self, audio_path: str, latitude: float, longitude: float,
                    terms_accepted: bool, name: Optional[str] = None,
                    script: Optional[str] = None) -> Soundspot:
        """Submit a spot for review; the user's own list is re-fetched afterwards."""
        with self._operation():
            self._require_login()
            if not terms_accepted:
                raise ValidationError("You must accept the terms to upload a spot")
            fields = form_fields(latitude=latitude, longitude=longitude,
                                 termsAccepted=terms_accepted, name=name, script=script)
            with open_upload(audio_path, "audioFile") as files:
                data = self.api.post(ENDPOINTS["SPOTS_UPLOAD"], data=fields, files=files,
                                     default_message="Failed to upload spot")
            created = parse_entity(data, Soundspot, "spot", "soundspot")
            self._fetch_mine()
            return created

    def update_spot_location(self, spot_id: str, latitude: float, longitude: float) -> None:
        with self._operation():
            self._require_login()
            self.api.post(ENDPOINTS["SPOTS_LOCATION"],
                          json={"spotId": spot_id, "latitude": latitude, "longitude": longitude},
                          default_message="Failed to update spot location")
            self._fetch_mine()

    def delete_spot(self, spot_id: str, as_admin: bool = False) -> None:
        """
        Delete a spot and drop it from every mirror in the same step.

        Args:
            as_admin: Authenticate with the admin token instead of the user's
        """
        with self._operation():
            token = self._admin_token() if as_admin else None
            self.api.delete(f"{ENDPOINTS['SOUNDSPOTS']}/{spot_id}", token=token,
                            default_message="Failed to delete spot")
            self._remove_everywhere(_MIRRORS, spot_id)
            logger.info("Deleted spot %s", spot_id)

    def review_spot(self, spot_id: str, approved: bool, notes: Optional[str] = None) -> None:
        """
        Approve or reject a pending spot.

        Each spot is reviewed once: an id that is not in the pending mirror
        raises StaleReviewError without contacting the server.
        """
        with self._operation():
            token = self._admin_token()
            if not self._contains(self.pending_spots, spot_id):
                raise StaleReviewError(spot_id)
            self.api.post(ENDPOINTS["SOUNDSPOTS_REVIEW"],
                          json={"spotId": spot_id, "approved": approved, "notes": notes},
                          token=token, default_message="Failed to review spot")
            self._remove_everywhere(("pending_spots",), spot_id)
            logger.info("Spot %s %s", spot_id, "approved" if approved else "rejected")
            if approved:
                self._fetch_public()

    # Internals

    def _fetch_public(self) -> List[Soundspot]:
        data = self.api.get(ENDPOINTS["SOUNDSPOTS"], default_message="Failed to fetch soundspots")
        spots = [s for s in parse_collection(data, Soundspot, *_SPOT_KEYS) if s.is_public]
        self._replace("soundspots", spots)
        return spots

    def _fetch_mine(self) -> List[Soundspot]:
        data = self.api.get(ENDPOINTS["SPOTS_MY"], default_message="Failed to fetch your spots")
        spots = parse_collection(data, Soundspot, *_SPOT_KEYS)
        self._replace("my_spots", spots)
        return spots
