"""
Data models for sessions, soundspots, audio items, favorites and payments.

Payloads from the API use camelCase keys and a storage-native `_id`. Every
model is built through `from_dict`, which normalizes the identifier and
gives optional fields stable defaults, so consumers never have to guard
individual field reads.
"""

from dataclasses import dataclass, asdict, field, replace
from typing import List, Dict, Optional, Any
from enum import Enum

from shared.constants import ADMIN_ROLES, DEFAULT_ROLE


def normalize_id(payload: Any) -> Any:
    """
    Return a copy of an API payload with a single canonical `id` field.

    `_id` wins over `id` when both are present and is removed afterwards.
    Normalizing an already normalized payload is a no-op.
    """
    if not isinstance(payload, dict):
        return payload
    data = dict(payload)
    raw = data.pop("_id", None)
    if raw is None:
        raw = data.get("id")
    if raw is not None:
        data["id"] = str(raw)
    return data


def normalize_list(items: Any) -> List[Dict[str, Any]]:
    """Normalize every entity of a collection payload, skipping non-objects."""
    if not isinstance(items, list):
        return []
    return [normalize_id(item) for item in items if isinstance(item, dict)]


def _str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _opt_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def is_admin_role(role: Optional[str]) -> bool:
    return role in ADMIN_ROLES


# Session fields: API key -> attribute name
_USER_FIELDS = {
    "id": "id",
    "name": "name",
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "phone": "phone",
    "dateOfBirth": "date_of_birth",
    "profilePicture": "profile_picture",
    "role": "role",
}
_REQUIRED_USER_FIELDS = {"id", "name", "email", "role"}


def _split_login_response(response: Dict[str, Any]) -> tuple:
    """Login/signup answers either {token, user: {...}} or a flat user with a token."""
    user = response.get("user") if isinstance(response.get("user"), dict) else response
    token = response.get("token") or user.get("token")
    return normalize_id(user), token


@dataclass
class UserSession:
    """
    Regular user session.

    Attributes:
        id: User identifier
        name: Display name
        email: Login email
        role: Account role ("user" unless the server says otherwise)
        token: Bearer token for authenticated calls
    """
    id: str
    name: str
    email: str
    token: str
    role: str = DEFAULT_ROLE
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = None
    profile_picture: Optional[str] = None

    @property
    def is_admin_role(self) -> bool:
        return is_admin_role(self.role)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserSession':
        """Create a session from a persisted blob or a user payload carrying a token."""
        data = normalize_id(data)
        return cls(
            id=_str(data.get("id")),
            name=_str(data.get("name")),
            email=_str(data.get("email")),
            token=_str(data.get("token")),
            role=_str(data.get("role"), DEFAULT_ROLE) or DEFAULT_ROLE,
            first_name=_opt_str(data.get("firstName")),
            last_name=_opt_str(data.get("lastName")),
            phone=_opt_str(data.get("phone")),
            date_of_birth=_opt_str(data.get("dateOfBirth")),
            profile_picture=_opt_str(data.get("profilePicture")),
        )

    @classmethod
    def from_login_response(cls, response: Dict[str, Any]) -> 'UserSession':
        user, token = _split_login_response(response)
        return cls.from_dict({**user, "token": token})

    def merge(self, patch: Dict[str, Any]) -> 'UserSession':
        """
        Apply a server user payload with merge-patch semantics.

        Only fields present in the patch overwrite the local copy. The token
        is never taken from the patch.
        """
        patch = normalize_id(patch or {})
        if isinstance(patch.get("user"), dict):
            patch = normalize_id(patch["user"])
        updates: Dict[str, Any] = {}
        for api_key, attr in _USER_FIELDS.items():
            if api_key not in patch:
                continue
            value = patch[api_key]
            if attr in _REQUIRED_USER_FIELDS:
                if value is None or value == "":
                    continue
                updates[attr] = str(value)
            else:
                updates[attr] = _opt_str(value)
        return replace(self, **updates)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize in API shape (camelCase) for persistence."""
        data = {api_key: getattr(self, attr) for api_key, attr in _USER_FIELDS.items()}
        data["token"] = self.token
        return data


@dataclass
class AdminSession:
    """Admin/reviewer session, stored and transmitted apart from the user session."""
    id: str
    name: str
    email: str
    role: str
    token: str
    is_admin: bool = True

    @property
    def is_admin_role(self) -> bool:
        return is_admin_role(self.role)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AdminSession':
        data = normalize_id(data)
        return cls(
            id=_str(data.get("id")),
            name=_str(data.get("name")),
            email=_str(data.get("email")),
            role=_str(data.get("role"), DEFAULT_ROLE) or DEFAULT_ROLE,
            token=_str(data.get("token")),
        )

    @classmethod
    def from_login_response(cls, response: Dict[str, Any]) -> 'AdminSession':
        user, token = _split_login_response(response)
        return cls.from_dict({**user, "token": token})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "token": self.token,
            "isAdmin": True,
        }


@dataclass
class GeoLocation:
    """A point on the map."""
    latitude: float = 0.0
    longitude: float = 0.0

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> 'GeoLocation':
        """
        Read a location from any of the shapes the API uses:
        a nested {"latitude", "longitude"} object, a GeoJSON point
        (coordinates are [longitude, latitude]) or flat fields.
        """
        location = data.get("location")
        if isinstance(location, dict):
            coords = location.get("coordinates")
            if isinstance(coords, (list, tuple)) and len(coords) >= 2:
                return cls(latitude=_float(coords[1]), longitude=_float(coords[0]))
            return cls(
                latitude=_float(location.get("latitude")),
                longitude=_float(location.get("longitude")),
            )
        return cls(latitude=_float(data.get("latitude")), longitude=_float(data.get("longitude")))


@dataclass
class CreatorRef:
    """Reference to the user who created an entity."""
    id: str
    name: str = ""
    email: str = ""

    @classmethod
    def from_value(cls, value: Any) -> 'CreatorRef':
        # Populated references arrive as objects, bare ones as id strings
        if isinstance(value, dict):
            value = normalize_id(value)
            return cls(id=_str(value.get("id")), name=_str(value.get("name")), email=_str(value.get("email")))
        return cls(id=_str(value))


class SoundspotStatus(Enum):
    """Review status of a soundspot or audio item."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, value: Any, approved: Any = None) -> 'SoundspotStatus':
        try:
            return cls(value)
        except ValueError:
            return cls.APPROVED if approved is True else cls.PENDING


@dataclass
class Soundspot:
    """
    A geolocated audio point of interest with its own narration.

    Attributes:
        id: Canonical identifier
        name: Display name
        location: Latitude/longitude
        audio_url: Playable narration
        status: pending, approved or rejected
        audio_items_count: Number of audio items attached
    """
    id: str
    name: str
    location: GeoLocation
    audio_url: str
    created_by: CreatorRef
    status: SoundspotStatus = SoundspotStatus.PENDING
    approved: bool = False
    script: str = ""
    public_id: str = ""
    reviewer_id: Optional[str] = None
    review_date: Optional[str] = None
    review_notes: Optional[str] = None
    terms_accepted: bool = False
    audio_items_count: int = 0
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_public(self) -> bool:
        return self.status == SoundspotStatus.APPROVED

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Soundspot':
        data = normalize_id(data)
        status = SoundspotStatus.parse(data.get("status"), data.get("approved"))
        return cls(
            id=_str(data.get("id")),
            name=_str(data.get("name")),
            location=GeoLocation.from_payload(data),
            audio_url=_str(data.get("audioUrl")),
            created_by=CreatorRef.from_value(data.get("createdBy")),
            status=status,
            approved=status == SoundspotStatus.APPROVED,
            script=_str(data.get("script")),
            public_id=_str(data.get("publicId")),
            reviewer_id=_opt_str(data.get("reviewerId")),
            review_date=_opt_str(data.get("reviewDate")),
            review_notes=_opt_str(data.get("reviewNotes")),
            terms_accepted=bool(data.get("termsAccepted", False)),
            audio_items_count=_int(data.get("audioItemsCount")),
            created_at=_str(data.get("createdAt")),
            updated_at=_str(data.get("updatedAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class SoundspotRef:
    """The soundspot an audio item belongs to."""
    id: str
    name: str = ""
    location: GeoLocation = field(default_factory=GeoLocation)

    @classmethod
    def from_value(cls, value: Any) -> 'SoundspotRef':
        if isinstance(value, dict):
            value = normalize_id(value)
            return cls(id=_str(value.get("id")), name=_str(value.get("name")),
                       location=GeoLocation.from_payload(value))
        return cls(id=_str(value))


def _rating_distribution(value: Any) -> Dict[int, int]:
    source = value if isinstance(value, dict) else {}
    return {star: _int(source.get(star, source.get(str(star)))) for star in range(1, 6)}


@dataclass
class AudioItem:
    """A piece of audio attached to a soundspot, independently playable and reviewable."""
    id: str
    title: str
    audio_url: str
    soundspot: SoundspotRef
    created_by: CreatorRef
    description: str = ""
    category: str = ""
    duration: Optional[float] = None
    status: str = ""
    play_count: int = 0
    average_rating: float = 0.0
    total_reviews: int = 0
    rating_distribution: Dict[int, int] = field(default_factory=lambda: _rating_distribution(None))
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AudioItem':
        data = normalize_id(data)
        return cls(
            id=_str(data.get("id")),
            title=_str(data.get("title")),
            audio_url=_str(data.get("audioUrl")),
            soundspot=SoundspotRef.from_value(data.get("soundspot")),
            created_by=CreatorRef.from_value(data.get("createdBy")),
            description=_str(data.get("description")),
            category=_str(data.get("category")),
            duration=_opt_float(data.get("duration")),
            status=_str(data.get("status")),
            play_count=_int(data.get("playCount")),
            average_rating=_float(data.get("averageRating")),
            total_reviews=_int(data.get("totalReviews")),
            rating_distribution=_rating_distribution(data.get("ratingDistribution")),
            created_at=_str(data.get("createdAt")),
            updated_at=_str(data.get("updatedAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Review:
    """A rating (1-5) with optional comment left by one user on one audio item."""
    id: str
    audio_item: str
    user: CreatorRef
    rating: int
    comment: str = ""
    helpful: List[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Review':
        data = normalize_id(data)
        audio_item = data.get("audioItem")
        if isinstance(audio_item, dict):
            audio_item = normalize_id(audio_item).get("id")
        helpful = data.get("helpful")
        return cls(
            id=_str(data.get("id")),
            audio_item=_str(audio_item),
            user=CreatorRef.from_value(data.get("user")),
            rating=_int(data.get("rating")),
            comment=_str(data.get("comment")),
            helpful=[str(h) for h in helpful] if isinstance(helpful, list) else [],
            created_at=_str(data.get("createdAt")),
            updated_at=_str(data.get("updatedAt")),
        )


@dataclass
class ReviewPage:
    """One page of reviews for an audio item."""
    reviews: List[Review]
    page: int = 1
    total: int = 0
    total_pages: int = 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any], page: int = 1) -> 'ReviewPage':
        if isinstance(data, list):
            reviews = [Review.from_dict(r) for r in normalize_list(data)]
            return cls(reviews=reviews, page=page, total=len(reviews), total_pages=1)
        pagination = data.get("pagination") if isinstance(data.get("pagination"), dict) else data
        reviews = [Review.from_dict(r) for r in normalize_list(data.get("reviews"))]
        return cls(
            reviews=reviews,
            page=_int(pagination.get("page"), page),
            total=_int(pagination.get("total"), len(reviews)),
            total_pages=_int(pagination.get("totalPages", pagination.get("pages")), 1),
        )


class ItemType(Enum):
    """Kinds of items that can be favorited."""
    SOUNDSPOT = "soundspot"
    AUDIO_ITEM = "audioItem"


@dataclass
class Favorite:
    """
    A user's favorite. At most one exists per (item_id, item_type) pair.
    """
    id: str
    item_id: str
    item_type: ItemType
    user_id: str = ""
    created_at: str = ""

    @property
    def key(self) -> tuple:
        return (self.item_id, self.item_type)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Favorite':
        data = normalize_id(data)
        item_id = data.get("itemId")
        if isinstance(item_id, dict):
            item_id = normalize_id(item_id).get("id")
        user_id = data.get("userId")
        if isinstance(user_id, dict):
            user_id = normalize_id(user_id).get("id")
        return cls(
            id=_str(data.get("id")),
            item_id=_str(item_id),
            item_type=ItemType(data.get("itemType")),
            user_id=_str(user_id),
            created_at=_str(data.get("createdAt")),
        )


@dataclass
class SubscriptionPlan:
    """A purchasable subscription plan."""
    id: str
    name: str
    price: float = 0.0
    price_formatted: str = ""
    interval: str = ""
    features: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], plan_id: Optional[str] = None) -> 'SubscriptionPlan':
        data = normalize_id(data)
        features = data.get("features")
        return cls(
            id=_str(data.get("id") or data.get("planType") or data.get("type") or plan_id),
            name=_str(data.get("name")),
            price=_float(data.get("price")),
            price_formatted=_str(data.get("priceFormatted")),
            interval=_str(data.get("interval") or data.get("duration")),
            features=[str(f) for f in features] if isinstance(features, list) else [],
        )


@dataclass
class SubscriptionStatus:
    """Whether the logged-in user may access premium content."""
    has_access: bool = False
    is_lifetime_user: bool = False
    subscription_type: Optional[str] = None
    subscription_end_date: Optional[str] = None
    subscription: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SubscriptionStatus':
        subscription = data.get("subscription")
        return cls(
            has_access=bool(data.get("hasAccess", False)),
            is_lifetime_user=bool(data.get("isLifetimeUser", False)),
            subscription_type=_opt_str(data.get("subscriptionType")),
            subscription_end_date=_opt_str(data.get("subscriptionEndDate")),
            subscription=subscription if isinstance(subscription, dict) else None,
        )


@dataclass
class PaymentIntent:
    client_secret: str
    payment_intent_id: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PaymentIntent':
        return cls(client_secret=_str(data.get("clientSecret")),
                   payment_intent_id=_str(data.get("paymentIntentId")))


@dataclass
class PaymentMethod:
    """A saved card."""
    id: str
    stripe_payment_method_id: str
    brand: str = ""
    last4: str = ""
    exp_month: int = 0
    exp_year: int = 0
    is_default: bool = False

    @property
    def label(self) -> str:
        text = f"{self.brand.upper()} •••• {self.last4}"
        if self.is_default:
            text += " (Default)"
        return text

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PaymentMethod':
        data = normalize_id(data)
        card = data.get("card") if isinstance(data.get("card"), dict) else {}
        return cls(
            id=_str(data.get("id")),
            stripe_payment_method_id=_str(data.get("stripePaymentMethodId")),
            brand=_str(card.get("brand")),
            last4=_str(card.get("last4")),
            exp_month=_int(card.get("expMonth", card.get("exp_month"))),
            exp_year=_int(card.get("expYear", card.get("exp_year"))),
            is_default=bool(data.get("isDefault", False)),
        )


