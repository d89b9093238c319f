"""
In-memory stand-in for the Soundspots API.

FakeBackend is a requests.Session whose `request()` is answered by local
handlers, so the real ApiClient code path (headers, status mapping, JSON
decoding) runs unchanged in tests.
"""

import itertools
import json as jsonlib
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests
from requests.structures import CaseInsensitiveDict

BASE_URL = "http://soundspots.test"


def make_response(status: int, body: Any = None, url: str = BASE_URL) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = b"" if body is None else jsonlib.dumps(body).encode("utf-8")
    response.headers["Content-Type"] = "application/json"
    response.encoding = "utf-8"
    response.url = url
    return response


@dataclass
class Call:
    method: str
    path: str
    authorization: Optional[str]
    json: Any = None
    data: Any = None
    files: Any = None
    params: Any = None


@dataclass
class FakeRequest:
    method: str
    path: str
    token: Optional[str]
    json: Dict[str, Any] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)
    files: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)


class FakeBackend(requests.Session):
    """Routes requests to in-memory handlers and records every call."""

    def __init__(self):
        super().__init__()
        self.users: Dict[str, Dict[str, Any]] = {}
        self.tokens: Dict[str, str] = {}
        self.spots: Dict[str, Dict[str, Any]] = {}
        self.audio_items: Dict[str, Dict[str, Any]] = {}
        self.favorites: Dict[str, Dict[str, Any]] = {}
        self.reviews: Dict[str, List[Dict[str, Any]]] = {}
        self.payment_methods: List[Dict[str, Any]] = []
        self.plays: List[str] = []
        self.calls: List[Call] = []
        self.offline = False
        self.timeout_next = False
        self._failures: Dict[tuple, tuple] = {}
        self._ids = itertools.count(1)
        self._routes = [
            ("POST", r"/auth/login", self._login),
            ("POST", r"/auth/signup", self._signup),
            ("POST", r"/auth/logout", self._ok),
            ("GET", r"/auth/profile", self._get_profile),
            ("PUT", r"/auth/profile", self._update_profile),
            ("POST", r"/auth/profile/picture", self._upload_picture),
            ("DELETE", r"/auth/profile/picture", self._delete_picture),
            ("POST", r"/auth/change-password", self._change_password),
            ("DELETE", r"/auth/account", self._delete_account),
            ("GET", r"/soundspots", self._list_spots),
            ("GET", r"/soundspots/pending", self._pending_spots),
            ("POST", r"/soundspots/review", self._review_spot),
            ("DELETE", r"/soundspots/([\w-]+)", self._delete_spot),
            ("POST", r"/soundspot", self._create_spot),
            ("GET", r"/soundspot/([\w-]+)", self._get_spot),
            ("POST", r"/spots/upload", self._upload_spot),
            ("POST", r"/spots/location", self._update_location),
            ("GET", r"/spots/my-spots", self._my_spots),
            ("GET", r"/audio-items", self._list_items),
            ("POST", r"/audio-items", self._create_item),
            ("GET", r"/audio-items/new-stories", self._list_items),
            ("GET", r"/audio-items/best-reviewed", self._best_reviewed),
            ("GET", r"/audio-items/my-items", self._my_items),
            ("GET", r"/audio-items/pending", self._pending_items),
            ("POST", r"/audio-items/review", self._review_item),
            ("GET", r"/audio-items/by-soundspot/([\w-]+)", self._items_by_spot),
            ("POST", r"/audio-items/play/([\w-]+)", self._track_play),
            ("GET", r"/audio-items/([\w-]+)/reviews", self._get_reviews),
            ("POST", r"/audio-items/([\w-]+)/reviews", self._add_review),
            ("GET", r"/audio-items/([\w-]+)", self._get_item),
            ("PUT", r"/audio-items/([\w-]+)", self._update_item),
            ("DELETE", r"/audio-items/([\w-]+)", self._delete_item),
            ("GET", r"/user/favorites", self._list_favorites),
            ("POST", r"/user/favorites", self._add_favorite),
            ("DELETE", r"/user/favorites/([\w-]+)", self._remove_favorite),
            ("GET", r"/subscriptions/plans", self._plans),
            ("GET", r"/subscriptions/check-access", self._check_access),
            ("GET", r"/subscriptions/current", self._current_subscription),
            ("POST", r"/subscriptions/create-payment-intent", self._payment_intent),
            ("POST", r"/subscriptions/confirm-payment", self._confirm_payment),
            ("POST", r"/subscriptions/subscribe-with-saved-card", self._saved_card),
            ("GET", r"/payment/methods", self._list_payment_methods),
            ("PUT", r"/payment/methods/([\w-]+)/default", self._default_payment_method),
            ("DELETE", r"/payment/methods/([\w-]+)", self._delete_payment_method),
        ]

    # Seeding

    def next_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids)}"

    def add_user(self, email: str, password: str = "secret", role: str = "user",
                 name: Optional[str] = None) -> Dict[str, Any]:
        user = {"_id": self.next_id("u"), "name": name or email.split("@")[0],
                "email": email, "role": role, "password": password}
        self.users[email] = user
        return user

    def add_spot(self, name: str, status: str = "approved", owner: Optional[str] = None,
                 spot_id: Optional[str] = None) -> str:
        spot_id = spot_id or self.next_id("spot")
        self.spots[spot_id] = {
            "_id": spot_id,
            "name": name,
            "location": {"type": "Point", "coordinates": [2.1734, 41.3851]},
            "audioUrl": f"https://cdn.test/{spot_id}.mp3",
            "createdBy": owner or "u0",
            "status": status,
            "audioItemsCount": 0,
        }
        return spot_id

    def add_audio_item(self, title: str, soundspot: str, owner: Optional[str] = None,
                       status: str = "approved", item_id: Optional[str] = None) -> str:
        item_id = item_id or self.next_id("item")
        self.audio_items[item_id] = {
            "_id": item_id,
            "title": title,
            "audioUrl": f"https://cdn.test/{item_id}.mp3",
            "soundspot": {"_id": soundspot, "name": self.spots.get(soundspot, {}).get("name", "")},
            "createdBy": {"_id": owner or "u0", "name": "owner"},
            "status": status,
            "playCount": 0,
            "averageRating": 0,
            "totalReviews": 0,
        }
        return item_id

    def fail(self, method: str, path: str, status: int, body: Any = None):
        """Answer the next matching request with the given status and body."""
        self._failures[(method, path)] = (status, body)

    def calls_to(self, method: str, path: str) -> List[Call]:
        return [c for c in self.calls if c.method == method and c.path == path]

    # requests.Session

    def request(self, method, url, params=None, data=None, headers=None, files=None,
                json=None, timeout=None, **kwargs):
        if self.offline:
            raise requests.ConnectionError("Network is unreachable")
        if self.timeout_next:
            self.timeout_next = False
            raise requests.Timeout("timed out")

        merged = CaseInsensitiveDict(self.headers)
        for key, value in (headers or {}).items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value
        authorization = merged.get("Authorization")
        path = urlparse(url).path
        self.calls.append(Call(method, path, authorization, json, data, files, params))

        failure = self._failures.pop((method, path), None)
        if failure:
            return make_response(failure[0], failure[1], url)

        token = authorization[len("Bearer "):] if authorization else None
        req = FakeRequest(method, path, token, json or {}, data or {}, files or {}, params or {})
        for route_method, pattern, handler in self._routes:
            if route_method != method:
                continue
            match = re.fullmatch(pattern, path)
            if match:
                status, body = handler(req, *match.groups())
                return make_response(status, body, url)
        return make_response(404, {"message": f"Cannot {method} {path}"}, url)

    # Helpers

    def _public_user(self, user: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in user.items() if k != "password"}

    def _user(self, req: FakeRequest) -> Optional[Dict[str, Any]]:
        email = self.tokens.get(req.token) if req.token else None
        return self.users.get(email) if email else None

    def _issue_token(self, user: Dict[str, Any]) -> str:
        token = f"token-{user['_id']}-{next(self._ids)}"
        self.tokens[token] = user["email"]
        return token

    @staticmethod
    def _unauthorized():
        return 401, {"message": "Invalid or expired token"}

    def _ok(self, req):
        return 200, {"message": "ok"}

    # Auth

    def _login(self, req):
        user = self.users.get(req.json.get("email"))
        if not user or user["password"] != req.json.get("password"):
            return 401, {"message": "Invalid credentials"}
        return 200, {"token": self._issue_token(user), "user": self._public_user(user)}

    def _signup(self, req):
        email = req.json.get("email")
        if email in self.users:
            return 400, {"message": "Email already registered"}
        user = self.add_user(email, req.json.get("password"), name=req.json.get("name"))
        for key in ("firstName", "lastName", "phone"):
            if key in req.json:
                user[key] = req.json[key]
        return 201, {"token": self._issue_token(user), "user": self._public_user(user)}

    def _get_profile(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        return 200, {"user": self._public_user(user)}

    def _update_profile(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        user.update(req.json)
        return 200, {"user": self._public_user(user)}

    def _upload_picture(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        name = req.files["profilePicture"][0]
        user["profilePicture"] = f"https://cdn.test/avatars/{name}"
        return 200, {"user": {"profilePicture": user["profilePicture"]}}

    def _delete_picture(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        user.pop("profilePicture", None)
        return 200, {"message": "Profile picture removed"}

    def _change_password(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        if user["password"] != req.json.get("currentPassword"):
            return 400, {"message": "Current password is incorrect"}
        user["password"] = req.json["newPassword"]
        return 200, {"message": "Password updated"}

    def _delete_account(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        if user["password"] != req.json.get("password"):
            return 400, {"message": "Password is incorrect"}
        del self.users[user["email"]]
        return 200, {"message": "Account deleted"}

    def _require_admin(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        if user["role"] not in ("admin", "reviewer"):
            return 403, {"message": "Admin access required"}
        return None

    # Soundspots

    def _list_spots(self, req):
        return 200, {"soundspots": list(self.spots.values())}

    def _get_spot(self, req, spot_id):
        if spot_id not in self.spots:
            return 404, {"message": "Soundspot not found"}
        return 200, self.spots[spot_id]

    def _create_spot(self, req):
        user = self._user(req)
        spot_id = self.add_spot(req.data.get("name"), owner=user["_id"] if user else None)
        self.spots[spot_id]["script"] = req.data.get("script", "")
        return 201, {"soundspot": self.spots[spot_id]}

    def _upload_spot(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        if req.data.get("termsAccepted") != "true":
            return 400, {"message": "Terms must be accepted"}
        spot_id = self.add_spot(req.data.get("name", "Untitled spot"), status="pending", owner=user["_id"])
        return 201, {"spot": self.spots[spot_id]}

    def _update_location(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        spot = self.spots.get(req.json.get("spotId"))
        if not spot:
            return 404, {"message": "Spot not found"}
        spot["location"] = {"type": "Point", "coordinates": [req.json["longitude"], req.json["latitude"]]}
        return 200, {"message": "Location updated"}

    def _my_spots(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        return 200, {"spots": [s for s in self.spots.values() if s["createdBy"] == user["_id"]]}

    def _delete_spot(self, req, spot_id):
        if not self._user(req):
            return self._unauthorized()
        if self.spots.pop(spot_id, None) is None:
            return 404, {"message": "Soundspot not found"}
        return 200, {"message": "Soundspot deleted"}

    def _pending_spots(self, req):
        denied = self._require_admin(req)
        if denied:
            return denied
        return 200, {"spots": [s for s in self.spots.values() if s["status"] == "pending"]}

    def _review_spot(self, req):
        denied = self._require_admin(req)
        if denied:
            return denied
        spot = self.spots.get(req.json.get("spotId"))
        if not spot:
            return 404, {"message": "Spot not found"}
        if spot["status"] != "pending":
            return 400, {"message": "Spot already reviewed"}
        spot["status"] = "approved" if req.json.get("approved") else "rejected"
        spot["reviewNotes"] = req.json.get("notes")
        return 200, {"spot": spot}

    # Audio items

    def _approved_items(self):
        return [i for i in self.audio_items.values() if i["status"] == "approved"]

    def _list_items(self, req):
        return 200, {"audioItems": self._approved_items()}

    def _best_reviewed(self, req):
        items = sorted(self._approved_items(), key=lambda i: i["averageRating"], reverse=True)
        return 200, {"audioItems": items}

    def _my_items(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        return 200, {"audioItems": [i for i in self.audio_items.values()
                                    if i["createdBy"]["_id"] == user["_id"]]}

    def _pending_items(self, req):
        denied = self._require_admin(req)
        if denied:
            return denied
        return 200, {"audioItems": [i for i in self.audio_items.values() if i["status"] == "pending"]}

    def _items_by_spot(self, req, spot_id):
        return 200, [i for i in self._approved_items() if i["soundspot"]["_id"] == spot_id]

    def _get_item(self, req, item_id):
        if item_id not in self.audio_items:
            return 404, {"message": "Audio item not found"}
        return 200, {"audioItem": self.audio_items[item_id]}

    def _create_item(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        fields = req.json or req.data
        item_id = self.add_audio_item(fields.get("title"), fields.get("soundspot"), owner=user["_id"])
        item = self.audio_items[item_id]
        for key in ("description", "category", "duration"):
            if key in fields:
                item[key] = fields[key]
        if "audioUrl" in fields:
            item["audioUrl"] = fields["audioUrl"]
        return 201, {"audioItem": item}

    def _update_item(self, req, item_id):
        if not self._user(req):
            return self._unauthorized()
        item = self.audio_items.get(item_id)
        if not item:
            return 404, {"message": "Audio item not found"}
        item.update(req.json)
        return 200, {"audioItem": item}

    def _delete_item(self, req, item_id):
        if not self._user(req):
            return self._unauthorized()
        if self.audio_items.pop(item_id, None) is None:
            return 404, {"message": "Audio item not found"}
        return 200, {"message": "Audio item deleted"}

    def _track_play(self, req, item_id):
        if item_id not in self.audio_items:
            return 404, {"message": "Audio item not found"}
        self.plays.append(item_id)
        self.audio_items[item_id]["playCount"] += 1
        return 200, {"playCount": self.audio_items[item_id]["playCount"]}

    def _add_review(self, req, item_id):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        review = {"_id": self.next_id("rev"), "audioItem": item_id,
                  "user": {"_id": user["_id"], "name": user["name"]},
                  "rating": req.json["rating"], "comment": req.json.get("comment", ""), "helpful": []}
        self.reviews.setdefault(item_id, []).append(review)
        return 201, {"review": review}

    def _get_reviews(self, req, item_id):
        reviews = self.reviews.get(item_id, [])
        page, limit = int(req.params.get("page", 1)), int(req.params.get("limit", 10))
        start = (page - 1) * limit
        return 200, {
            "reviews": reviews[start:start + limit],
            "pagination": {"page": page, "total": len(reviews),
                           "totalPages": max(1, -(-len(reviews) // limit))},
        }

    def _review_item(self, req):
        denied = self._require_admin(req)
        if denied:
            return denied
        item = self.audio_items.get(req.json.get("itemId"))
        if not item:
            return 404, {"message": "Audio item not found"}
        if item["status"] != "pending":
            return 400, {"message": "Audio item already reviewed"}
        item["status"] = "approved" if req.json.get("approved") else "rejected"
        return 200, {"audioItem": item}

    # Favorites

    def _list_favorites(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        return 200, {"favorites": [f for f in self.favorites.values() if f["userId"] == user["_id"]]}

    def _add_favorite(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        if req.json.get("itemType") not in ("soundspot", "audioItem"):
            return 400, {"message": "Invalid item type"}
        favorite = {"_id": self.next_id("fav"), "userId": user["_id"],
                    "itemId": req.json["itemId"], "itemType": req.json["itemType"]}
        self.favorites[favorite["_id"]] = favorite
        return 201, {"favorite": favorite}

    def _remove_favorite(self, req, favorite_id):
        if not self._user(req):
            return self._unauthorized()
        if self.favorites.pop(favorite_id, None) is None:
            return 404, {"message": "Favorite not found"}
        return 200, {"message": "Removed from favorites"}

    # Subscriptions and payments

    def _plans(self, req):
        return 200, {"success": True, "plans": [
            {"id": "monthly", "name": "Monthly", "price": 4.99, "priceFormatted": "€4.99",
             "interval": "month", "features": ["All tours"]},
            {"id": "lifetime", "name": "Lifetime", "price": 49.0, "priceFormatted": "€49.00",
             "features": ["All tours", "Offline"]},
        ]}

    def _check_access(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        subscribed = bool(user.get("subscriptionType"))
        return 200, {"success": True, "hasAccess": subscribed, "isLifetimeUser": False,
                     "subscriptionType": user.get("subscriptionType"),
                     "subscriptionEndDate": None, "subscription": None}

    def _current_subscription(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        if not user.get("subscriptionType"):
            return 404, {"success": False, "message": "No active subscription"}
        return 200, {"success": True, "subscription": {"type": user["subscriptionType"], "status": "active"}}

    def _payment_intent(self, req):
        if not self._user(req):
            return self._unauthorized()
        if req.json.get("planType") not in ("monthly", "lifetime"):
            return 200, {"success": False, "message": "Unknown plan"}
        return 200, {"success": True, "clientSecret": "pi_secret_1", "paymentIntentId": "pi_1"}

    def _confirm_payment(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        user["subscriptionType"] = "monthly"
        return 200, {"success": True, "message": "Subscription activated"}

    def _saved_card(self, req):
        user = self._user(req)
        if not user:
            return self._unauthorized()
        known = {m["stripePaymentMethodId"] for m in self.payment_methods}
        if req.json.get("paymentMethodId") not in known:
            return 200, {"success": False, "message": "Card declined"}
        user["subscriptionType"] = req.json["planType"]
        return 200, {"success": True, "message": "Subscribed"}

    def _list_payment_methods(self, req):
        if not self._user(req):
            return self._unauthorized()
        return 200, {"success": True, "paymentMethods": self.payment_methods}

    def _default_payment_method(self, req, method_id):
        if not self._user(req):
            return self._unauthorized()
        for method in self.payment_methods:
            method["isDefault"] = method["_id"] == method_id
        return 200, {"success": True}

    def _delete_payment_method(self, req, method_id):
        if not self._user(req):
            return self._unauthorized()
        self.payment_methods = [m for m in self.payment_methods if m["_id"] != method_id]
        return 200, {"success": True}
