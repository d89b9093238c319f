"""
Shared constants used across the client.
"""

# API endpoints
ENDPOINTS = {
    # Authentication
    "SIGNUP": "/auth/signup",
    "LOGIN": "/auth/login",
    "LOGOUT": "/auth/logout",
    "PROFILE": "/auth/profile",
    "PROFILE_PICTURE": "/auth/profile/picture",
    "CHANGE_PASSWORD": "/auth/change-password",
    "ACCOUNT": "/auth/account",

    # Soundspots (map / geo locations)
    "SOUNDSPOTS": "/soundspots",              # GET list, DELETE /soundspots/{id}
    "SOUNDSPOT": "/soundspot",                # POST create, GET /soundspot/{id}
    "SOUNDSPOTS_PENDING": "/soundspots/pending",
    "SOUNDSPOTS_REVIEW": "/soundspots/review",

    # Spots (account / upload)
    "SPOTS_UPLOAD": "/spots/upload",
    "SPOTS_LOCATION": "/spots/location",
    "SPOTS_MY": "/spots/my-spots",

    # Audio items
    "AUDIO_ITEMS": "/audio-items",
    "AUDIO_ITEMS_NEW_STORIES": "/audio-items/new-stories",
    "AUDIO_ITEMS_BEST_REVIEWED": "/audio-items/best-reviewed",
    "AUDIO_ITEMS_BY_SOUNDSPOT": "/audio-items/by-soundspot",
    "AUDIO_ITEMS_MY_ITEMS": "/audio-items/my-items",
    "AUDIO_ITEMS_PLAY": "/audio-items/play",
    "AUDIO_ITEMS_PENDING": "/audio-items/pending",
    "AUDIO_ITEMS_REVIEW": "/audio-items/review",

    # Favorites
    "FAVORITES": "/user/favorites",

    # Subscriptions and payments
    "SUBSCRIPTION_PLANS": "/subscriptions/plans",
    "SUBSCRIPTION_CURRENT": "/subscriptions/current",
    "SUBSCRIPTION_CHECK_ACCESS": "/subscriptions/check-access",
    "SUBSCRIPTION_PAYMENT_INTENT": "/subscriptions/create-payment-intent",
    "SUBSCRIPTION_CONFIRM_PAYMENT": "/subscriptions/confirm-payment",
    "SUBSCRIPTION_SAVED_CARD": "/subscriptions/subscribe-with-saved-card",
    "PAYMENT_METHODS": "/payment/methods",
}

# Roles
DEFAULT_ROLE = "user"
ADMIN_ROLES = frozenset({"admin", "reviewer"})

# Persisted session keys (kept apart so the two sessions never overwrite each other)
USER_STORAGE_KEY = "user"
ADMIN_STORAGE_KEY = "admin_user"

# Network settings
DEFAULT_API_PORT = 3000
DEFAULT_NETWORK_TIMEOUT = 10  # seconds
ANDROID_EMULATOR_HOST = "10.0.2.2"
DEFAULT_LAN_IP = "192.168.46.176"
PRODUCTION_API_URL = "https://your-production-api.com"

# Configuration paths
DEFAULT_CONFIG_DIR = "~/.config/soundspots"

# Playback
SKIP_INTERVAL_SEC = 15
RATING_MIN = 1
RATING_MAX = 5

# User-facing messages
MSG_NETWORK_ERROR = "Unable to reach the server. Check your connection and try again."
MSG_INVALID_CREDENTIALS = "Invalid email or password"
MSG_ADMIN_MUST_USE_ADMIN_LOGIN = "Admin accounts must use the admin login"
MSG_ADMIN_ROLE_REQUIRED = "Access denied: admin or reviewer role required"
MSG_ADMIN_AUTH_REQUIRED = "Admin authentication required"
MSG_LOGIN_REQUIRED = "Please log in again"
MSG_PLAYBACK_FAILED = "Failed to play audio"
MSG_UNEXPECTED_RESPONSE = "Unexpected response from server"
