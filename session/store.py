"""
Session store.

Keeps the regular user session and the admin/reviewer session side by side.
The two are persisted under separate keys and invalidated independently:
only the regular session installs the global bearer header, admin calls
carry their token per request.
"""

from typing import Any, Dict, Optional
import logging

from shared.api_client import ApiClient, open_upload
from shared.constants import (
    ADMIN_STORAGE_KEY,
    ENDPOINTS,
    MSG_ADMIN_MUST_USE_ADMIN_LOGIN,
    MSG_ADMIN_ROLE_REQUIRED,
    MSG_INVALID_CREDENTIALS,
    MSG_LOGIN_REQUIRED,
    USER_STORAGE_KEY,
)
from shared.exceptions import (
    AdminAuthRequiredError,
    ApiError,
    AuthenticationError,
    InvalidCredentialsError,
    RoleMismatchError,
    SoundspotsError,
    ValidationError,
)
from shared.models import AdminSession, UserSession
from shared.state import ObservableState

logger = logging.getLogger(__name__)

# snake_case profile fields accepted by update_user_profile -> API names
_PROFILE_FIELDS = {
    "name": "name",
    "first_name": "firstName",
    "last_name": "lastName",
    "email": "email",
    "phone": "phone",
    "date_of_birth": "dateOfBirth",
}


class SessionStore(ObservableState):
    """
    Holds, persists and invalidates the two sessions.

    Lifecycle: `load()` on start, login/admin_login while active,
    logout/admin_logout to tear down (state cleared and blob removed).
    """

    def __init__(self, api: ApiClient, storage):
        super().__init__()
        self.api = api
        self.storage = storage
        self.user: Optional[UserSession] = None
        self.admin_user: Optional[AdminSession] = None
        self.api.add_unauthorized_callback(self._handle_unauthorized)

    @property
    def is_logged_in(self) -> bool:
        return self.user is not None

    @property
    def is_admin_logged_in(self) -> bool:
        return self.admin_user is not None and self.admin_user.is_admin_role

    def get_token(self) -> Optional[str]:
        return self.user.token if self.user else None

    def get_admin_token(self) -> Optional[str]:
        return self.admin_user.token if self.admin_user else None

    def require_admin(self) -> AdminSession:
        """Return the admin session or raise when admin screens must stay closed."""
        if not self.is_admin_logged_in:
            raise AdminAuthRequiredError()
        return self.admin_user

    # Startup

    def load(self) -> None:
        """
        Restore both sessions from storage.

        A blob whose role contradicts its key (an admin under the user key,
        a regular user under the admin key) is discarded, not trusted.
        """
        blob = self.storage.get(USER_STORAGE_KEY)
        if blob:
            session = UserSession.from_dict(blob)
            if session.is_admin_role or not session.token:
                logger.warning("Discarding stored user session with role '%s'", session.role)
                self.storage.remove(USER_STORAGE_KEY)
            else:
                with self._lock:
                    self.user = session
                self.api.set_auth_token(session.token)
                logger.info("Restored session for %s", session.email)

        blob = self.storage.get(ADMIN_STORAGE_KEY)
        if blob:
            admin = AdminSession.from_dict(blob)
            if not admin.is_admin_role or not admin.token:
                logger.warning("Discarding stored admin session with role '%s'", admin.role)
                self.storage.remove(ADMIN_STORAGE_KEY)
            else:
                with self._lock:
                    self.admin_user = admin
                logger.info("Restored %s session for %s", admin.role, admin.email)

        self._notify_change()

    # Regular session

    def login(self, email: str, password: str) -> UserSession:
        """
        Log in a regular user.

        Raises:
            InvalidCredentialsError: Wrong email or password
            RoleMismatchError: The account is an admin or reviewer
            NetworkError: The server could not be reached
        """
        with self._operation():
            response = self._authenticate(ENDPOINTS["LOGIN"], {"email": email, "password": password})
            session = UserSession.from_login_response(response)
            if session.is_admin_role:
                raise RoleMismatchError(MSG_ADMIN_MUST_USE_ADMIN_LOGIN, session.role)
            self._install_user(session)
            return session

    def signup(self, name: str, email: str, password: str, first_name: Optional[str] = None,
               last_name: Optional[str] = None, phone: Optional[str] = None) -> UserSession:
        """Create a regular account and log it in."""
        payload: Dict[str, Any] = {"name": name, "email": email, "password": password}
        if first_name:
            payload["firstName"] = first_name
        if last_name:
            payload["lastName"] = last_name
        if phone:
            payload["phone"] = phone

        with self._operation():
            response = self.api.post(ENDPOINTS["SIGNUP"], json=payload, authenticated=False,
                                     default_message="Failed to create account")
            session = UserSession.from_login_response(self._require_token(response))
            if session.is_admin_role:
                # The server should never hand out privileged accounts on signup
                raise RoleMismatchError(MSG_ADMIN_MUST_USE_ADMIN_LOGIN, session.role)
            self._install_user(session)
            return session

    def logout(self) -> None:
        """Tell the server (best effort), then drop the regular session locally."""
        if self.user:
            try:
                self.api.post(ENDPOINTS["LOGOUT"], default_message="Logout failed")
            except SoundspotsError as e:
                logger.warning("Server logout failed: %s", e.message)
        self._clear_user()

    def refresh_profile(self) -> UserSession:
        """Fetch the profile and merge it into the session."""
        self._require_user()
        with self._operation():
            response = self.api.get(ENDPOINTS["PROFILE"], default_message="Failed to load profile")
            return self._merge_user(response or {})

    def update_user_profile(self, patch: Dict[str, Any]) -> UserSession:
        """
        Update profile fields on the server.

        Args:
            patch: Fields to change, snake_case (first_name, phone, ...)

        Returns:
            The merged session. A 401 logs the user out as a side effect.
        """
        self._require_user()
        body = {_PROFILE_FIELDS.get(k, k): v for k, v in patch.items()}
        with self._operation():
            response = self.api.put(ENDPOINTS["PROFILE"], json=body,
                                    default_message="Failed to update profile")
            return self._merge_user(response if isinstance(response, dict) and response else body)

    def update_profile_picture(self, file_path: str) -> UserSession:
        """Upload a new profile picture from a local image file."""
        self._require_user()
        with self._operation():
            with open_upload(file_path, "profilePicture") as files:
                response = self.api.post(ENDPOINTS["PROFILE_PICTURE"], files=files,
                                         default_message="Failed to update profile picture")
            return self._merge_user(response or {})

    def delete_profile_picture(self) -> UserSession:
        self._require_user()
        with self._operation():
            self.api.delete(ENDPOINTS["PROFILE_PICTURE"],
                            default_message="Failed to remove profile picture")
            return self._merge_user({"profilePicture": None})

    def change_password(self, current_password: str, new_password: str) -> None:
        self._require_user()
        with self._operation():
            self.api.post(ENDPOINTS["CHANGE_PASSWORD"],
                          json={"currentPassword": current_password, "newPassword": new_password},
                          default_message="Failed to change password")
        logger.info("Password changed for %s", self.user.email if self.user else "unknown user")

    def delete_account(self, password: str) -> None:
        """Permanently delete the account, then tear the session down."""
        self._require_user()
        with self._operation():
            self.api.delete(ENDPOINTS["ACCOUNT"], json={"password": password},
                            default_message="Failed to delete account")
        self._clear_user()

    # Admin session

    def admin_login(self, email: str, password: str) -> AdminSession:
        """
        Log in an admin or reviewer. The regular session is left untouched.

        Raises:
            InvalidCredentialsError: Wrong email or password
            RoleMismatchError: The account has neither admin nor reviewer role
        """
        with self._operation():
            response = self._authenticate(ENDPOINTS["LOGIN"], {"email": email, "password": password})
            admin = AdminSession.from_login_response(response)
            if not admin.is_admin_role:
                raise RoleMismatchError(MSG_ADMIN_ROLE_REQUIRED, admin.role)
            with self._lock:
                self.admin_user = admin
            self.storage.set(ADMIN_STORAGE_KEY, admin.to_dict())
            logger.info("Admin login as %s (%s)", admin.email, admin.role)
            return admin

    def admin_logout(self) -> None:
        """Drop the admin session. The global auth header belongs to the user session and stays."""
        self._clear_admin()

    # Internals

    def _authenticate(self, path: str, credentials: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = self.api.post(path, json=credentials, authenticated=False,
                                     default_message=MSG_INVALID_CREDENTIALS)
        except (ValidationError, AuthenticationError) as e:
            raise InvalidCredentialsError() from e
        return self._require_token(response)

    @staticmethod
    def _require_token(response: Any) -> Dict[str, Any]:
        if not isinstance(response, dict):
            raise ApiError("Unexpected response from server")
        user = response.get("user") if isinstance(response.get("user"), dict) else response
        if not (response.get("token") or user.get("token")):
            raise ApiError("Unexpected response from server: missing token")
        return response

    def _require_user(self) -> UserSession:
        if not self.user:
            raise AuthenticationError(MSG_LOGIN_REQUIRED)
        return self.user

    def _install_user(self, session: UserSession) -> None:
        with self._lock:
            self.user = session
        self.storage.set(USER_STORAGE_KEY, session.to_dict())
        self.api.set_auth_token(session.token)
        logger.info("Logged in as %s", session.email)

    def _merge_user(self, patch: Dict[str, Any]) -> UserSession:
        with self._lock:
            if not self.user:
                # Logged out while the request was in flight
                raise AuthenticationError(MSG_LOGIN_REQUIRED)
            self.user = self.user.merge(patch)
            merged = self.user
        self.storage.set(USER_STORAGE_KEY, merged.to_dict())
        return merged

    def _clear_user(self) -> None:
        with self._lock:
            had_session = self.user is not None
            self.user = None
        self.storage.remove(USER_STORAGE_KEY)
        self.api.clear_auth_token()
        if had_session:
            logger.info("User session cleared")
        self._notify_change()

    def _clear_admin(self) -> None:
        with self._lock:
            had_session = self.admin_user is not None
            self.admin_user = None
        self.storage.remove(ADMIN_STORAGE_KEY)
        if had_session:
            logger.info("Admin session cleared")
        self._notify_change()

    def _handle_unauthorized(self, token: str) -> None:
        """A 401 invalidates only the session whose token produced it."""
        if self.user and token == self.user.token:
            logger.warning("User token rejected by server, logging out")
            self._clear_user()
        elif self.admin_user and token == self.admin_user.token:
            logger.warning("Admin token rejected by server, logging out admin")
            self._clear_admin()
