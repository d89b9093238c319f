"""
Base class for repositories that mirror remote collections.

A mirror is a plain list attribute replaced wholesale on fetch. Mutations
build a new list rather than editing in place, so a caller holding a
previous list never sees it change underneath. Once a repository is closed,
results that arrive late are dropped instead of being written to the mirrors.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Type, TypeVar
import logging

from shared.api_client import ApiClient
from shared.constants import MSG_LOGIN_REQUIRED, MSG_UNEXPECTED_RESPONSE
from shared.exceptions import ApiError, AuthenticationError
from shared.models import normalize_list
from shared.state import ObservableState

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_collection(data: Any, model: Type[T], *keys: str) -> List[T]:
    """
    Build model instances from a collection payload.

    The API answers either a bare list or an object wrapping the list under
    one of `keys`. Entities that fail to parse are skipped and logged.
    """
    items = data
    if isinstance(data, dict):
        items = next((data[k] for k in keys if isinstance(data.get(k), list)), [])

    result: List[T] = []
    for raw in normalize_list(items):
        if not raw.get("id"):
            logger.warning("Skipping %s without id", model.__name__)
            continue
        try:
            result.append(model.from_dict(raw))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning("Skipping malformed %s %s: %s", model.__name__, raw.get("id"), e)
    return result


def parse_entity(data: Any, model: Type[T], *keys: str) -> T:
    """
    Build one model instance from a payload that may wrap it under one of `keys`.

    Raises:
        ApiError: The server answered 2xx with a body that is not such an entity
    """
    if not isinstance(data, dict):
        raise ApiError(MSG_UNEXPECTED_RESPONSE, details={"model": model.__name__})
    raw = next((data[k] for k in keys if isinstance(data.get(k), dict)), data)
    try:
        return model.from_dict(raw)
    except (ValueError, TypeError, KeyError) as e:
        logger.warning("Malformed %s payload: %s", model.__name__, e)
        raise ApiError(MSG_UNEXPECTED_RESPONSE, details={"model": model.__name__}) from e


class Repository(ObservableState):
    """Common plumbing: session access, mirror updates, teardown."""

    def __init__(self, api: ApiClient, session):
        super().__init__()
        self.api = api
        self.session = session
        self._closed = False
        self.session.add_change_callback(self._on_session_change)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop accepting results; late responses no longer touch the mirrors."""
        self._closed = True
        self.session.remove_change_callback(self._on_session_change)

    def reset_user_data(self) -> None:
        """Drop mirrors that belong to the logged-in user. Overridden per repository."""

    # Session helpers

    def _require_login(self) -> None:
        if not self.session.is_logged_in:
            raise AuthenticationError(MSG_LOGIN_REQUIRED)

    def _admin_token(self) -> str:
        return self.session.require_admin().token

    def _on_session_change(self) -> None:
        if not self.session.is_logged_in:
            self.reset_user_data()

    # Mirror updates

    def _replace(self, name: str, items: List[Any]) -> None:
        with self._lock:
            if self._closed:
                logger.debug("Dropping late result for %s.%s", type(self).__name__, name)
                return
            setattr(self, name, list(items))
        self._notify_change()

    def _update(self, name: str, fn: Callable[[List[Any]], List[Any]]) -> None:
        with self._lock:
            if self._closed:
                return
            setattr(self, name, list(fn(getattr(self, name))))
        self._notify_change()

    def _prepend(self, names: Iterable[str], item: Any) -> None:
        for name in names:
            self._update(name, lambda items: [item] + [i for i in items if i.id != item.id])

    def _remove_everywhere(self, names: Iterable[str], item_id: str) -> None:
        for name in names:
            self._update(name, lambda items: [i for i in items if i.id != item_id])

    def _replace_everywhere(self, names: Iterable[str], item: Any) -> None:
        for name in names:
            self._update(name, lambda items: [item if i.id == item.id else i for i in items])

    @staticmethod
    def _contains(items: List[Any], item_id: str) -> bool:
        return any(i.id == item_id for i in items)


def form_fields(**fields: Optional[Any]) -> Dict[str, str]:
    """Multipart text fields: drop empty values, render everything else as text."""
    result = {}
    for key, value in fields.items():
        if value is None or value == "":
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        result[key] = str(value)
    return result
