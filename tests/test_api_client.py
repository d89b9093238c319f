from unittest.mock import MagicMock

import pytest

from shared.api_client import ApiClient, open_upload
from shared.constants import MSG_NETWORK_ERROR
from shared.exceptions import (
    ApiError,
    AuthenticationError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

from tests.fake_backend import BASE_URL


def test_get_decodes_json(api, backend):
    backend.add_spot("Cathedral")
    data = api.get("/soundspots")
    assert data["soundspots"][0]["name"] == "Cathedral"
    assert backend.calls[-1].path == "/soundspots"


@pytest.mark.parametrize("status,error_cls", [
    (400, ValidationError),
    (401, AuthenticationError),
    (403, PermissionDeniedError),
    (404, NotFoundError),
])
def test_status_maps_to_error(api, backend, status, error_cls):
    backend.fail("GET", "/soundspots", status, {"message": "server says no"})
    with pytest.raises(error_cls) as exc:
        api.get("/soundspots")
    assert exc.value.message == "server says no"
    assert exc.value.status_code == status


def test_server_error_uses_default_message(api, backend):
    backend.fail("GET", "/soundspots", 500, None)
    with pytest.raises(ApiError) as exc:
        api.get("/soundspots", default_message="Failed to fetch soundspots")
    assert exc.value.status_code == 500
    assert exc.value.message == "Failed to fetch soundspots"


def test_error_field_is_used_as_message(api, backend):
    backend.fail("GET", "/soundspots", 400, {"error": "Bad coordinates"})
    with pytest.raises(ValidationError, match="Bad coordinates"):
        api.get("/soundspots")


def test_network_error_never_carries_server_text(api, backend):
    backend.offline = True
    with pytest.raises(NetworkError) as exc:
        api.get("/soundspots")
    assert exc.value.message == MSG_NETWORK_ERROR
    assert exc.value.status_code is None


def test_timeout_is_network_error(api, backend):
    backend.timeout_next = True
    with pytest.raises(NetworkError) as exc:
        api.get("/soundspots")
    assert exc.value.details["reason"] == "timeout"


def test_global_token_and_per_request_token(api, backend):
    api.set_auth_token("user-token")
    api.get("/soundspots")
    assert backend.calls[-1].authorization == "Bearer user-token"

    api.get("/soundspots/pending", token="admin-token")
    assert backend.calls[-1].authorization == "Bearer admin-token"
    # The per-request token must not replace the default header
    assert api.auth_token == "user-token"
    api.get("/soundspots")
    assert backend.calls[-1].authorization == "Bearer user-token"


def test_unauthenticated_request_strips_header(api, backend):
    api.set_auth_token("user-token")
    api.post("/auth/login", json={"email": "x", "password": "y"}, authenticated=False)
    assert backend.calls[-1].authorization is None


def test_clear_auth_token(api, backend):
    api.set_auth_token("user-token")
    api.clear_auth_token()
    api.get("/soundspots")
    assert backend.calls[-1].authorization is None
    assert api.auth_token is None


def test_401_reports_the_token_that_was_used(api, backend):
    callback = MagicMock()
    api.add_unauthorized_callback(callback)
    api.set_auth_token("user-token")

    backend.fail("GET", "/soundspots/pending", 401, {"message": "expired"})
    with pytest.raises(AuthenticationError):
        api.get("/soundspots/pending", token="admin-token")
    callback.assert_called_once_with("admin-token")


def test_401_without_token_does_not_notify(api, backend):
    callback = MagicMock()
    api.add_unauthorized_callback(callback)
    with pytest.raises(AuthenticationError):
        api.post("/auth/login", json={"email": "nobody@example.com", "password": "x"}, authenticated=False)
    callback.assert_not_called()


def test_check_connection(api, backend):
    report = api.check_connection()
    assert report.success
    assert report.url == BASE_URL

    backend.offline = True
    report = api.check_connection()
    assert not report.success
    assert "unable to reach server" in report.message


def test_check_connection_reports_status(api, backend):
    backend.fail("GET", "/subscriptions/plans", 503, None)
    report = api.check_connection()
    assert not report.success
    assert report.status == 503


def test_base_url_trailing_slash_is_dropped(backend):
    client = ApiClient(base_url=BASE_URL + "/", session=backend)
    client.get("/soundspots")
    assert backend.calls[-1].path == "/soundspots"


def test_open_upload_guesses_mime_type(tmp_path):
    path = tmp_path / "narration.mp3"
    path.write_bytes(b"ID3")
    with open_upload(str(path), "audio") as files:
        name, handle, mime = files["audio"]
        assert name == "narration.mp3"
        assert mime == "audio/mpeg"
        assert handle.read() == b"ID3"
    assert handle.closed
