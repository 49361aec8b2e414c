import pytest

from elibrary.services.api_client import ApiClient
from elibrary.services.http_client import HttpClient, NetworkError, UnauthorizedError
from elibrary.services.session import DEMO_TOKEN_PREFIX, Session
from elibrary.services.token_store import TokenStore
from elibrary.services.validation import ValidationError

BASE = "http://backend.test/api"


def _session(clock, *, demo_auth=False) -> Session:
    store = TokenStore()
    api = ApiClient(HttpClient(store, base_url=BASE))
    return Session(api.auth, store, demo_auth=demo_auth, clock=clock)


def _auth_ok(make_resp):
    payload = {"token": "jwt-7", "user": {"id": "u7", "username": "reader", "email": "reader@example.com"}}
    return lambda method, url, **kw: make_resp(200, payload)


def test_login_persists_token_until_logout(transport, make_resp, clock):
    transport.handler = _auth_ok(make_resp)
    session = _session(clock)

    result = session.login(" Reader@Example.com ", "secret")

    assert result.token == "jwt-7"
    assert transport.calls[0]["json"]["email"] == "reader@example.com"
    assert session.token == "jwt-7"
    assert session.is_authenticated

    restored = _session(clock)
    assert restored.token == "jwt-7"
    assert restored.user is not None and restored.user.id == "u7"

    restored.logout()
    assert restored.token is None
    assert _session(clock).user is None


def test_401_anywhere_evicts_session(transport, make_resp, clock):
    transport.handler = _auth_ok(make_resp)
    session = _session(clock)
    session.login("reader@example.com", "secret")

    transport.handler = lambda method, url, **kw: make_resp(401, {"message": "expired"})
    with pytest.raises(UnauthorizedError):
        session.auth_api.http.send("GET", "/pdf")

    assert session.token is None
    assert session.user is None
    assert not session.is_authenticated


def test_login_failure_raises_typed_error_without_demo_auth(transport, clock):
    session = _session(clock)
    with pytest.raises(NetworkError):
        session.login("reader@example.com", "secret")
    assert session.token is None


def test_demo_auth_issues_local_session_when_backend_unreachable(transport, clock):
    session = _session(clock, demo_auth=True)

    result = session.login("reader@example.com", "anything")

    assert result.token.startswith(DEMO_TOKEN_PREFIX)
    assert result.user.id == "demo-user-1"
    assert result.user.username == "reader"
    assert session.token == result.token


def test_demo_registration_uses_timestamp_user_id(transport, clock):
    session = _session(clock, demo_auth=True)
    result = session.register("Ada", "ada@example.com", "pw")
    assert result.user.id.startswith("demo-user-")
    assert result.user.id != "demo-user-1"
    assert result.user.username == "Ada"


@pytest.mark.parametrize(
    "email,password",
    [("", "pw"), ("   ", "pw"), ("reader@example.com", "")],
)
def test_login_validation_happens_before_network(transport, clock, email, password):
    session = _session(clock)
    with pytest.raises(ValidationError):
        session.login(email, password)
    assert transport.calls == []


def test_user_without_token_is_not_restored(clock):
    from elibrary.services.records import User

    store = TokenStore()
    store.set_user(User(id="u1", username="x", email="x@example.com"))
    session = _session(clock)
    assert session.user is None
    assert store.get_user() is None
