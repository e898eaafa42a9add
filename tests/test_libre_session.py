from __future__ import annotations

import hashlib

import pytest

from conftest import FakeTransport, login_ok, login_redirect
from libre_client import BASE_URL, REGIONAL_HOSTS, AuthError, TransportError
from libre_session import Credentials, SessionNegotiator, account_hash

CREDS = Credentials(username="follower@example.com", password="s3cret")


def test_login_without_redirect_returns_session(transport: FakeTransport) -> None:
    transport.responses = [login_ok(token="abc", user_id="user-1")]

    session = SessionNegotiator(transport).authenticate(CREDS)

    assert session.token == "abc"
    assert session.region_host == BASE_URL
    assert session.account_hash == hashlib.sha256(b"user-1").hexdigest()
    assert len(transport.calls) == 1
    call = transport.calls[0]
    assert call.method == "POST"
    assert call.url == "https://api.libreview.io/llu/auth/login"
    assert call.body == {"email": "follower@example.com", "password": "s3cret"}
    assert call.headers == {
        "Content-Type": "application/json",
        "product": "llu.android",
        "version": "4.16.0",
    }


@pytest.mark.parametrize("code", sorted(REGIONAL_HOSTS))
def test_redirect_logs_in_once_against_regional_host(transport: FakeTransport, code: str) -> None:
    transport.responses = [login_redirect(code), login_ok()]

    session = SessionNegotiator(transport).authenticate(CREDS)

    urls = [c.url for c in transport.calls]
    assert urls == [
        BASE_URL + "/llu/auth/login",
        REGIONAL_HOSTS[code] + "/llu/auth/login",
    ]
    assert session.region_host == REGIONAL_HOSTS[code]


def test_redirect_region_code_is_case_insensitive(transport: FakeTransport) -> None:
    transport.responses = [login_redirect("eu2"), login_ok()]
    session = SessionNegotiator(transport).authenticate(CREDS)
    assert session.region_host == "https://api-eu2.libreview.io"


def test_unknown_region_fails_without_retry(transport: FakeTransport) -> None:
    transport.responses = [login_redirect("XX")]

    with pytest.raises(AuthError, match="unknown region"):
        SessionNegotiator(transport).authenticate(CREDS)
    assert len(transport.calls) == 1


def test_repeated_region_is_a_redirect_loop(transport: FakeTransport) -> None:
    transport.responses = [login_redirect("EU"), login_redirect("EU")]

    with pytest.raises(AuthError, match="redirect loop"):
        SessionNegotiator(transport).authenticate(CREDS)
    assert len(transport.calls) == 2


def test_hop_cap_stops_distinct_region_chain(transport: FakeTransport) -> None:
    chain = ["US", "EU", "DE", "FR", "JP", "AU"]
    transport.responses = [login_redirect(code) for code in chain]

    with pytest.raises(AuthError, match="redirect loop"):
        SessionNegotiator(transport, max_redirects=5).authenticate(CREDS)
    # five hops followed, the sixth redirect is refused
    assert len(transport.calls) == 6


def test_two_distinct_redirects_within_cap_succeed(transport: FakeTransport) -> None:
    transport.responses = [login_redirect("EU"), login_redirect("DE"), login_ok()]

    session = SessionNegotiator(transport).authenticate(CREDS)

    assert session.region_host == REGIONAL_HOSTS["DE"]
    assert [c.url for c in transport.calls][1:] == [
        REGIONAL_HOSTS["EU"] + "/llu/auth/login",
        REGIONAL_HOSTS["DE"] + "/llu/auth/login",
    ]


def test_service_error_message_is_reported(transport: FakeTransport) -> None:
    transport.responses = [{"status": 2, "error": {"message": "Bad credentials"}}]

    with pytest.raises(AuthError, match="Bad credentials"):
        SessionNegotiator(transport).authenticate(CREDS)


def test_service_error_without_message_uses_default(transport: FakeTransport) -> None:
    transport.responses = [{"status": 4}]

    with pytest.raises(AuthError, match="authentication failed"):
        SessionNegotiator(transport).authenticate(CREDS)


def test_missing_token_is_auth_error(transport: FakeTransport) -> None:
    transport.responses = [{"status": 0, "data": {"user": {"id": "u"}}}]

    with pytest.raises(AuthError, match="no auth token received"):
        SessionNegotiator(transport).authenticate(CREDS)


def test_redirect_flag_without_region_falls_through_to_token_check(transport: FakeTransport) -> None:
    transport.responses = [{"status": 0, "data": {"redirect": True}}]

    with pytest.raises(AuthError, match="no auth token received"):
        SessionNegotiator(transport).authenticate(CREDS)


def test_missing_user_id_leaves_account_hash_absent(transport: FakeTransport) -> None:
    transport.responses = [login_ok(user_id=None)]
    session = SessionNegotiator(transport).authenticate(CREDS)
    assert session.account_hash is None


def test_transport_error_propagates(transport: FakeTransport) -> None:
    transport.responses = [TransportError("Request timed out after 30s")]

    with pytest.raises(TransportError, match="timed out"):
        SessionNegotiator(transport).authenticate(CREDS)


def test_unexpected_transport_exception_becomes_transport_error(transport: FakeTransport) -> None:
    transport.responses = [RuntimeError("socket exploded")]

    with pytest.raises(TransportError, match="socket exploded"):
        SessionNegotiator(transport).authenticate(CREDS)


def test_each_authenticate_starts_from_base_url(transport: FakeTransport) -> None:
    negotiator = SessionNegotiator(transport)
    transport.responses = [login_redirect("US"), login_ok()]
    negotiator.authenticate(CREDS)
    transport.responses = [login_ok()]

    session = negotiator.authenticate(CREDS)

    assert transport.calls[-1].url == BASE_URL + "/llu/auth/login"
    assert session.region_host == BASE_URL


def test_account_hash_is_hex_sha256() -> None:
    assert account_hash("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_reprs_hide_secrets() -> None:
    assert "s3cret" not in repr(CREDS)
    transport = FakeTransport([login_ok(token="very-secret-token")])
    session = SessionNegotiator(transport).authenticate(CREDS)
    assert "very-secret-token" not in repr(session)
