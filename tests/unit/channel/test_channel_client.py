"""
Unit tests for the channel manager HTTP client: retries and error mapping.
"""

from __future__ import annotations

from unittest.mock import Mock, patch

import pytest
import requests

from resort_booking.channel.client import ChannelClient, extract_error_message, should_retry
from resort_booking.errors import ChannelRemoteError, ChannelTransportError


def make_response(status_code: int, body: object = None, text: str = "") -> Mock:
    res = Mock(spec=requests.Response)
    res.status_code = status_code
    res.ok = 200 <= status_code < 400
    res.reason = "Reason"
    res.text = text
    res.content = b"{}" if body is not None else b""
    if body is None:
        res.json.side_effect = ValueError("no body")
    else:
        res.json.return_value = body
    return res


@pytest.fixture
def session() -> Mock:
    return Mock(spec=requests.Session)


@pytest.fixture
def client(session: Mock) -> ChannelClient:
    return ChannelClient(api_key="test-key", base_url="https://channel.test/api", session=session)


@pytest.mark.unit
def test_request_sends_api_key_and_returns_json(client: ChannelClient, session: Mock) -> None:
    session.request.return_value = make_response(200, {"apartments": []})

    body = client.request("GET", "apartments")

    assert body == {"apartments": []}
    args, kwargs = session.request.call_args
    assert args == ("GET", "https://channel.test/api/apartments")
    assert kwargs["headers"]["Api-Key"] == "test-key"
    assert kwargs["timeout"] == client.timeout


@pytest.mark.unit
def test_empty_body_returns_none(client: ChannelClient, session: Mock) -> None:
    session.request.return_value = make_response(204)

    assert client.request("DELETE", "reservations/1") is None


@pytest.mark.unit
def test_non_json_success_body_raises_remote_error(client: ChannelClient, session: Mock) -> None:
    res = make_response(200, text="<html>maintenance</html>")
    res.content = b"<html>maintenance</html>"
    res.json.side_effect = requests.JSONDecodeError("Expecting value", "<html>", 0)
    session.request.return_value = res

    with pytest.raises(ChannelRemoteError) as exc_info:
        client.request("GET", "rates")

    assert exc_info.value.status_code == 200
    assert exc_info.value.endpoint == "rates"


@pytest.mark.unit
@patch("resort_booking.channel.client.time.sleep")
def test_get_is_retried_after_server_error(
    mock_sleep: Mock, client: ChannelClient, session: Mock
) -> None:
    session.request.side_effect = [make_response(503, {"error": "busy"}), make_response(200, {"ok": 1})]

    assert client.request("GET", "rates") == {"ok": 1}
    assert session.request.call_count == 2
    mock_sleep.assert_called_once()


@pytest.mark.unit
@patch("resort_booking.channel.client.time.sleep")
def test_post_is_not_retried_after_timeout(
    mock_sleep: Mock, client: ChannelClient, session: Mock
) -> None:
    """A timed-out POST may already have created the reservation."""
    session.request.side_effect = requests.Timeout("read timed out")

    with pytest.raises(ChannelTransportError):
        client.request("POST", "reservations", json={})

    assert session.request.call_count == 1
    mock_sleep.assert_not_called()


@pytest.mark.unit
@patch("resort_booking.channel.client.time.sleep")
def test_rate_limit_is_retried_for_post(
    mock_sleep: Mock, client: ChannelClient, session: Mock
) -> None:
    session.request.side_effect = [make_response(429, {}), make_response(200, {"id": 77})]

    assert client.request("POST", "reservations", json={}) == {"id": 77}
    assert session.request.call_count == 2


@pytest.mark.unit
@patch("resort_booking.channel.client.time.sleep")
def test_retries_are_bounded(mock_sleep: Mock, session: Mock) -> None:
    client = ChannelClient(api_key="k", base_url="https://channel.test/api/", max_retries=2, session=session)
    session.request.side_effect = requests.ConnectionError("refused")

    with pytest.raises(ChannelTransportError):
        client.request("GET", "apartments")

    assert session.request.call_count == 3


@pytest.mark.unit
def test_client_error_raises_remote_error_with_message(client: ChannelClient, session: Mock) -> None:
    session.request.return_value = make_response(422, {"detail": "apartment not found"})

    with pytest.raises(ChannelRemoteError) as exc_info:
        client.request("POST", "reservations", json={})

    assert exc_info.value.status_code == 422
    assert exc_info.value.message == "apartment not found"
    assert exc_info.value.endpoint == "reservations"


@pytest.mark.unit
@pytest.mark.parametrize(
    "method, status_code, err, expected",
    [
        ("GET", 500, None, True),
        ("PUT", 502, None, True),
        ("POST", 500, None, False),
        ("POST", 429, None, True),
        ("GET", 404, None, False),
        ("DELETE", None, requests.ConnectionError(), True),
        ("POST", None, requests.Timeout(), False),
    ],
)
def test_should_retry(method: str, status_code: object, err: object, expected: bool) -> None:
    res = make_response(status_code) if status_code is not None else None

    assert should_retry(method, res, err) is expected  # type: ignore[arg-type]


@pytest.mark.unit
def test_extract_error_message_falls_back_to_text() -> None:
    assert extract_error_message(make_response(400, None, text="Bad things")) == "Bad things"
    assert extract_error_message(make_response(400, {"title": "Invalid dates"})) == "Invalid dates"
