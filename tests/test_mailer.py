from unittest.mock import MagicMock, patch

import requests

import mailer


def test_invite_link_uses_app_base_url(monkeypatch):
    monkeypatch.setattr("config.APP_BASE_URL", "https://coach.example.com")

    assert mailer.build_invite_link("abc") == "https://coach.example.com/invite/abc"


def test_no_api_key_skips_send():
    with patch("mailer.requests.post") as post:
        assert mailer.send_invite_email("a@example.com", "https://x/invite/t") == {"sent": False}

    post.assert_not_called()


def test_send_posts_to_resend(monkeypatch):
    monkeypatch.setattr("config.RESEND_API_KEY", "re_test")
    response = MagicMock()
    response.raise_for_status.return_value = None

    with patch("mailer.requests.post", return_value=response) as post:
        assert mailer.send_invite_email("a@example.com", "https://x/invite/t") == {"sent": True}

    args, kwargs = post.call_args
    assert args[0] == mailer.RESEND_URL
    assert kwargs["headers"]["Authorization"] == "Bearer re_test"
    assert kwargs["json"]["to"] == ["a@example.com"]
    assert "https://x/invite/t" in kwargs["json"]["html"]


def test_http_failure_is_reported_not_raised(monkeypatch):
    monkeypatch.setattr("config.RESEND_API_KEY", "re_test")
    response = MagicMock()
    response.raise_for_status.side_effect = requests.HTTPError("422 Unprocessable")

    with patch("mailer.requests.post", return_value=response):
        assert mailer.send_invite_email("a@example.com", "https://x/invite/t") == {"sent": False}


def test_network_failure_is_reported_not_raised(monkeypatch):
    monkeypatch.setattr("config.RESEND_API_KEY", "re_test")

    with patch("mailer.requests.post", side_effect=requests.ConnectionError("down")):
        assert mailer.send_invite_email("a@example.com", "https://x/invite/t") == {"sent": False}
