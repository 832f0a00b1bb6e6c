import logging

import requests

import config

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


def build_invite_link(token: str) -> str:
    return f"{config.APP_BASE_URL}/invite/{token}"


def _invite_html(link: str) -> str:
    return (
        "<p>Your coach has invited you to join Coach Log.</p>"
        f'<p><a href="{link}">Accept your invitation</a></p>'
        "<p>If the button does not work, copy this link into your browser:</p>"
        f"<p>{link}</p>"
    )


def send_invite_email(address: str, link: str) -> dict:
    """
    Fire-and-forget invite delivery.
    returns: {"sent": bool}; a False result is surfaced, never retried.
    """
    if not config.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY is not set; invite email not sent")
        return {"sent": False}

    try:
        r = requests.post(
            RESEND_URL,
            headers={"Authorization": f"Bearer {config.RESEND_API_KEY}"},
            json={
                "from": config.INVITE_FROM_EMAIL,
                "to": [address],
                "subject": "You're invited to Coach Log",
                "html": _invite_html(link),
            },
            timeout=20,
        )
        r.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Invite email to %s failed: %s", address, exc)
        return {"sent": False}

    return {"sent": True}
