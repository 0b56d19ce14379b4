"""
Budget Tracker — Brevo Email Transport
https://developers.brevo.com/reference/sendtransacemail

Outside production, recipients are filtered down to addresses matching
STAGING_EMAIL_PATTERN so test mail never reaches real users.
"""
import logging
import re
import time

import httpx

from budget_tracker.config import (
    BREVO_KEY, BREVO_API_URL, BREVO_RETRIES, BREVO_RETRY_DELAY, BREVO_RETRY_ON,
    SENDER_NAME, SENDER_EMAIL, STAGING_EMAIL_PATTERN, IS_PRODUCTION,
)
from budget_tracker.errors import EmailTransportError

logger = logging.getLogger(__name__)


def filter_recipients(recipients: list, production: bool = None, pattern: str = None) -> list:
    """Drop non-allowlisted addresses unless running in production."""
    if not recipients:
        return []
    if IS_PRODUCTION if production is None else production:
        return list(recipients)
    allow = re.compile(pattern or STAGING_EMAIL_PATTERN)
    return [r for r in recipients if allow.search(r.get("email") or "")]


def api(path: str, payload: dict, client: httpx.Client = None):
    """POST to the Brevo API with retry on gateway errors.

    Returns the decoded JSON body, or True when Brevo answers without one.
    Raises EmailTransportError on network failure or a non-2xx final status.
    """
    own_client = client is None
    client = client or httpx.Client(timeout=30.0)
    headers = {"api-key": BREVO_KEY, "Content-Type": "application/json"}
    try:
        for attempt in range(BREVO_RETRIES + 1):
            try:
                res = client.post(f"{BREVO_API_URL}{path}", json=payload, headers=headers)
            except httpx.HTTPError as e:
                raise EmailTransportError(f"Brevo request failed: {e}") from e
            if res.status_code in BREVO_RETRY_ON and attempt < BREVO_RETRIES:
                logger.warning("Brevo %s returned %s, retrying (%d/%d)",
                               path, res.status_code, attempt + 1, BREVO_RETRIES)
                time.sleep(BREVO_RETRY_DELAY)
                continue
            if res.status_code >= 400:
                raise EmailTransportError(f"Brevo {path} returned {res.status_code}: {res.text[:200]}",
                                          status_code=res.status_code)
            if "application/json" in res.headers.get("content-type", "") and res.content:
                return res.json()
            return True
    finally:
        if own_client:
            client.close()


def send_email(to: list, subject: str, html_content: str, cc: list = None, bcc: list = None,
               params: dict = None, client: httpx.Client = None):
    """Send one transactional email. Returns None when nothing was sent."""
    to = filter_recipients(to)
    cc = filter_recipients(cc)
    bcc = filter_recipients(bcc)
    if not to:
        logger.info("No allowed recipient for '%s', mail was not sent", subject)
        return None
    if not BREVO_KEY:
        logger.info("No BREVO_KEY configured, mail '%s' to %s was not sent",
                    subject, [r["email"] for r in to])
        return None

    body = {"sender": {"name": SENDER_NAME, "email": SENDER_EMAIL},
            "to": to, "subject": subject, "htmlContent": html_content}
    if cc: body["cc"] = cc
    if bcc: body["bcc"] = bcc
    if params: body["params"] = params

    result = api("/smtp/email", body, client=client)
    logger.info("Email '%s' sent to %s", subject, [r["email"] for r in to])
    return result
