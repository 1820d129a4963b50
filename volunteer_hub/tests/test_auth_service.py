"""
Tests for magic-link sign-in and the email builders behind it.
"""

import pytest

from volunteer_hub.services import auth_service, email_service
from volunteer_hub.services.errors import DependencyUnavailable, ValidationFailed


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    async def fake_send_email(to, subject, html_body, session=None):
        sent.append({"to": to, "subject": subject, "html": html_body})
        return True

    monkeypatch.setattr(email_service, "send_email", fake_send_email)
    return sent


@pytest.mark.asyncio
async def test_magic_link_sent_to_known_email(db_session, auth_provider, make_person, sent_emails):
    await make_person(email="rider@example.com")

    assert await auth_service.send_magic_link(db_session, auth_provider, "Rider@Example.com", "http://site/") is True

    assert auth_provider.magic_links == [("rider@example.com", "http://site/")]
    assert sent_emails[0]["to"] == "rider@example.com"
    assert "Log in to" in sent_emails[0]["subject"]


@pytest.mark.asyncio
async def test_unknown_email_gets_same_answer_and_no_email(db_session, auth_provider, sent_emails):
    assert await auth_service.send_magic_link(db_session, auth_provider, "ghost@example.com", "http://site/") is True

    assert auth_provider.magic_links == []
    assert sent_emails == []


@pytest.mark.asyncio
async def test_slow_provider_reports_waking_up(db_session, auth_provider, make_person, sent_emails):
    await make_person(email="rider@example.com")
    auth_provider.magic_link_delay = 1

    with pytest.raises(DependencyUnavailable) as exc_info:
        await auth_service.send_magic_link(db_session, auth_provider, "rider@example.com", "http://site/", timeout=0.05)

    assert exc_info.value.message == auth_service.WAKING_UP_MESSAGE


@pytest.mark.asyncio
async def test_failed_send_is_reported(db_session, auth_provider, make_person, monkeypatch):
    await make_person(email="rider@example.com")

    async def failing_send_email(to, subject, html_body, session=None):
        return False

    monkeypatch.setattr(email_service, "send_email", failing_send_email)

    with pytest.raises(DependencyUnavailable):
        await auth_service.send_magic_link(db_session, auth_provider, "rider@example.com", "http://site/")


@pytest.mark.asyncio
async def test_malformed_email_is_rejected(db_session, auth_provider):
    with pytest.raises(ValidationFailed):
        await auth_service.send_magic_link(db_session, auth_provider, "nope", "http://site/")


def test_builders_escape_user_input():
    message = email_service.build_role_confirmation("<b>Robin</b>", {"id": 1, "name": "Aid & Water"})

    assert "&lt;b&gt;Robin&lt;/b&gt;" in message["html"]
    assert "Aid &amp; Water" in message["html"]


def test_parent_waiver_signed_names_the_volunteer():
    message = email_service.build_parent_guardian_waiver_signed("Pat", "Kid", "Rider")

    assert message["subject"].startswith("Confirmation: You signed the waiver for Kid Rider")
    assert "Hi Pat," in message["html"]


@pytest.mark.asyncio
async def test_send_email_skipped_when_disabled(monkeypatch):
    monkeypatch.setenv("ENABLE_EMAIL", "false")

    assert await email_service.send_email("a@example.com", "Hello", "<p>Hi</p>") is True
