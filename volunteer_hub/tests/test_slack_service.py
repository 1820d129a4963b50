"""
Tests for Slack signup notifications.
"""

import httpx
import pytest

from volunteer_hub.services import slack_service, signup_service, settings_service


def test_signup_message_format():
    text = slack_service.build_signup_message(
        volunteer_name="Robin Cruz",
        volunteer_email="robin@example.com",
        role_name="Water Station 1",
        role_filled=2,
        role_total=3,
        all_filled=40,
        all_total=120,
    )

    assert text == (
        ":raising_hand: New volunteer signup: *Robin Cruz* (robin@example.com) signed up for *Water Station 1*."
        "\n\n2/3 of Water Station 1 filled\n40/120 of all volunteer roles filled!"
    )


def test_signup_message_with_missing_details():
    text = slack_service.build_signup_message(None, None, None, 0, 0, 0, 0)

    assert "*A volunteer*" in text
    assert "*Unknown role*" in text
    assert "0/1 of Unknown role filled" in text
    assert "0/1 of all volunteer roles filled!" in text


@pytest.mark.asyncio
async def test_fill_counts_are_read_from_storage(db_session, make_person, make_role):
    role_id = await make_role(name="Water Station 1", positions_total=3)
    await make_role(name="Finish Line", positions_total=5)
    for _ in range(2):
        await signup_service.create_signup(db_session, await make_person(), role_id)

    counts = await slack_service.get_fill_counts(db_session, role_id)

    assert counts == {
        "role_name": "Water Station 1",
        "role_filled": 2,
        "role_total": 3,
        "all_filled": 2,
        "all_total": 8,
    }


@pytest.mark.asyncio
async def test_slack_can_be_disabled_from_settings(db_session, monkeypatch):
    monkeypatch.delenv("ENABLE_SLACK", raising=False)
    assert await slack_service.is_enabled(db_session) is True

    await settings_service.set_setting(db_session, "enable_slack", "false")

    assert await slack_service.is_enabled(db_session) is False


@pytest.mark.asyncio
async def test_post_message_success_and_failure():
    def ok(request):
        assert request.headers["Authorization"] == "Bearer xoxb-test"
        return httpx.Response(200, json={"ok": True})

    def rejected(request):
        return httpx.Response(200, json={"ok": False, "error": "channel_not_found"})

    assert await slack_service.post_message("hi", "C123", "xoxb-test", transport=httpx.MockTransport(ok)) is True
    assert (
        await slack_service.post_message("hi", "C123", "xoxb-test", transport=httpx.MockTransport(rejected))
        is False
    )


@pytest.mark.asyncio
async def test_post_message_skipped_when_not_configured(monkeypatch):
    monkeypatch.setattr(slack_service, "SLACK_BOT_TOKEN", None)

    assert await slack_service.post_message("hi", channel="C123") is True
