"""
End-to-end assistant scenarios: decision over HTTP, reply jobs through the
real queue, cache, message store and broadcaster with only the completion
API stubbed.
"""

import pytest

from assistant_core.models.domain.job_domain import JobStatus
from assistant_core.services.errors import TransientUpstreamError

NOW = "2025-03-01T15:00:00+00:00"


def _decide(client, text, participants):
    body = {
        "message": {"text": text, "sender_id": "user-1", "timestamp": NOW},
        "thread": {
            "id": "thread-1",
            "participants": [f"user-{i}" for i in range(1, participants + 1)],
        },
    }
    response = client.post("/assistant/decide", json=body)
    assert response.status_code == 200
    return response.json()


def test_explicit_mention_in_pair_gets_a_reply(api_client):
    decision = _decide(api_client, "AI, explain photosynthesis", participants=2)

    assert decision["should_respond"] is True
    assert "mention" in decision["reason"].lower()
    assert decision["confidence"] >= 0.85


def test_small_talk_in_group_stays_silent(api_client):
    decision = _decide(api_client, "how was your weekend?", participants=3)

    assert decision["should_respond"] is False


def test_solo_academic_question_gets_personal_tutor(api_client):
    decision = _decide(api_client, "What is the chain rule?", participants=1)

    assert decision["should_respond"] is True
    assert decision["behavior_mode"] == "personal_tutor"


@pytest.mark.asyncio
async def test_repeated_payload_is_served_from_cache(
    services, make_payload, completion_stub, wait_for_terminal
):
    await services.start()
    try:
        payload = make_payload()
        first = await wait_for_terminal(services.queue, services.queue.submit(payload))
        second = await wait_for_terminal(services.queue, services.queue.submit(payload))
    finally:
        await services.close()

    assert first.status == JobStatus.COMPLETED
    assert second.status == JobStatus.COMPLETED
    assert first.result.cached is False
    assert second.result.cached is True
    assert completion_stub.generate.await_count == 1


@pytest.mark.asyncio
async def test_persistent_server_errors_fail_the_job(
    services, make_payload, completion_stub, wait_for_terminal
):
    completion_stub.generate.side_effect = [
        TransientUpstreamError("500 Internal Server Error", status_code=500) for _ in range(3)
    ]

    await services.start()
    try:
        view = await wait_for_terminal(services.queue, services.queue.submit(make_payload()))
    finally:
        await services.close()

    assert view.status == JobStatus.FAILED
    assert view.error
    assert "500" not in view.error
    assert completion_stub.generate.await_count == 3
    assert services.message_store.messages == []
