"""
Integration tests for the assistant HTTP API running on in-memory backends.
"""

import time

import pytest

NOW = "2025-03-01T15:00:00+00:00"


def _body(text, participants=1, history=(), **thread):
    return {
        "message": {"text": text, "sender_id": "user-1", "timestamp": NOW},
        "thread": {
            "id": thread.pop("id", "thread-1"),
            "participants": [f"user-{i}" for i in range(1, participants + 1)],
            **thread,
        },
        "recent_messages": list(history),
    }


def _poll(client, job_id, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        data = client.get(f"/assistant/jobs/{job_id}").json()
        if data["status"] in ("completed", "failed"):
            return data
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} did not finish")


def test_decide_returns_decision_without_queueing(api_client, completion_stub):
    response = api_client.post("/assistant/decide", json=_body("What is the chain rule?"))

    assert response.status_code == 200
    data = response.json()
    assert data["should_respond"] is True
    assert data["behavior_mode"] == "personal_tutor"
    assert data["question_type"] == "definition"
    assert data["context"]["dominant_tone"] == "neutral"
    completion_stub.generate.assert_not_awaited()


def test_decide_group_casual_is_silent(api_client):
    data = api_client.post(
        "/assistant/decide", json=_body("how was your weekend?", participants=3)
    ).json()

    assert data["should_respond"] is False
    assert data["response_type"] == "none"


def test_decide_accepts_mixed_naive_and_aware_timestamps(api_client):
    history = [
        {"text": "anyone started the lab?", "sender_id": "user-2", "timestamp": "2025-03-01T14:59:00"},
        {"text": "yes, on part two", "sender_id": "user-3", "timestamp": NOW},
    ]

    response = api_client.post(
        "/assistant/decide", json=_body("how was your weekend?", participants=3, history=history)
    )

    assert response.status_code == 200
    assert response.json()["context"]["momentum"] == pytest.approx(1.0)


def test_post_message_queues_and_completes(api_client, services):
    response = api_client.post(
        "/assistant/messages", json=_body("AI, explain photosynthesis", participants=3)
    )

    assert response.status_code == 202
    data = response.json()
    assert data["decision"]["should_respond"] is True
    assert data["job_id"]
    assert data["priority"] == "high"
    assert 0.0 <= data["priority_score"] <= 1.0

    job = _poll(api_client, data["job_id"])
    assert job["status"] == "completed"
    assert job["result"]["text"] == "The chain rule differentiates composite functions."
    assert job["result"]["cached"] is False
    assert len(services.message_store.for_conversation("thread-1")) == 1


def test_post_message_silent_decision_queues_nothing(api_client, services):
    data = api_client.post("/assistant/messages", json=_body("ok", participants=3)).json()

    assert data["decision"]["should_respond"] is False
    assert data["job_id"] is None
    assert services.queue.stats()["submitted"] == 0


def test_history_is_forwarded_to_the_prompt(api_client, completion_stub):
    history = [
        {"text": "Did anyone finish problem 3?", "sender_id": "user-2", "timestamp": NOW},
        {"text": "Not yet", "sender_id": "ai-assistant", "timestamp": NOW},
    ]
    data = api_client.post(
        "/assistant/messages",
        json=_body("AI, how do I solve problem 3?", participants=2, history=history),
    ).json()

    _poll(api_client, data["job_id"])

    request = completion_stub.generate.await_args.args[0]
    assert [m["role"] for m in request.messages] == ["system", "user", "assistant", "user"]
    assert request.messages[-1]["content"] == "AI, how do I solve problem 3?"


def test_unknown_job_returns_404(api_client):
    response = api_client.get("/assistant/jobs/does-not-exist")

    assert response.status_code == 404


def test_stats_endpoint(api_client):
    api_client.post("/assistant/messages", json=_body("What is the chain rule?"))

    stats = api_client.get("/assistant/stats").json()["stats"]

    assert stats["submitted"] == 1
    assert stats["max_concurrent"] == 3
    assert stats["cache"]["backend"] == "memory"


@pytest.mark.parametrize(
    "body",
    [
        {"thread": {"id": "t", "participants": ["user-1"]}},
        _body("hello", participants=0),
        {**_body("hello"), "message": {"text": "hello", "timestamp": NOW}},
    ],
)
def test_invalid_request_returns_friendly_422(api_client, body):
    response = api_client.post("/assistant/decide", json=body)

    assert response.status_code == 422
    data = response.json()
    assert data["detail"].startswith("Invalid request to AI service")
    assert data["errors"]


def test_closed_queue_returns_503(api_client, services):
    services.queue._closed = True

    response = api_client.post("/assistant/messages", json=_body("What is the chain rule?"))

    assert response.status_code == 503
