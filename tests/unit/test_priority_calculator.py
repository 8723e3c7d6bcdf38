import pytest

from assistant_core.models.domain.conversation_domain import ConversationContext
from assistant_core.models.domain.job_domain import JobPriority
from assistant_core.services.decision.decision_engine import decide
from assistant_core.services.decision.priority_calculator import (
    bucket_priority,
    calculate_priority,
    urgency_score,
)

BUSY = ConversationContext(participation_level=0.8)
QUIET = ConversationContext(participation_level=0.1)


@pytest.fixture
def score(make_message, make_thread):
    def _score(text, context=None, participants=2):
        message = make_message(text)
        decision = decide(message, make_thread(participants), [message])
        return calculate_priority(message, decision, context)

    return _score


def test_urgency_score_counts_terms():
    assert urgency_score("see you later") == 0.0
    assert urgency_score("this is urgent") == pytest.approx(0.3)
    assert urgency_score("urgent! deadline tonight, please help") == pytest.approx(0.9)
    assert urgency_score("urgent urgent urgent urgent") == 1.0


def test_urgency_respects_word_boundaries():
    assert urgency_score("the helpful tutor") == 0.0


def test_mention_with_academic_question_is_high_priority(score):
    result = score("AI, what is the derivative of x^2? exam tomorrow", QUIET)

    assert result.priority == 1.0
    assert result.factors["explicit_mention"] is True
    assert result.factors["academic_content"] is True
    assert result.factors["question"] is True
    assert bucket_priority(result.priority) == JobPriority.HIGH


def test_recent_assistant_turn_dampens_priority(score):
    dampened_context = ConversationContext(participation_level=0.1, has_recent_assistant_turn=True)

    fresh = score("AI, what is the derivative of x^2?", QUIET)
    dampened = score("AI, what is the derivative of x^2?", dampened_context)

    assert dampened.priority < fresh.priority
    assert dampened.priority <= 0.5
    assert dampened.factors["recent_assistant_turn"] is True


def test_dampening_caps_strong_message_at_half(score):
    recent_turn = ConversationContext(participation_level=0.1, has_recent_assistant_turn=True)

    result = score("AI, what is the derivative of x^2?", recent_turn)

    assert result.priority == pytest.approx(0.5)
    assert bucket_priority(result.priority) == JobPriority.NORMAL


def test_dampening_scales_weak_message(score):
    recent_turn = ConversationContext(participation_level=0.1, has_recent_assistant_turn=True)

    result = score("I think we should meet at the library", recent_turn)

    assert result.priority == pytest.approx(0.06)


def test_low_participation_adds_weight(score):
    quiet = score("I think we should meet at the library", QUIET)
    busy = score("I think we should meet at the library", BUSY)

    assert busy.priority == 0.0
    assert quiet.priority == pytest.approx(0.2)
    assert quiet.factors["low_participation"] is True


def test_technical_depth_needs_long_technical_message(score):
    long_code = (
        "const total = items.reduce((sum, item) => sum + item.price, 0); "
        "and then I log it with console.log(total) but the output looks wrong"
    )

    assert score(long_code, BUSY).factors["technical_depth"] is True
    assert score("const x = 1;", BUSY).factors["technical_depth"] is False


def test_context_defaults_to_decision_context(make_message, make_thread):
    history = [make_message("Here is a summary", "ai-assistant", seconds_ago=30)]
    message = make_message("AI, explain photosynthesis")
    decision = decide(message, make_thread(3), history + [message])

    result = calculate_priority(message, decision)

    assert result.factors["recent_assistant_turn"] is True
    assert result.priority <= 0.5


@pytest.mark.parametrize(
    "value,expected",
    [
        (1.0, JobPriority.HIGH),
        (0.75, JobPriority.HIGH),
        (0.74, JobPriority.NORMAL),
        (0.4, JobPriority.NORMAL),
        (0.39, JobPriority.LOW),
        (0.0, JobPriority.LOW),
    ],
)
def test_bucket_priority_thresholds(value, expected):
    assert bucket_priority(value) == expected


def test_bucket_priority_custom_thresholds():
    assert bucket_priority(0.5, high_threshold=0.5) == JobPriority.HIGH
    assert bucket_priority(0.3, normal_threshold=0.2) == JobPriority.NORMAL


@pytest.mark.parametrize(
    "text",
    ["", "ok", "lol", "AI help urgent asap emergency now", "What is the chain rule?"],
)
@pytest.mark.parametrize("context", [BUSY, QUIET, ConversationContext(has_recent_assistant_turn=True)])
def test_priority_always_in_unit_range(score, text, context):
    assert 0.0 <= score(text, context).priority <= 1.0
