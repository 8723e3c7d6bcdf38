"""
Builds completion requests shaped by the decision's behaviour mode.
"""

from assistant_core.models.domain.conversation_domain import BehaviorMode, ResponseType
from assistant_core.models.domain.job_domain import JobPayload
from assistant_core.services.completion_client import CompletionRequest

BASE_PROMPT = (
    "You are the study assistant of a collaborative learning platform, here to help "
    "students learn effectively."
)

MODE_PROMPTS: dict[BehaviorMode, str] = {
    BehaviorMode.PERSONAL_TUTOR: (
        "PERSONAL TUTORING MODE:\n"
        "- You are in one-on-one tutoring with a student\n"
        "- Be patient, encouraging and thorough in explanations\n"
        "- Ask follow-up questions to check understanding\n"
        "- Provide step-by-step guidance when needed"
    ),
    BehaviorMode.FOCUSED_TUTOR: (
        "STUDY SESSION MODE:\n"
        "- The student is in a dedicated study session\n"
        "- Keep them on task and build on what they are studying\n"
        "- Suggest practice questions when it helps"
    ),
    BehaviorMode.COLLABORATIVE_ASSISTANT: (
        "COLLABORATIVE MODE:\n"
        "- You are assisting a group of {participant_count} students\n"
        "- Answer the person who addressed you directly\n"
        "- Encourage peer-to-peer learning when appropriate\n"
        "- Provide guidance without dominating the conversation"
    ),
    BehaviorMode.COLLABORATIVE_TUTOR: (
        "COLLABORATIVE MODE:\n"
        "- You are assisting a group of {participant_count} students\n"
        "- Add a short supplementary point to their discussion\n"
        "- Provide guidance without dominating the conversation"
    ),
    BehaviorMode.FACILITATING_TUTOR: (
        "FACILITATING MODE:\n"
        "- Guide group learning and problem-solving\n"
        "- Ask questions that encourage critical thinking\n"
        "- Help students build on each other's ideas\n"
        "- Provide hints rather than direct answers when possible"
    ),
    BehaviorMode.EXPERT_CONSULTANT: (
        "EXPERT MODE:\n"
        "- Provide authoritative technical or academic assistance\n"
        "- Focus on accuracy and detailed explanations\n"
        "- Reference relevant concepts and principles"
    ),
    BehaviorMode.SELECTIVE_EXPERT: (
        "EXPERT MODE:\n"
        "- You are one voice in a large group; answer the question precisely\n"
        "- Keep the reply short and accurate"
    ),
}

STANDARD_PROMPT = (
    "STANDARD MODE:\n"
    "- Provide helpful, educational responses\n"
    "- Encourage learning and academic growth\n"
    "- Be supportive and constructive"
)

RESPONSE_TYPE_GUIDANCE: dict[ResponseType, str] = {
    ResponseType.TUTORING: "Focus on teaching and explaining concepts clearly.",
    ResponseType.TECHNICAL_ASSISTANCE: "Provide precise technical help with detailed solutions.",
    ResponseType.EDUCATIONAL: "Emphasize learning outcomes and conceptual understanding.",
    ResponseType.SUPPLEMENTARY: "Add to the discussion briefly; do not repeat what was said.",
}

TOKEN_LIMITS: dict[BehaviorMode, int] = {
    BehaviorMode.EXPERT_CONSULTANT: 600,
    BehaviorMode.PERSONAL_TUTOR: 500,
    BehaviorMode.COLLABORATIVE_ASSISTANT: 350,
    BehaviorMode.COLLABORATIVE_TUTOR: 350,
    BehaviorMode.FACILITATING_TUTOR: 350,
}
DEFAULT_TOKEN_LIMIT = 400

TEMPERATURES: dict[BehaviorMode, float] = {
    BehaviorMode.EXPERT_CONSULTANT: 0.3,
    BehaviorMode.PERSONAL_TUTOR: 0.7,
    BehaviorMode.FACILITATING_TUTOR: 0.8,
}
DEFAULT_TEMPERATURE = 0.6


def token_limit_for(mode: BehaviorMode, response_type: ResponseType) -> int:
    if response_type == ResponseType.TECHNICAL_ASSISTANCE:
        return TOKEN_LIMITS[BehaviorMode.EXPERT_CONSULTANT]
    return TOKEN_LIMITS.get(mode, DEFAULT_TOKEN_LIMIT)


def temperature_for(mode: BehaviorMode) -> float:
    return TEMPERATURES.get(mode, DEFAULT_TEMPERATURE)


def build_system_prompt(payload: JobPayload) -> str:
    decision = payload.decision
    count = payload.participant_count
    sections = [
        BASE_PROMPT,
        MODE_PROMPTS.get(decision.behavior_mode, STANDARD_PROMPT).format(participant_count=count),
    ]

    guidance = RESPONSE_TYPE_GUIDANCE.get(decision.response_type)
    if guidance:
        sections.append(guidance)

    thread_lines = ["Thread Context:"]
    if payload.title:
        thread_lines.append(f'- Title: "{payload.title}"')
    if payload.description:
        thread_lines.append(f'- Description: "{payload.description}"')
    thread_lines.append(f"- Participants: {count} {'student' if count == 1 else 'students'}")
    thread_lines.append(f"- Topic: {payload.topic}")
    thread_lines.append(f"- Learner level: {payload.learner_level}")
    sections.append("\n".join(thread_lines))

    sections.append(
        "Guidelines:\n"
        "- Keep responses concise but informative\n"
        "- Use clear, accessible language appropriate for students\n"
        "- Encourage active learning and critical thinking"
    )
    return "\n\n".join(sections)


def build_completion_request(
    payload: JobPayload,
    *,
    model: str | None = None,
    assistant_ids: frozenset[str] = frozenset({"ai-assistant"}),
) -> CompletionRequest:
    decision = payload.decision
    messages = [{"role": "system", "content": build_system_prompt(payload)}]
    for message in payload.recent_messages:
        if not message.text.strip():
            continue
        role = "assistant" if message.sender_id in assistant_ids else "user"
        messages.append({"role": role, "content": message.text})

    return CompletionRequest(
        messages=tuple(messages),
        max_tokens=token_limit_for(decision.behavior_mode, decision.response_type),
        temperature=temperature_for(decision.behavior_mode),
        model=model,
        metadata={
            "conversation_id": payload.conversation_id,
            "behavior_mode": decision.behavior_mode.value,
            "response_type": decision.response_type.value,
        },
    )
