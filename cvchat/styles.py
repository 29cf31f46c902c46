"""Per-style wording used across prompts, answers and escalation messages."""

from dataclasses import dataclass, replace

from .config import config
from .models import ResponseStyle


@dataclass(frozen=True)
class StyleProfile:
    """All style-dependent text for one conversation style.

    Text fields may contain a ``{persona}`` placeholder which is filled in by
    :func:`get_style_profile`.
    """

    style: ResponseStyle
    name: str
    greeting: str
    prompt_instruction: str
    rephrase_message: str
    rephrase_suggestions: str
    email_offer: str
    error_message: str
    no_match_message: str
    email_subject: str
    email_greeting: str
    email_closing: str
    multi_topic_intro: str
    continuation: str
    follow_up_phrase: str


STYLE_PROFILES: dict[ResponseStyle, StyleProfile] = {
    ResponseStyle.HR: StyleProfile(
        style=ResponseStyle.HR,
        name="Professional (HR)",
        greeting=(
            "Hello! I'm {persona}'s AI assistant. I can help you learn about "
            "professional experience, skills, and achievements. "
            "What would you like to know?"
        ),
        prompt_instruction=(
            "professional and achievement-focused manner. Focus on experience, "
            "qualifications, and measurable results"
        ),
        rephrase_message=(
            "I'm not entirely certain about that topic. Could you please rephrase "
            "your question or be more specific about what you'd like to know?"
        ),
        rephrase_suggestions=(
            "You might ask about my professional experience, technical skills, "
            "project achievements, or career background."
        ),
        email_offer=(
            "I apologize that I couldn't provide the specific information you're "
            "looking for. I'd be happy to connect you directly with {persona} for "
            "a more detailed discussion. Would you like to send an email?"
        ),
        error_message=(
            "I apologize, but I'm experiencing technical difficulties. Please try "
            "again in a moment or contact {persona} directly."
        ),
        no_match_message=(
            "I apologize, but I don't have specific information about that topic. "
            "Could you ask about my experience, skills, or projects?"
        ),
        email_subject="Professional Inquiry from Portfolio Chat",
        email_greeting=(
            "Dear {persona},\n\nI hope this message finds you well. I was reviewing "
            "your portfolio and had some questions that your AI assistant couldn't "
            "fully address."
        ),
        email_closing=(
            "I would appreciate the opportunity to discuss this further at your "
            "convenience.\n\nBest regards,"
        ),
        multi_topic_intro="Regarding your question,",
        continuation="Additionally,",
        follow_up_phrase="Building on our previous discussion,",
    ),
    ResponseStyle.DEVELOPER: StyleProfile(
        style=ResponseStyle.DEVELOPER,
        name="Technical (Developer)",
        greeting=(
            "Hey there! I'm an AI version of {persona}. Feel free to ask about "
            "technical experience, projects, or anything development-related."
        ),
        prompt_instruction=(
            "technical and collaborative manner. Use technical language and share "
            "insights about technologies"
        ),
        rephrase_message=(
            "I'm not quite sure what you're looking for there. Could you rephrase "
            "that or give me a bit more context?"
        ),
        rephrase_suggestions=(
            "Try asking about specific technologies, projects I've worked on, or "
            "technical challenges I've solved."
        ),
        email_offer=(
            "Hmm, seems like I'm not quite getting what you're after. How about we "
            "get you in touch with {persona} directly? I can help you draft an "
            "email."
        ),
        error_message=(
            "Hmm, something went wrong on my end. Mind trying that again in a "
            "moment?"
        ),
        no_match_message=(
            "Hmm, I don't have details on that specific topic. I'd be happy to talk "
            "about my experience, tech stack, or projects."
        ),
        email_subject="Technical Discussion from Portfolio Chat",
        email_greeting=(
            "Hi {persona},\n\nI was checking out your portfolio and chatting with "
            "your AI assistant, but I have some questions that need a human touch."
        ),
        email_closing=(
            "Would love to chat more about this when you have a chance.\n\nCheers,"
        ),
        multi_topic_intro="Great question!",
        continuation="Also,",
        follow_up_phrase="Following up on what we talked about,",
    ),
    ResponseStyle.FRIEND: StyleProfile(
        style=ResponseStyle.FRIEND,
        name="Casual (Friend)",
        greeting=(
            "Hi! 👋 I'm {persona}'s AI buddy! Ask me anything about work, projects, "
            "or just chat about tech stuff. 😊"
        ),
        prompt_instruction=(
            "casual and enthusiastic manner. Use emojis when appropriate and make "
            "concepts accessible"
        ),
        rephrase_message=(
            "Hmm, I'm not sure I got that! 🤔 Could you ask that in a different way? "
            "Maybe be a bit more specific?"
        ),
        rephrase_suggestions=(
            "Maybe ask about my favorite projects, what I love about coding, or fun "
            "tech stuff I've been working on! 😊"
        ),
        email_offer=(
            "Oops! 😅 I'm not being very helpful, am I? Let's get you connected with "
            "the real {persona}! Want to send an email? Tricky questions are much "
            "better answered by a human! 😊"
        ),
        error_message=(
            "Oops! 😅 Something got mixed up. Can you try asking that again?"
        ),
        no_match_message=(
            "Oops! 😅 I don't think I have info about that. Ask me about my coding "
            "adventures and projects instead!"
        ),
        email_subject="Friendly Chat from Portfolio Website",
        email_greeting=(
            "Hey {persona}! 👋\n\nI was having a fun chat with your AI buddy on your "
            "portfolio, but I think I need to talk to the real you for this one! 😊"
        ),
        email_closing="Hope to hear from you soon!\n\nThanks! 😊",
        multi_topic_intro="Oh, that's a good one! 😊",
        continuation="Oh, and",
        follow_up_phrase="Speaking of what we just discussed,",
    ),
}


def get_style_profile(
    style: ResponseStyle | str | None, persona: str | None = None
) -> StyleProfile:
    """Resolve a style to its profile, defaulting to developer.

    Unknown styles never raise; they resolve to the developer profile.

    Returns:
        The profile with the persona name filled in.
    """
    resolved = ResponseStyle.coerce(style)
    profile = STYLE_PROFILES[resolved]
    name = persona or config.PERSONA_NAME
    return replace(
        profile,
        **{
            field_name: value.format(persona=name)
            for field_name, value in vars(profile).items()
            if isinstance(value, str) and "{persona}" in value
        },
    )
