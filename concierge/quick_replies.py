"""Keyword-driven follow-up suggestions used when the model offers none."""

from __future__ import annotations

DEFAULT_REPLIES = [
    "Tell me about your current business challenges",
    "What's your biggest growth goal right now?",
    "Show me tools that could help",
]

# Checked in order against the user's text; first match wins.
_BY_USER_TEXT: list[tuple[tuple[str, ...], list[str]]] = [
    (
        ("crm", "customer", "contact"),
        [
            "What's your budget for a CRM?",
            "How many leads do you get monthly?",
            "Do you need integration with other tools?",
        ],
    ),
    (
        ("lead", "marketing", "ads"),
        [
            "What's your current lead source?",
            "What's your monthly marketing budget?",
            "Tell me about your target market",
        ],
    ),
    (
        ("website", "online", "seo"),
        [
            "Do you have a website currently?",
            "What's your target area for SEO?",
            "Do you need IDX property search?",
        ],
    ),
    (
        ("photography", "photos", "virtual"),
        [
            "How many listings do you have monthly?",
            "Do you need drone photography?",
            "What's your photography budget per listing?",
        ],
    ),
    (
        ("coaching", "training", "learn"),
        [
            "What area do you want to improve most?",
            "How long have you been in real estate?",
            "What's your current transaction volume?",
        ],
    ),
    (
        ("best", "recommend", "suggest"),
        [
            "Tell me more about your specific needs",
            "What's your budget range?",
            "What have you tried before?",
        ],
    ),
    (
        ("goal", "grow", "business"),
        [
            "What's your current transaction volume?",
            "What's holding you back right now?",
            "Where do you want to be in 12 months?",
        ],
    ),
]

_BY_REPLY: list[tuple[tuple[str, ...], list[str]]] = [
    (
        ("crm", "contact management"),
        [
            "Compare CRM options for me",
            "What integrations should I look for?",
            "How much should I budget for a CRM?",
        ],
    ),
    (
        ("lead generation", "marketing"),
        [
            "Show me lead generation strategies",
            "What's the ROI on different marketing channels?",
            "Help me create a marketing plan",
        ],
    ),
]


def _first_match(
    text: str, table: list[tuple[tuple[str, ...], list[str]]]
) -> list[str] | None:
    for keywords, replies in table:
        if any(k in text for k in keywords):
            return list(replies)
    return None


def suggest_quick_replies(user_text: str, reply_text: str) -> list[str]:
    """Pick three follow-ups from the user's text, then the reply, then defaults."""
    return (
        _first_match(user_text.lower(), _BY_USER_TEXT)
        or _first_match(reply_text.lower(), _BY_REPLY)
        or list(DEFAULT_REPLIES)
    )
