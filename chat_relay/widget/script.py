"""
Scripted dialogue: every line the widget says, the canned answers used when
tailored content is off, and the prompt templates used when it is on.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

GREETING = "Hi — are you interested in website improvements or AI efficiencies?"
OPENING_CONTACT = "Opening contact page..."

WEBSITE_AGE_QUESTION = "How long has it been since your website was built?"
WEBSITE_AGE_CHOICES: Tuple[str, ...] = ("Never", "10+ years", "5-10 years", "1-5 years")

AI_BUSINESS_QUESTION = "Great — what type of business are you in? (e.g., ecommerce, services, healthcare)"
AI_BUSINESS_PLACEHOLDER = "Type your business (press Enter)"

WEBSITE_GENERATING = "Generating tailored recommendations..."
AI_GENERATING = "Fetching tailored benefits..."
RETRYING = "Retrying..."
CONNECTION_ISSUE = "Connection issue. Let me try again..."
BACKEND_UNAVAILABLE = "Unable to connect to backend. Showing default recommendations."

CLOSING_QUESTION = "Would you like us to contact you to get started?"
WEBSITE_GOODBYE = "No problem — feel free to re-open this chat anytime."
AI_GOODBYE = "Alright — close the chat and reach out anytime."

CONTACT_PROMPT = "Please leave your name, email and a short note. We will follow up."
CONTACT_EMAIL_REQUIRED = "Please include an email."
CONTACT_THANKS = "Thanks — your request was recorded. We will contact you shortly."

WEBSITE_IMPROVEMENTS = {
    "Never": "Since you don't have a site yet, I recommend: modern responsive design, search engine friendly structure, visitor analytics, and easy content management.",
    "10+ years": "Older sites often need: mobile-friendly redesign, updated security, faster loading speeds, and modern design standards.",
    "5-10 years": "Consider: performance improvements, better mobile experience, content updates, and modern search optimization.",
    "1-5 years": "Likely a good base — suggest: conversion testing, visitor engagement improvements, and ongoing performance monitoring.",
}
WEBSITE_DEFAULT = "Recommended improvements: responsive layout, security, and analytics."

# (substrings, benefits); first rule with a matching substring wins
AI_BENEFIT_RULES: Sequence[Tuple[Tuple[str, ...], Tuple[str, ...]]] = (
    (("ecom", "shop"), ("Product recommendations to increase AOV", "Automated inventory forecasting", "Personalized marketing campaigns")),
    (("service",), ("Automated scheduling and reminders", "Lead scoring to prioritize outreach", "Chat assistants to handle FAQs")),
    (("health", "clinic"), ("Patient triage assistants", "Appointment scheduling automation", "Secure data handling & insights")),
)
AI_DEFAULT_BENEFITS: Tuple[str, ...] = ("Automation of repetitive tasks", "Personalized customer experiences", "Improved data-driven decisions")


def website_improvements(age: str) -> str:
    return WEBSITE_IMPROVEMENTS.get(age, WEBSITE_DEFAULT)


def ai_benefits(business_type: str) -> List[str]:
    key = business_type.lower()
    for needles, benefits in AI_BENEFIT_RULES:
        if any(n in key for n in needles):
            return list(benefits)
    return list(AI_DEFAULT_BENEFITS)


def numbered(items: Sequence[str]) -> str:
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))


def website_prompt(age: str) -> str:
    return f"Provide 6 concise technical improvements for a website that is {age}. Present them as numbered bullet points."


def ai_prompt(business_type: str) -> str:
    return f"List 6 concise benefits of using AI for a {business_type} business, formatted as numbered bullet points."
