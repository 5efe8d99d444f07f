"""
Shared helpers for the rule-based assistants
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

GREETING_PATTERN = re.compile(r"\b(hello|hi|hey|greetings)\b")
SITE_ID_PATTERN = re.compile(r"site (\d+)")


@dataclass
class AssistantContext:
    """Where the user is in the UI when asking a question"""
    trial_id: Optional[int] = None
    trial_name: Optional[str] = None
    site_id: Optional[int] = None
    site_name: Optional[str] = None


def format_date(value: datetime) -> str:
    return value.strftime("%m/%d/%Y")


def format_relative_date(value: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    diff_days = (now - value).days
    if diff_days == 0:
        return "today"
    if diff_days == 1:
        return "yesterday"
    return f"{diff_days} days ago"


def contains_any(text: str, *words: str) -> bool:
    return any(word in text for word in words)


def is_greeting(text: str) -> bool:
    return GREETING_PATTERN.search(text) is not None


def extract_site_id(text: str, context: AssistantContext) -> Optional[int]:
    """Site number mentioned as 'site 123', else the one in context"""
    match = SITE_ID_PATTERN.search(text)
    if match:
        return int(match.group(1))
    return context.site_id


def extract_after(keyword: str, text: str) -> Optional[str]:
    """Value following ``keyword:`` or ``keyword `` up to the next comma or period"""
    match = re.search(rf"{keyword}[:\s]+([^,.]+)", text, re.IGNORECASE)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None
