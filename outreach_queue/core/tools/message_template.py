"""Message template rendering and the fallback draft used when none was written."""

from typing import Dict, Optional

from outreach_queue.core.model.queue_item import MessageType, QueueItem


class _SafeDict(dict):
    """Dict that returns empty string for missing keys."""

    def __missing__(self, key: str) -> str:
        return ""


def render_template(template: str, variables: Dict[str, str]) -> str:
    """Render a message template, leaving missing variables empty."""
    return template.format_map(_SafeDict(variables))


_CONNECTION_TEMPLATE = (
    "Hi {first_name},\n\n"
    "I came across your profile and was impressed by your experience{company_part}. "
    "I'm reaching out about {job_title} that I think could be a great match for "
    "your background{skills_part}.\n\n"
    "Would love to connect and share more details if you're open to it!"
)

_MESSAGE_TEMPLATE = (
    "Hi {first_name},\n\n"
    "I hope this message finds you well. I came across your profile and was "
    "impressed by your experience{company_part}.\n\n"
    "I'm reaching out about {job_title} that I believe could be a great fit for "
    "your skills{skills_part}.\n\n"
    "Would you be open to a brief conversation to learn more?{assessment_part}\n\n"
    "Best regards"
)

ASSESSMENT_NOTE = (
    "\n\nTo help me understand your background better, please complete this "
    "brief assessment: {url}"
)


def default_message(item: QueueItem) -> str:
    """Fallback draft built from the item's search criteria."""
    criteria = item.search_criteria
    variables = {
        "first_name": item.first_name,
        "company_part": f" at {item.current_company}" if item.current_company else "",
        "job_title": (criteria.job_title if criteria and criteria.job_title else "an exciting opportunity"),
        "skills_part": f" in {', '.join(criteria.skills[:3])}" if criteria and criteria.skills else "",
        "assessment_part": ASSESSMENT_NOTE.format(url=item.assessment_url) if item.assessment_url else "",
    }
    # Connection notes are capped by the provider, keep them short
    if item.message_type is MessageType.CONNECTION_REQUEST:
        return render_template(_CONNECTION_TEMPLATE, variables)
    return render_template(_MESSAGE_TEMPLATE, variables)


def message_text_for(item: QueueItem) -> Optional[str]:
    """Text actually sent for an item; connection-only requests carry none."""
    if item.message_type is MessageType.CONNECTION_ONLY:
        return None
    return item.message_draft or default_message(item)
