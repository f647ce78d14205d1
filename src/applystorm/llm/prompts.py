from __future__ import annotations

ROLE_SUGGESTION_PROMPT = """
You will receive a job title and description.
Return ONLY one short role label from this list that best matches: {labels}.
If none, return "other".

Title: {title}
Description: {description}
Role:
""".strip()
