"""Variable substitution for task templates spawned by rules."""

from __future__ import annotations

import re

from ..events import DomainEvent

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def resource_link(resource_type: str, resource_id: int, project_id: int) -> str:
    return f"/projects/{project_id}/{resource_type}s/{resource_id}"


def build_variables(event: DomainEvent, project_name: str, user_name: str) -> dict[str, str]:
    """Variables available to templates.

    Supported variables:
        {{father}}      link to the resource that triggered the rule
        {{from_state}}  state before the transition (empty if none)
        {{to_state}}    state that triggered the rule
        {{project}}     project name
        {{user}}        user who caused the transition
    """
    return {
        "father": resource_link(str(event.resource_type), event.resource_id, event.project_id),
        "from_state": event.from_state or "",
        "to_state": event.to_state,
        "project": project_name,
        "user": user_name,
    }


def render_template(text: str, variables: dict[str, str]) -> str:
    """Replace ``{{name}}`` placeholders; unknown names are left as written."""
    if not text:
        return ""

    def _sub(match: re.Match[str]) -> str:
        key = match.group(1)
        return variables[key] if key in variables else match.group(0)

    return _PLACEHOLDER.sub(_sub, text)
