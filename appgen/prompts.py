"""Jinja2 prompt templates.

Renders the classifier prompts sent to the model server and the annotated
edit prompt sent to the generation backend. Templates are inline strings
rendered through one shared ``Environment``.
"""

from __future__ import annotations

from typing import Any

from jinja2 import DictLoader, Environment, select_autoescape

_TEMPLATES: dict[str, str] = {
    "clarity_check.j2": """\
You are checking if a user edit request is clear enough to implement immediately.
Given the prompt, the clarifications so far and the project file list, return JSON only:
{
  "needsClarification": boolean,
  "question": string,
  "suggestion": string
}

Rules:
- needsClarification=true only when required details are missing or ambiguous enough to risk wrong edits.
- Ask only one concise question when clarification is needed.
- If the prompt is clear enough, set needsClarification=false and question="".
- Do not ask for unnecessary details.
- Do not repeat a question that was already answered.

Prompt: "{{ prompt | quote }}"
{% if exchanges %}
Clarifications so far:
{% for ex in exchanges %}
- Q: "{{ ex.question | quote }}" A: "{{ ex.answer | quote }}"
{% endfor %}
{% endif %}
Project files: "{{ file_paths | join(', ') }}"
""",
    "intent_check.j2": """\
Decide whether this app description asks for user authentication or a database.
Return JSON only:
{
  "hasAuthIntent": boolean,
  "hasDatabaseIntent": boolean
}

Description: "{{ prompt | quote }}"
""",
    "annotated_edit.j2": """\
{{ prompt }}
{% if exchanges %}

Clarifications provided by the user:
{% for ex in exchanges %}
Q{{ loop.index }}: {{ ex.question }}
A{{ loop.index }}: {{ ex.answer }}
{% endfor %}
{% endif %}
""",
}


def _quote_filter(value: str) -> str:
    """Escape double quotes so user text cannot close the prompt's string."""
    return str(value).replace('"', '\\"')


class PromptRenderer:
    """Renders the named prompt templates with a context dictionary."""

    def __init__(self) -> None:
        self.env = Environment(
            loader=DictLoader(_TEMPLATES),
            autoescape=select_autoescape([]),
            keep_trailing_newline=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["quote"] = _quote_filter

    def render(self, template_name: str, context: dict[str, Any]) -> str:
        template = self.env.get_template(template_name)
        return template.render(**context).strip()


_renderer = PromptRenderer()


def render_prompt(template_name: str, **context: Any) -> str:
    """Render a template from the shared renderer."""
    return _renderer.render(template_name, context)
