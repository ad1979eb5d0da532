"""Integration intent classifier.

Detects whether a free-text app description asks for authentication or a
database. Such prompts must not reach the generation backend as-is: the user
is sent to pick the integration options explicitly, because those options are
what gets priced.

The keyword check always runs. When an ``LLMClient`` is configured its JSON
verdict is OR-ed with the keyword result; a model failure falls back to the
keywords alone.
"""

from __future__ import annotations

import re

from appgen.llm import LLMClient
from appgen.models import IntentResult
from appgen.prompts import render_prompt
from appgen.utils import truncate

_AUTH_PATTERNS = [
    re.compile(p)
    for p in (
        r"\bauth\b",
        r"\bauthn\b",
        r"\bauthentication\b",
        r"\bauthori[sz]ation\b",
        r"\blog[\s-]?in\b",
        r"\blog[\s-]?out\b",
        r"\bsign[\s-]?in\b",
        r"\bsign[\s-]?up\b",
        r"\bregister\b",
        r"\bregistration\b",
        r"\bpassword\b",
        r"\boauth\b",
        r"\bsso\b",
        r"\bsocial login\b",
        r"\bgoogle login\b",
        r"\buser accounts?\b",
        r"\bprotected (?:route|page)\b",
        r"\bsession\b",
        r"\bjwt\b",
        r"\btoken auth\b",
    )
]

_DATABASE_PATTERNS = [
    re.compile(p)
    for p in (
        r"\bdatabase\b",
        r"\bdb\b",
        r"\bsql\b",
        r"\bnosql\b",
        r"\bpostgres(?:ql)?\b",
        r"\bmysql\b",
        r"\bmongodb\b",
        r"\bredis\b",
        r"\bsupabase\b",
        r"\bneon\b",
        r"\bprisma\b",
        r"\bschema\b",
        r"\btables?\b",
        r"\bcollections?\b",
        r"\bquer(?:y|ies)\b",
        r"\bcrud\b",
        r"\bpersist(?:ence)?\b",
        r"\bstorage layer\b",
        r"\bdata model\b",
        r"\borm\b",
    )
]


def keyword_intent_check(prompt: str) -> IntentResult:
    """Match *prompt* against the auth and database vocabularies."""
    text = prompt.lower()
    return IntentResult(
        has_auth_intent=any(p.search(text) for p in _AUTH_PATTERNS),
        has_database_intent=any(p.search(text) for p in _DATABASE_PATTERNS),
    )


class IntegrationIntentClassifier:
    """Classifies integration intents in free-text prompts."""

    def __init__(self, llm: LLMClient | None = None) -> None:
        self.llm = llm

    async def classify(self, text: str) -> IntentResult:
        result = keyword_intent_check(text)
        if self.llm is None or (result.has_auth_intent and result.has_database_intent):
            return result

        response = await self.llm.generate(
            render_prompt("intent_check.j2", prompt=truncate(text, 2000)),
            json_mode=True,
        )
        data = response.json_data()
        if data is None:
            return result

        return IntentResult(
            has_auth_intent=result.has_auth_intent or data.get("hasAuthIntent") is True,
            has_database_intent=result.has_database_intent or data.get("hasDatabaseIntent") is True,
        )
