"""Clarification Negotiator.

Before a free-text edit starts, ``evaluate`` decides whether the request says
enough about *what* to change. While it does not, the caller asks the user
the returned question, appends the answer to the exchange history and
evaluates again. The final exchanges are folded verbatim into the prompt sent
to the generation backend.

Negotiation stops after ``ClarificationConfig.max_rounds`` questions: the
edit then proceeds with what the user has said so far.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from typing import Awaitable, Callable, Sequence

from appgen.config import ClarificationConfig
from appgen.errors import ClarificationDeadlock
from appgen.llm import LLMClient
from appgen.models import ClarificationExchange, ClarityResult
from appgen.prompts import render_prompt
from appgen.utils import print_warning, truncate

DEFAULT_QUESTION = "Which section?"

AnswerProvider = Callable[[ClarityResult], Awaitable[str | None]]

# Words that name a concrete part of a generated site.
_TARGET_TERMS = frozenset(
    """
    hero header navbar nav navigation menu footer pricing about contact gallery
    testimonials testimonial faq team features feature blog newsletter cta banner
    logo button buttons image images photo photos picture background color colors
    colour colours font fonts typography title headline heading subtitle text copy
    section page form card cards sidebar link links price prices stats product
    products map video icon icons layout grid theme
    """.split()
)

# Words that carry no information about what to change.
_VAGUE_TERMS = frozenset(
    """
    a an the it its this that these those me my our your please just some something
    stuff thing things make makes made do does more less bit little much very really
    better nicer good great improve improved fix fixed cool modern prettier nice pop
    update change changes redo tweak look looks feel overall whole all everything
    and or to of for with in on up
    """.split()
)

_WORD_RE = re.compile(r"[a-z0-9]+")


def _file_terms(file_paths: Sequence[str]) -> set[str]:
    """Lowercased file stems, e.g. ``src/components/Hero.tsx`` -> ``hero``."""
    return {PurePosixPath(p).stem.lower() for p in file_paths if PurePosixPath(p).stem}


def annotate_prompt(prompt: str, exchanges: Sequence[ClarificationExchange]) -> str:
    """Append the exchanges to *prompt* as literal question/answer context."""
    return render_prompt("annotated_edit.j2", prompt=prompt, exchanges=list(exchanges))


# ---------------------------------------------------------------------------
# Checkers
# ---------------------------------------------------------------------------


class ClarityChecker(ABC):
    """Decides whether an edit request is specific enough."""

    @abstractmethod
    async def check(
        self,
        prompt: str,
        file_paths: Sequence[str],
        exchanges: Sequence[ClarificationExchange],
    ) -> ClarityResult:
        """Return whether the request still needs a clarifying question."""


class HeuristicClarityChecker(ClarityChecker):
    """Flags requests made only of vague words that name no part of the site."""

    async def check(
        self,
        prompt: str,
        file_paths: Sequence[str],
        exchanges: Sequence[ClarificationExchange],
    ) -> ClarityResult:
        combined = " ".join([prompt, *(ex.answer for ex in exchanges)]).lower()
        words = _WORD_RE.findall(combined)
        targets = _TARGET_TERMS | _file_terms(file_paths)

        if any(w in targets for w in words):
            return ClarityResult()
        if any(w not in _VAGUE_TERMS for w in words):
            return ClarityResult()

        return ClarityResult(
            needs_clarification=True,
            question=DEFAULT_QUESTION,
            suggestion=self._suggest(file_paths),
        )

    @staticmethod
    def _suggest(file_paths: Sequence[str]) -> str:
        stems = sorted(
            t for t in _file_terms(file_paths) if t in _TARGET_TERMS
        ) or ["hero", "navbar", "footer"]
        return f"Name the part to change, for example: {', '.join(stems[:3])}."


class LLMClarityChecker(ClarityChecker):
    """Asks the model server; any failure counts as "clear enough"."""

    def __init__(self, llm: LLMClient) -> None:
        self.llm = llm

    async def check(
        self,
        prompt: str,
        file_paths: Sequence[str],
        exchanges: Sequence[ClarificationExchange],
    ) -> ClarityResult:
        response = await self.llm.generate(
            render_prompt(
                "clarity_check.j2",
                prompt=truncate(prompt, 2000),
                file_paths=list(file_paths)[:120],
                exchanges=list(exchanges),
            ),
            json_mode=True,
        )
        data = response.json_data()
        if data is None:
            return ClarityResult()

        needs = data.get("needsClarification") is True
        question = data.get("question") if isinstance(data.get("question"), str) else ""
        suggestion = data.get("suggestion") if isinstance(data.get("suggestion"), str) else ""
        if needs and not question.strip():
            question = DEFAULT_QUESTION
        return ClarityResult(
            needs_clarification=needs,
            question=truncate(question, 300) if needs else "",
            suggestion=truncate(suggestion, 300) if needs else "",
        )


# ---------------------------------------------------------------------------
# ClarificationNegotiator
# ---------------------------------------------------------------------------


class ClarificationNegotiator:
    """Runs the question/answer loop for one pending edit."""

    def __init__(self, config: ClarificationConfig, checker: ClarityChecker | None = None) -> None:
        self.config = config
        self.checker = checker or HeuristicClarityChecker()

    async def evaluate(
        self,
        prompt_text: str,
        target_file_paths: Sequence[str],
        prior_exchanges: Sequence[ClarificationExchange],
    ) -> ClarityResult:
        if not self.config.enabled:
            return ClarityResult()
        if len(prior_exchanges) >= self.config.max_rounds:
            print_warning(
                f"Clarification stopped after {len(prior_exchanges)} round(s); "
                f"proceeding with the answers given."
            )
            return ClarityResult(round_cap_reached=True)
        return await self.checker.check(prompt_text, target_file_paths, prior_exchanges)

    async def negotiate(
        self,
        prompt_text: str,
        target_file_paths: Sequence[str],
        ask: AnswerProvider,
    ) -> tuple[str, list[ClarificationExchange]]:
        """Loop until the request is clear and return the annotated prompt.

        Raises:
            ClarificationDeadlock: If *ask* returns no answer (the user
                abandoned the edit).
        """
        exchanges: list[ClarificationExchange] = []
        while True:
            result = await self.evaluate(prompt_text, target_file_paths, exchanges)
            if not result.needs_clarification:
                return annotate_prompt(prompt_text, exchanges), exchanges

            answer = await ask(result)
            if answer is None or not answer.strip():
                raise ClarificationDeadlock(
                    f"Edit abandoned while waiting for an answer to: {result.question}"
                )
            exchanges.append(ClarificationExchange(question=result.question, answer=answer.strip()))
