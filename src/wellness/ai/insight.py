"""
InsightOrchestrator — drives the text model until its answer meets the contract.

Flow for one analysis (at most three calls, strictly sequential):
  1. First call with the rendered InsightPrompt → normalize → sanitize
  2. If the answer was cut off (length limit, or ends on ':' / dash):
     continuation call, merged onto the draft with a newline, re-cleaned
  3. If the draft still fails validation: repair call embedding the
     aggregates and the draft; its output is used only if it validates
  4. Otherwise the draft is returned as best-effort text

Format failures never raise. Transport failures raise immediately as
InsightTransportError carrying the best text obtained so far, so the caller
can still salvage it. No state is kept between generate() calls.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from wellness.ai.contract import DEFAULT_CONTRACT, InsightContract
from wellness.ai.generation import TextGenerator
from wellness.ai.postprocess import (
    is_truncated,
    normalize_text,
    sanitize_text,
    validate_insight,
)
from wellness.prompts.insight import (
    InsightPrompt,
    build_continuation_prompt,
    build_insight_system_prompt,
    build_repair_prompt,
    render_insight_prompt,
)

logger = logging.getLogger(__name__)

STAGE_FIRST = "first"
STAGE_CONTINUATION = "continuation"
STAGE_REPAIR = "repair"


class InsightGenerationError(RuntimeError):
    """No usable text was obtained from the model."""


class InsightTransportError(RuntimeError):
    """A model call failed. partial_text holds the best text obtained before it."""

    def __init__(self, stage: str, cause: BaseException, partial_text: str = ""):
        super().__init__(f"{stage} call failed: {cause}")
        self.stage = stage
        self.cause = cause
        self.partial_text = partial_text


@dataclass(frozen=True)
class TokenBudgets:
    first: int = 1200
    continuation: int = 900
    repair: int = 1200


@dataclass
class GeneratedInsight:
    text: str
    validated: bool
    calls: int = 0
    stages: List[str] = field(default_factory=list)

    @property
    def best_effort(self) -> bool:
        return not self.validated


class InsightOrchestrator:
    """Bounded call/validate/repair loop against one TextGenerator."""

    def __init__(
        self,
        client: TextGenerator,
        contract: InsightContract = DEFAULT_CONTRACT,
        budgets: Optional[TokenBudgets] = None,
        fast: bool = False,
    ):
        """
        Args:
            client: Anything with async generate(system, user, max_tokens).
            contract: Headers, disclaimer and banned terms to enforce.
            budgets: max_tokens per call stage.
            fast: Single call only; skip continuation and repair.
        """
        self.client = client
        self.contract = contract
        self.budgets = budgets or TokenBudgets()
        self.fast = fast

    async def generate(self, prompt: InsightPrompt) -> GeneratedInsight:
        """
        Produce narrative text for one analysis.

        Raises:
            InsightTransportError: a model call failed.
            InsightGenerationError: every call came back empty after cleaning.
        """
        system = build_insight_system_prompt(self.contract, prompt.period)
        stages: List[str] = []

        # ── First call ────────────────────────────────────────────────────────
        raw, finish = await self._call(
            STAGE_FIRST, system, render_insight_prompt(prompt), self.budgets.first, "", stages
        )
        draft = self._clean(raw, prompt)

        if self.fast:
            if not draft:
                raise InsightGenerationError("model returned empty content after cleaning")
            valid = not validate_insight(draft, prompt, self.contract)
            return GeneratedInsight(text=draft, validated=valid, calls=len(stages), stages=stages)

        # ── Continuation ──────────────────────────────────────────────────────
        if is_truncated(finish, draft):
            logger.info("Insight truncated (finish=%s); requesting continuation", finish)
            more, _ = await self._call(
                STAGE_CONTINUATION,
                system,
                build_continuation_prompt(self.contract, draft),
                self.budgets.continuation,
                draft,
                stages,
            )
            more = self._clean(more, prompt)
            merged = self._clean(f"{draft}\n{more}", prompt)
            if merged:
                draft = merged

        violations = validate_insight(draft, prompt, self.contract)
        if not violations:
            return GeneratedInsight(text=draft, validated=True, calls=len(stages), stages=stages)

        # ── Repair ────────────────────────────────────────────────────────────
        logger.warning("Insight failed validation (%s); requesting repair", "; ".join(violations))
        fixed, _ = await self._call(
            STAGE_REPAIR,
            system,
            build_repair_prompt(self.contract, prompt, draft),
            self.budgets.repair,
            draft,
            stages,
        )
        fixed = self._clean(fixed, prompt)
        repair_violations = validate_insight(fixed, prompt, self.contract)
        if not repair_violations:
            return GeneratedInsight(text=fixed, validated=True, calls=len(stages), stages=stages)

        logger.warning(
            "Repaired insight still invalid (%s); returning best effort",
            "; ".join(repair_violations),
        )
        best = draft or fixed
        if not best:
            raise InsightGenerationError("model returned empty content after cleaning")
        return GeneratedInsight(text=best, validated=False, calls=len(stages), stages=stages)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _clean(self, text: str, prompt: InsightPrompt) -> str:
        return sanitize_text(normalize_text(text, self.contract), prompt, self.contract)

    async def _call(
        self,
        stage: str,
        system: str,
        user: str,
        max_tokens: int,
        partial_text: str,
        stages: List[str],
    ):
        stages.append(stage)
        try:
            result = await self.client.generate(system, user, max_tokens)
        except Exception as exc:
            logger.error("Insight %s call failed: %s", stage, exc)
            raise InsightTransportError(stage, exc, partial_text=partial_text) from exc
        return result.text or "", result.finish_reason
