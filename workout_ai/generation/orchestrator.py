"""Generation orchestrator: one vendor conversation per plan request.

State machine:

    BUILDING -> CALLING -> VALIDATING -> SUCCEEDED
                   ^            |
                   |            v
                   +------ RETRYING          (schema failure, retries left)
                                |
                                v
                              FAILED         (retries exhausted or any error)

    any non-terminal state -> CANCELLED      (task cancelled)

Before each vendor call the prompt is estimated against the optional
TokenBudget; a call over budget is never sent. Each vendor call runs under
asyncio.timeout. Schema failures are retried with a retry prompt listing the
issues; vendor errors (auth, rate limit, invalid request) are never looped on.
Any other exception still ends in FAILED. SUCCEEDED, FAILED and CANCELLED are
terminal: an orchestrator instance runs exactly once.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum

from loguru import logger

from workout_ai.core.errors import WorkoutAIError
from workout_ai.core.token_counting import TokenBudget, TokenEstimate, check_budget, estimate_request
from workout_ai.generation.errors import (
    GenerationCancelledError,
    GenerationTimeoutError,
    SchemaValidationError,
    TokenBudgetExceededError,
    UnexpectedGenerationError,
)
from workout_ai.generation.prompts import build_retry_messages, build_workout_messages
from workout_ai.generation.schemas import GenerationRequest, WorkoutPlanDocument, plan_json_schema
from workout_ai.generation.validator import (
    PlanConstraints,
    ValidationIssue,
    create_validation_error_prompt,
    validate_plan_response,
)
from workout_ai.llm.errors import LLMError
from workout_ai.llm.logging_helpers import log_llm_raw_response, log_llm_request, log_llm_usage
from workout_ai.llm.providers.base import DEFAULT_MAX_TOKENS, BaseLLMProvider
from workout_ai.llm.types import ChatMessage, CompletionOptions, LLMResponse, UsageRecord

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 2
LOG_CONTEXT = "Workout Plan Generation"


class GenerationState(StrEnum):
    BUILDING = "building"
    CALLING = "calling"
    VALIDATING = "validating"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({GenerationState.SUCCEEDED, GenerationState.FAILED, GenerationState.CANCELLED})

_ALLOWED_TRANSITIONS: dict[GenerationState, frozenset[GenerationState]] = {
    GenerationState.BUILDING: frozenset({GenerationState.CALLING, GenerationState.FAILED}),
    GenerationState.CALLING: frozenset({GenerationState.VALIDATING, GenerationState.FAILED}),
    GenerationState.VALIDATING: frozenset({
        GenerationState.SUCCEEDED,
        GenerationState.RETRYING,
        GenerationState.FAILED,
    }),
    GenerationState.RETRYING: frozenset({GenerationState.CALLING, GenerationState.FAILED}),
}


@dataclass
class GenerationResult:
    """Outcome of one orchestrator run.

    Exactly one of plan / error is set once the run reaches a terminal state.
    """

    state: GenerationState
    plan: WorkoutPlanDocument | None = None
    error: WorkoutAIError | None = None
    attempts: int = 0
    usage: list[UsageRecord] = field(default_factory=list)
    retry_prompts: list[str] = field(default_factory=list)
    transitions: list[tuple[GenerationState, GenerationState]] = field(default_factory=list)
    provider: str | None = None
    model: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == GenerationState.SUCCEEDED

    @property
    def total_tokens(self) -> int:
        return sum(u.total_tokens for u in self.usage)

    @property
    def total_cost_usd(self) -> float:
        return sum(u.estimated_cost_usd for u in self.usage)


class GenerationOrchestrator:
    def __init__(
        self,
        provider: BaseLLMProvider,
        request: GenerationRequest,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_output_tokens: int | None = None,
        token_budget: TokenBudget | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.provider = provider
        self.request = request
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.max_output_tokens = max_output_tokens
        self.token_budget = token_budget
        self._started = False
        self._result = GenerationResult(
            state=GenerationState.BUILDING,
            provider=str(provider.provider_name),
            model=provider.default_model,
        )

    @property
    def state(self) -> GenerationState:
        return self._result.state

    @property
    def result(self) -> GenerationResult:
        return self._result

    def _transition(self, new_state: GenerationState) -> None:
        current = self._result.state
        if current in TERMINAL_STATES:
            raise RuntimeError(f"Cannot leave terminal state {current}")
        if new_state != GenerationState.CANCELLED and new_state not in _ALLOWED_TRANSITIONS[current]:
            raise RuntimeError(f"Illegal generation transition {current} -> {new_state}")
        self._result.transitions.append((current, new_state))
        self._result.state = new_state
        logger.debug(f"Generation state {current} -> {new_state}", attempt=self._result.attempts)

    def _fail(self, error: WorkoutAIError) -> GenerationResult:
        self._result.error = error
        self._transition(GenerationState.FAILED)
        context = {"provider": self._result.provider, "attempts": self._result.attempts, **error.details()}
        logger.warning(f"Workout plan generation failed: {error.code}: {error.message}", **context)
        return self._result

    def _estimate(self, messages: list[ChatMessage]) -> TokenEstimate | None:
        """Pre-flight token estimate, or None when the tokenizer is unavailable."""
        try:
            estimate = estimate_request(
                messages,
                model=self.provider.default_model,
                price_table=self.provider.price_table,
                max_output_tokens=self.max_output_tokens or self.provider.config.max_tokens or DEFAULT_MAX_TOKENS,
            )
        except Exception as e:
            logger.warning(
                f"Token estimate unavailable, continuing without it: {type(e).__name__}: {e}",
                attempt=self._result.attempts,
            )
            return None
        logger.debug(
            "Pre-flight token estimate",
            input_tokens=estimate.input_tokens,
            total_tokens=estimate.total_tokens,
            estimated_cost_usd=round(estimate.estimated_cost_usd, 6),
            attempt=self._result.attempts,
        )
        return estimate

    def _budget_error(self, estimate: TokenEstimate | None) -> TokenBudgetExceededError | None:
        if self.token_budget is None:
            return None
        if estimate is None:
            logger.warning("Token budget not enforced for this call because no estimate is available")
            return None
        reasons = check_budget(estimate, self.token_budget)
        if not reasons:
            return None
        return TokenBudgetExceededError(f"Token budget exceeded: {'; '.join(reasons)}", reasons)

    async def _call_vendor(self, messages: list[ChatMessage]) -> LLMResponse[str]:
        attempt = self._result.attempts
        log_llm_request(LOG_CONTEXT, str(self.provider.provider_name), self.provider.default_model, messages, attempt)

        async with asyncio.timeout(self.timeout_seconds):
            response = await self.provider.generate_structured_text(
                messages,
                plan_json_schema(),
                CompletionOptions(max_tokens=self.max_output_tokens),
            )

        log_llm_raw_response(LOG_CONTEXT, response, attempt)
        log_llm_usage(response)
        return response

    async def run(self) -> GenerationResult:
        """Drive the request to a terminal state.

        Returns:
            GenerationResult carrying the plan or the terminal error
            (unexpected exceptions are wrapped in UnexpectedGenerationError)

        Raises:
            RuntimeError: If called more than once
            asyncio.CancelledError: Re-raised after moving to CANCELLED
        """
        if self._started:
            raise RuntimeError("GenerationOrchestrator.run() can only be called once")
        self._started = True

        try:
            return await self._run()
        except asyncio.CancelledError:
            if self._result.state not in TERMINAL_STATES:
                self._result.error = GenerationCancelledError("Workout plan generation was cancelled")
                self._transition(GenerationState.CANCELLED)
            logger.info("Workout plan generation cancelled", attempts=self._result.attempts)
            raise
        except Exception as e:
            if self._result.state in TERMINAL_STATES:
                raise
            logger.exception(f"Unexpected error during workout plan generation: {type(e).__name__}")
            return self._fail(
                UnexpectedGenerationError(
                    f"Workout plan generation failed unexpectedly: {type(e).__name__}: {e}",
                    type(e).__name__,
                )
            )

    async def _run(self) -> GenerationResult:
        try:
            built = build_workout_messages(self.request)
        except WorkoutAIError as e:
            return self._fail(e)

        constraints = PlanConstraints(
            allowed_equipment=built.allowed_equipment,
            sessions_per_week=self.request.schedule.sessions_per_week,
            required_fields=built.required_fields,
        )
        messages = built.messages
        last_errors: list[ValidationIssue] = []

        for attempt in range(self.max_retries + 1):
            budget_error = self._budget_error(self._estimate(messages))
            if budget_error is not None:
                return self._fail(budget_error)

            self._transition(GenerationState.CALLING)
            self._result.attempts = attempt + 1
            try:
                response = await self._call_vendor(messages)
            except TimeoutError:
                return self._fail(
                    GenerationTimeoutError(
                        f"AI generation timed out after {self.timeout_seconds:g} seconds. Please try again.",
                        self.timeout_seconds,
                    )
                )
            except LLMError as e:
                return self._fail(e)

            self._result.usage.append(response.usage)
            self._transition(GenerationState.VALIDATING)

            validation = validate_plan_response(response.content, constraints)
            if validation.success and validation.data is not None:
                self._result.plan = validation.data
                self._transition(GenerationState.SUCCEEDED)
                logger.info(
                    "Workout plan generated",
                    provider=self._result.provider,
                    attempts=self._result.attempts,
                    total_tokens=self._result.total_tokens,
                )
                return self._result

            last_errors = validation.errors
            logger.warning(
                f"Plan validation failed with {len(last_errors)} issue(s)",
                attempt=attempt + 1,
                issues=[f"{i.path}: {i.code}" for i in last_errors[:10]],
            )
            if attempt >= self.max_retries:
                break

            self._transition(GenerationState.RETRYING)
            retry_prompt = create_validation_error_prompt(last_errors)
            self._result.retry_prompts.append(retry_prompt)
            messages = build_retry_messages(built.messages, response.content, retry_prompt)

        return self._fail(
            SchemaValidationError(
                f"AI response failed validation after {self._result.attempts} attempt(s)",
                last_errors,
            )
        )
