"""High-level operations built on the Retry Orchestrator.

An operation (extraction, solution, debugging) is a prompt template plus a
model choice. ProcessingService turns operation variables into an
Invocation, runs it through the orchestrator, and pulls structured data out
of the output with the Response Extractor, falling back to recovery.

Prompt text is deliberately minimal here; callers that need richer prompts
pass their own CommandTemplate.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from conduit.backends.base import ExecutionResult, Invocation
from conduit.backends.readiness import ReadinessSnapshot
from conduit.core.config import CliBackendConfig
from conduit.core.constants import PROMPT_MAX_CHARS, PROMPT_MIN_CHARS
from conduit.core.errors import ClassifiedError, ErrorCode
from conduit.core.logging import OperationContext, get_logger, with_context
from conduit.execution.cancellation import CancellationToken
from conduit.execution.circuit_breaker import BreakerDecision
from conduit.execution.extractor import ExtractionResult, ResponseExtractor
from conduit.execution.orchestrator import RetryOrchestrator

_logger = get_logger("operations")

NOT_PROVIDED = "Not provided"

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_PLACEHOLDER_RE = re.compile(r"\{([a-zA-Z_][a-zA-Z0-9_]*)\}")


class OperationType(str, Enum):
    """Kinds of work the CLI is asked to do."""

    EXTRACTION = "extraction"
    SOLUTION = "solution"
    DEBUGGING = "debugging"


# =============================================================================
# Command templates
# =============================================================================


@dataclass(frozen=True)
class CommandTemplate:
    """How to invoke the CLI for one operation.

    ``args`` may contain ``{model}`` and ``{temperature}`` placeholders.
    ``prompt_template`` may contain ``{name}`` placeholders filled from the
    operation variables. The rendered prompt is sent over stdin.
    """

    instructions: str
    prompt_template: str
    args: tuple[str, ...] = ("generate", "--model", "{model}", "--temperature", "{temperature}")

    def render_args(self, model: str, temperature: float) -> tuple[str, ...]:
        return tuple(
            arg.replace("{model}", model).replace("{temperature}", f"{temperature:g}")
            for arg in self.args
        )

    def placeholders(self) -> list[str]:
        """Variable names referenced by the prompt template, in order."""
        return list(dict.fromkeys(_PLACEHOLDER_RE.findall(self.prompt_template)))


DEFAULT_TEMPLATES: dict[OperationType, CommandTemplate] = {
    OperationType.EXTRACTION: CommandTemplate(
        instructions=(
            "Extract the problem details from the provided material. Respond with JSON "
            "containing problem_statement, constraints, example_input and example_output."
        ),
        prompt_template="Preferred language: {language}",
    ),
    OperationType.SOLUTION: CommandTemplate(
        instructions=(
            "Solve the problem below. Respond with JSON containing code and thoughts."
        ),
        prompt_template=(
            "PROBLEM STATEMENT:\n{problem_statement}\n\n"
            "CONSTRAINTS:\n{constraints}\n\n"
            "EXAMPLE INPUT:\n{example_input}\n\n"
            "EXAMPLE OUTPUT:\n{example_output}\n\n"
            "LANGUAGE: {language}"
        ),
    ),
    OperationType.DEBUGGING: CommandTemplate(
        instructions="Review the provided code and errors and explain the fixes needed.",
        prompt_template="Problem: {problem_statement}\nLanguage: {language}",
    ),
}


def build_prompt(
    template: CommandTemplate,
    variables: Mapping[str, Any],
    image_count: int = 0,
) -> str:
    """Render the prompt text for ``template``.

    Placeholders with a missing or empty value become "Not provided".
    Placeholders without a matching variable are also filled.
    """

    def _fill(match: re.Match[str]) -> str:
        value = variables.get(match.group(1))
        if value is None or (isinstance(value, str) and not value.strip()):
            return NOT_PROVIDED
        return str(value)

    prompt = f"{template.instructions}\n\n{_PLACEHOLDER_RE.sub(_fill, template.prompt_template)}"

    if image_count > 0:
        prompt += "\n\n[IMAGE DATA]"
        prompt += f"\nNumber of images: {image_count}"
        prompt += "\n[END IMAGE DATA]"
    return prompt


def validate_prompt(prompt: str) -> ClassifiedError | None:
    """Check a prompt before sending it to the CLI.

    Returns:
        None if the prompt is acceptable, else an EXEC_INVALID_ARGUMENTS error.
    """
    if not prompt or not prompt.strip():
        reason = "Prompt cannot be empty"
    elif len(prompt) < PROMPT_MIN_CHARS:
        reason = f"Prompt too short - must be at least {PROMPT_MIN_CHARS} characters"
    elif len(prompt) > PROMPT_MAX_CHARS:
        reason = f"Prompt too long - maximum {PROMPT_MAX_CHARS} characters allowed"
    elif _CONTROL_CHARS_RE.search(prompt):
        reason = "Prompt contains invalid control characters"
    else:
        return None
    return ClassifiedError.from_code(ErrorCode.EXEC_INVALID_ARGUMENTS, message=reason)


def build_invocation(
    operation: OperationType,
    variables: Mapping[str, Any],
    backend: CliBackendConfig,
    image_count: int = 0,
    template: CommandTemplate | None = None,
) -> Invocation:
    """Build the Invocation for ``operation`` using backend settings."""
    template = template or DEFAULT_TEMPLATES[operation]
    model = getattr(backend.models, operation.value)
    return Invocation(
        program=backend.command,
        args=template.render_args(model, backend.temperature),
        stdin=build_prompt(template, variables, image_count),
        timeout_seconds=backend.timeout_seconds,
    )


def degradation_message(
    operation: OperationType,
    snapshot: ReadinessSnapshot | None = None,
    breaker_decision: BreakerDecision | None = None,
) -> str:
    """Guidance shown when an operation could not be completed by the CLI."""
    base = f"Failed to process {operation.value} with Gemini CLI."

    if snapshot is not None and not snapshot.installed:
        return (
            f"{base} The Gemini CLI is not installed. Install it, then try again. "
            "You can also switch to a different API provider."
        )
    if snapshot is not None and not snapshot.authenticated:
        return (
            f"{base} The Gemini CLI is not authenticated. Run 'gemini auth login' in your "
            "terminal, then try again. Alternatively, switch to a different API provider."
        )
    if snapshot is not None and snapshot.error is not None:
        return (
            f"{base} CLI Error: {snapshot.error.message}. Please check your CLI installation "
            "and authentication, or switch to a different API provider."
        )
    if breaker_decision is not None and not breaker_decision.allowed:
        return (
            f"{base} {breaker_decision.reason} You can wait for the CLI to become available "
            "again, or switch to a different API provider for immediate processing."
        )
    return (
        f"{base} Please check your CLI installation and authentication, "
        "or switch to a different API provider."
    )


# =============================================================================
# Service
# =============================================================================


@dataclass
class OperationResult:
    """Outcome of ProcessingService.run_operation()."""

    operation: OperationType
    success: bool
    data: Any = None
    error: ClassifiedError | None = None
    execution: ExecutionResult | None = None
    extraction: ExtractionResult | None = None
    recovered: bool = False
    degradation: str | None = None
    operation_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def attempts(self) -> int:
        return self.execution.attempts if self.execution else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation.value,
            "operation_id": self.operation_id,
            "success": self.success,
            "data": self.data,
            "error": self.error.to_dict() if self.error else None,
            "recovered": self.recovered,
            "attempts": self.attempts,
            "degradation": self.degradation,
        }


class ProcessingService:
    """Runs operations end to end: prompt, execution, extraction."""

    def __init__(
        self,
        orchestrator: RetryOrchestrator,
        backend: CliBackendConfig | None = None,
        extractor: ResponseExtractor | None = None,
        templates: Mapping[OperationType, CommandTemplate] | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.backend = backend or CliBackendConfig()
        self.extractor = extractor or ResponseExtractor()
        self.templates = {**DEFAULT_TEMPLATES, **(templates or {})}

    async def run_operation(
        self,
        operation: OperationType | str,
        prompt_variables: Mapping[str, Any] | None = None,
        images: int = 0,
        cancel_token: CancellationToken | None = None,
    ) -> OperationResult:
        """Run one operation and return its structured result.

        Args:
            operation: Operation type or its string value.
            prompt_variables: Values for the template placeholders.
            images: Number of images accompanying the request.
            cancel_token: Cancels the whole operation.
        """
        operation = OperationType(operation)
        ctx = OperationContext(operation_type=operation.value, component="operations")

        with with_context(ctx):
            invocation = build_invocation(
                operation,
                prompt_variables or {},
                self.backend,
                image_count=images,
                template=self.templates[operation],
            )
            prompt_error = validate_prompt(invocation.stdin or "")
            if prompt_error is not None:
                _logger.warning("operation.invalid_prompt", reason=prompt_error.message)
                return OperationResult(
                    operation=operation,
                    success=False,
                    error=prompt_error,
                    operation_id=ctx.operation_id,
                )

            _logger.info("operation.starting", operation=operation.value)
            execution = await self.orchestrator.execute_with_retry(
                invocation, cancel_token=cancel_token
            )

            if not execution.success:
                error = execution.error or ClassifiedError.from_code(ErrorCode.UNKNOWN_ERROR)
                _logger.warning(
                    "operation.failed",
                    operation=operation.value,
                    code=error.code.value,
                    attempts=execution.attempts,
                )
                return OperationResult(
                    operation=operation,
                    success=False,
                    error=error,
                    execution=execution,
                    degradation=self._degradation(operation, error),
                    operation_id=ctx.operation_id,
                )

            extraction = self.extractor.extract(execution.stdout)
            recovered = False
            if not extraction.success:
                original = extraction.error.message if extraction.error else None
                extraction = self.extractor.recover(execution.stdout, original)
                recovered = extraction.success

            _logger.info(
                "operation.completed",
                operation=operation.value,
                success=extraction.success,
                strategy=extraction.strategy,
                attempts=execution.attempts,
            )
            return OperationResult(
                operation=operation,
                success=extraction.success,
                data=extraction.data,
                error=extraction.error,
                execution=execution,
                extraction=extraction,
                recovered=recovered,
                operation_id=ctx.operation_id,
            )

    def _degradation(self, operation: OperationType, error: ClassifiedError) -> str:
        readiness = self.orchestrator.readiness
        snapshot = readiness.snapshot if readiness is not None else None
        decision = None
        if error.code == ErrorCode.EXEC_UNAVAILABLE:
            decision = BreakerDecision(
                allowed=False,
                retry_after_seconds=error.retry_after_seconds,
                reason=error.message,
            )
        return degradation_message(operation, snapshot, decision)


__all__ = [
    "DEFAULT_TEMPLATES",
    "NOT_PROVIDED",
    "CommandTemplate",
    "OperationResult",
    "OperationType",
    "ProcessingService",
    "build_invocation",
    "build_prompt",
    "validate_prompt",
    "degradation_message",
]
