"""Structured generation with a single validate-and-repair attempt."""

from typing import Callable, TypeVar

from pydantic import BaseModel
from pydantic_ai import Agent

from deep_research.exceptions import CollaboratorTimeoutError, GenerationError
from deep_research.logging import get_logger
from deep_research.search import with_timeout
from deep_research.validation import OutputContractError

log = get_logger("deep_research.generation")

OutputT = TypeVar("OutputT")

MAX_REPAIR_ATTEMPTS = 1


class _RejectedOutput(Exception):
    def __init__(self, reason: str, candidate: object | None = None) -> None:
        self.reason = reason
        self.candidate = candidate
        super().__init__(reason)


def repair_prompt(prompt: str, reason: str, candidate: object | None) -> str:
    """Prompt for the repair attempt.

    Without a candidate (the call itself failed) the original prompt is sent
    again unchanged.
    """
    if candidate is None:
        return prompt
    rendered = candidate.model_dump_json() if isinstance(candidate, BaseModel) else repr(candidate)
    return (
        f"{prompt}\n\n"
        f"Your previous answer was rejected: {reason}\n"
        f"Previous answer: {rendered}\n"
        "Return a corrected answer that respects the schema and its numeric ranges exactly."
    )


async def _attempt(
    agent: Agent[None, OutputT],
    prompt: str,
    check: Callable[[OutputT], OutputT] | None,
    timeout: float | None,
) -> OutputT:
    try:
        run = await with_timeout(agent.run(prompt), timeout, operation=f"{agent.name or 'agent'} generation")
    except CollaboratorTimeoutError:
        raise
    except Exception as e:
        raise _RejectedOutput(f"{type(e).__name__}: {e}") from e

    output = run.output
    if check is None:
        return output
    try:
        return check(output)
    except OutputContractError as e:
        raise _RejectedOutput(str(e), candidate=output) from e


async def generate_structured(
    agent: Agent[None, OutputT],
    prompt: str,
    *,
    check: Callable[[OutputT], OutputT] | None = None,
    timeout: float | None = None,
) -> OutputT:
    """Run ``agent`` on ``prompt`` and validate the output with ``check``.

    A failed call or rejected output gets exactly one repair attempt. Timeouts
    are not retried.

    Raises:
        GenerationError: When the repair attempt fails too.
        CollaboratorTimeoutError: When a call exceeds ``timeout``.
    """
    name = agent.name or "agent"
    try:
        return await _attempt(agent, prompt, check, timeout)
    except _RejectedOutput as first:
        log.warning("generation.rejected", agent=name, reason=first.reason, repair_attempts=MAX_REPAIR_ATTEMPTS)
        try:
            output = await _attempt(agent, repair_prompt(prompt, first.reason, first.candidate), check, timeout)
        except _RejectedOutput as second:
            log.error("generation.repair_failed", agent=name, reason=second.reason)
            raise GenerationError(agent_name=name, reason=second.reason) from second
        log.info("generation.repaired", agent=name)
        return output
