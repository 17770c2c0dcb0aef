"""
Bounded retry loop that turns raw provider text into a key -> string mapping.

Each attempt submits the current payload and tries to parse the reply. A reply
that is not a flat JSON object of strings is sent back to the provider wrapped
in a corrective prompt. A failed call, or a reply rejected by a content check,
resubmits the original payload instead since there is nothing to repair.
Retries are immediate; the provider's per-call timeout is the only time bound.
"""
import json
import re
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional

import jsonschema

from verilis.errors import (
    MalformedResponseError,
    ProviderError,
    RejectedResponseError,
    RepairExhaustedError
)
from verilis.logging_config import get_logger
from verilis.prompts import build_repair_prompt
from verilis.translation_validator import LOCALIZATION_SCHEMA

logger = get_logger("repair")

DEFAULT_MAX_ATTEMPTS = 3

CODE_FENCE_REGEX = re.compile(r'^```[\w-]*[ \t]*\n?(.*?)\n?```$', re.DOTALL)

ResponseCheck = Callable[[Dict[str, str]], None]


@dataclass(frozen=True)
class RepairState:
    """Immutable snapshot of the loop between two attempts."""
    payload: str
    attempt: int = 1
    last_raw: Optional[str] = None


@dataclass(frozen=True)
class RepairResult:
    translations: Dict[str, str]
    attempts: int


def strip_code_fence(raw: str) -> str:
    """Remove one Markdown code fence wrapping the whole response, if present."""
    text = raw.strip()
    match = CODE_FENCE_REGEX.match(text)
    if match:
        return match.group(1).strip()
    return text


def parse_translation_response(raw: str) -> Dict[str, str]:
    """
    Parse a provider reply as a flat key -> string mapping.

    Raises:
        MalformedResponseError: If the text is not JSON or not an object of strings.
    """
    text = strip_code_fence(raw)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as json_exc:
        raise MalformedResponseError(f"Response is not valid JSON: {json_exc}") from json_exc

    try:
        jsonschema.validate(instance=parsed, schema=LOCALIZATION_SCHEMA)
    except jsonschema.ValidationError as schema_exc:
        raise MalformedResponseError(
            f"Response does not match the expected key/value shape: {schema_exc.message}"
        ) from schema_exc
    return parsed


class ResponseRepairLoop:
    """
    Drive a provider until it yields a parsable mapping or attempts run out.

    Args:
        provider: Object with an async ``complete(prompt) -> str`` method.
        max_attempts: Total number of provider calls allowed.
    """

    def __init__(self, provider, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.provider = provider
        self.max_attempts = max_attempts

    async def run(self, payload: str, label: str = "",
                  response_check: Optional[ResponseCheck] = None) -> RepairResult:
        """
        Submit ``payload`` and repair the reply until it parses.

        Args:
            payload: The original translation prompt.
            label: Text identifying the job in log messages.
            response_check: Optional callable run on every parsed mapping; raising
                RejectedResponseError from it makes the attempt count as failed.

        Returns:
            The parsed mapping and the number of attempts used.

        Raises:
            RepairExhaustedError: When every attempt failed.
        """
        state = RepairState(payload=payload)

        while True:
            try:
                raw = await self.provider.complete(state.payload)
            except ProviderError as provider_exc:
                error: Exception = provider_exc
                next_state = replace(state, payload=payload, attempt=state.attempt + 1, last_raw=None)
            else:
                try:
                    translations = parse_translation_response(raw)
                    if response_check is not None:
                        response_check(translations)
                    if state.attempt > 1:
                        logger.info("%s: response accepted on attempt %d/%d", label, state.attempt,
                                    self.max_attempts)
                    return RepairResult(translations=translations, attempts=state.attempt)
                except RejectedResponseError as rejected_exc:
                    error = rejected_exc
                    next_state = replace(state, payload=payload, attempt=state.attempt + 1, last_raw=raw)
                except MalformedResponseError as malformed_exc:
                    error = malformed_exc
                    logger.debug("%s: invalid response:\n---\n%s\n---", label, raw)
                    next_state = RepairState(
                        payload=build_repair_prompt(raw), attempt=state.attempt + 1, last_raw=raw
                    )

            if state.attempt >= self.max_attempts:
                logger.error("%s: all %d attempts failed. Last error: %s", label, self.max_attempts, error)
                raise RepairExhaustedError(self.max_attempts, error) from error

            logger.warning("%s: attempt %d/%d failed: %s. Retrying...", label, state.attempt,
                           self.max_attempts, error)
            state = next_state
