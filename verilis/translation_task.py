"""Translate the missing keys of one target language."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

import tiktoken

from verilis.errors import RejectedResponseError, RepairExhaustedError
from verilis.logging_config import get_logger
from verilis.prompts import build_translation_prompt, serialize_payload
from verilis.repair_loop import DEFAULT_MAX_ATTEMPTS, ResponseCheck, ResponseRepairLoop
from verilis.translation_validator import find_placeholder_mismatches

logger = get_logger("task")


class JobOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class TaskSettings:
    """Knobs shared by every language task of a run."""
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    max_request_tokens: Optional[int] = None
    verify_placeholders: bool = False
    model_name: str = 'gpt-4o'


@dataclass
class TranslationJob:
    """
    Work for one language, fixed at job start.

    ``snapshot`` is a private copy owned by the job; ``missing`` holds the
    source texts of every resource key the snapshot lacks.
    """
    language: str
    display_name: str
    missing: Dict[str, str]
    snapshot: Dict[str, str]


@dataclass
class LanguageResult:
    """The result slot of one language, written once by its task."""
    language: str
    outcome: JobOutcome
    snapshot: Dict[str, str]
    requested_keys: List[str] = field(default_factory=list)
    translated_keys: List[str] = field(default_factory=list)
    provider_calls: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def untranslated_keys(self) -> List[str]:
        translated = set(self.translated_keys)
        return [key for key in self.requested_keys if key not in translated]


def compute_missing_keys(resource: Mapping[str, str], snapshot: Mapping[str, str]) -> Dict[str, str]:
    """
    Return the resource entries whose key is absent from ``snapshot``.

    The result keeps the order of ``resource``.
    """
    return {key: text for key, text in resource.items() if key not in snapshot}


def build_job(language: str, display_name: str, resource: Mapping[str, str],
              snapshot: Mapping[str, str]) -> TranslationJob:
    """Create the job for one language from its reconciled snapshot."""
    return TranslationJob(
        language=language,
        display_name=display_name,
        missing=compute_missing_keys(resource, snapshot),
        snapshot=dict(snapshot)
    )


def merge_translations(
        snapshot: Mapping[str, str],
        requested: Mapping[str, str],
        translated: Mapping[str, str]
) -> Tuple[Dict[str, str], List[str]]:
    """
    Merge provider output into a snapshot, keyed by resource key.

    Only keys that were requested are read from ``translated``; anything else
    the provider returned is ignored. An empty value for a non-empty source
    text counts as not translated.

    Args:
        snapshot: The snapshot to merge into. It is not modified.
        requested: The key -> source text mapping that was sent.
        translated: The parsed provider response.

    Returns:
        The merged copy of the snapshot and the keys that were merged.
    """
    merged = dict(snapshot)
    merged_keys = []
    for key, source_text in requested.items():
        if key not in translated:
            continue
        value = translated[key]
        if not value and source_text:
            continue
        merged[key] = value
        merged_keys.append(key)
    return merged, merged_keys


def count_tokens(text: str, model_name: str = 'gpt-4o') -> int:
    """Count the number of tokens in ``text`` for ``model_name``.

    Provider model ids (e.g. ``google/gemini-2.5-flash-preview``) are usually
    unknown to ``tiktoken``, in which case ``cl100k_base`` is used as an
    approximation. As a last resort, a simple whitespace split is used.
    """
    try:
        encoding = tiktoken.encoding_for_model(model_name)
    except Exception:
        try:
            encoding = tiktoken.get_encoding("cl100k_base")
        except Exception:
            return len(text.split())

    try:
        return len(encoding.encode(text))
    except Exception:
        return len(text.split())


def split_into_batches(
        missing: Mapping[str, str],
        max_request_tokens: Optional[int],
        model_name: str
) -> List[Dict[str, str]]:
    """
    Split the missing entries into request-sized batches.

    Without a token budget everything goes into a single batch. With one,
    consecutive entries are grouped while their serialized size stays within
    the budget; an entry larger than the budget forms a batch of its own.
    """
    if not missing:
        return []
    if not max_request_tokens:
        return [dict(missing)]

    batches: List[Dict[str, str]] = []
    current: Dict[str, str] = {}
    current_tokens = 0
    for key, text in missing.items():
        entry_tokens = count_tokens(serialize_payload({key: text}), model_name)
        if current and current_tokens + entry_tokens > max_request_tokens:
            batches.append(current)
            current = {}
            current_tokens = 0
        current[key] = text
        current_tokens += entry_tokens
    if current:
        batches.append(current)
    return batches


def make_placeholder_check(batch: Mapping[str, str]) -> ResponseCheck:
    """Build a response check rejecting translations that lose or alter placeholders."""
    def check(translated: Dict[str, str]) -> None:
        mismatches = find_placeholder_mismatches(batch, translated)
        if mismatches:
            details = '; '.join(
                f"{key}: expected {expected}, got {actual}"
                for key, (expected, actual) in sorted(mismatches.items())
            )
            raise RejectedResponseError(f"Placeholder mismatch for {len(mismatches)} key(s): {details}")
    return check


async def translate_language(job: TranslationJob, provider, settings: TaskSettings) -> LanguageResult:
    """
    Translate every missing key of ``job`` and merge the results.

    Each batch goes through its own repair loop. A batch that exhausts its
    attempts is recorded as failed and the remaining batches still run, so the
    returned snapshot always holds the pre-task snapshot plus every batch that
    succeeded.

    Args:
        job: The language job.
        provider: Object with an async ``complete(prompt) -> str`` method.
        settings: Run-wide task settings.

    Returns:
        The result slot for ``job.language``.
    """
    requested_keys = list(job.missing.keys())
    if not requested_keys:
        logger.info("%s: no texts to translate, reusing the existing snapshot.", job.language)
        return LanguageResult(language=job.language, outcome=JobOutcome.SUCCESS, snapshot=dict(job.snapshot))

    batches = split_into_batches(job.missing, settings.max_request_tokens, settings.model_name)
    logger.info("%s: translating %d key(s) to %s in %d request(s)",
                job.language, len(requested_keys), job.display_name, len(batches))

    repair_loop = ResponseRepairLoop(provider, max_attempts=settings.max_attempts)
    snapshot = dict(job.snapshot)
    translated_keys: List[str] = []
    errors: List[str] = []
    provider_calls = 0
    failed_batches = 0

    for index, batch in enumerate(batches, start=1):
        label = f"{job.language} [{index}/{len(batches)}]"
        payload = build_translation_prompt(job.display_name, serialize_payload(batch))
        response_check = make_placeholder_check(batch) if settings.verify_placeholders else None
        try:
            result = await repair_loop.run(payload, label=label, response_check=response_check)
        except RepairExhaustedError as exhausted:
            failed_batches += 1
            provider_calls += exhausted.attempts
            errors.append(f"{label}: {exhausted}")
            continue

        provider_calls += result.attempts
        snapshot, merged_keys = merge_translations(snapshot, batch, result.translations)
        translated_keys.extend(merged_keys)

        ignored = set(result.translations) - set(batch)
        if ignored:
            logger.debug("%s: ignored %d unrequested key(s): %s", label, len(ignored), ', '.join(sorted(ignored)))

    if failed_batches == 0:
        outcome = JobOutcome.SUCCESS
    elif failed_batches < len(batches):
        outcome = JobOutcome.PARTIAL
    else:
        outcome = JobOutcome.FAILED

    result = LanguageResult(
        language=job.language,
        outcome=outcome,
        snapshot=snapshot,
        requested_keys=requested_keys,
        translated_keys=translated_keys,
        provider_calls=provider_calls,
        errors=errors
    )
    if outcome is not JobOutcome.FAILED and result.untranslated_keys:
        logger.info("%s: %d key(s) remain untranslated after this run.",
                    job.language, len(result.untranslated_keys))
    return result
