"""
Fan out one translation task per target language and persist the results.

All prior snapshots are loaded and reconciled before the first provider call,
so a corrupt snapshot aborts the run without side effects. Tasks then run
concurrently without a bound on the number of languages in flight; a task
failing never cancels its siblings. Each language's snapshot is written as
soon as its own task completes, and the run report is assembled only after
every task has joined.
"""
import asyncio
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

from tqdm.asyncio import tqdm

from verilis.languages import dedupe_languages, display_name, find_unsupported_languages
from verilis.logging_config import get_logger
from verilis.snapshot_store import load_snapshot, save_snapshot, snapshot_path
from verilis.translation_task import (
    JobOutcome,
    LanguageResult,
    TaskSettings,
    TranslationJob,
    build_job,
    translate_language
)

logger = get_logger("orchestrator")


@dataclass
class RunReport:
    """Per-language results of a run, in configuration order."""
    results: Dict[str, LanguageResult] = field(default_factory=dict)
    unsupported_languages: List[str] = field(default_factory=list)
    dry_run: bool = False

    def _with_outcome(self, outcome: JobOutcome) -> List[str]:
        return [lang for lang, result in self.results.items() if result.outcome is outcome]

    @property
    def succeeded(self) -> List[str]:
        return self._with_outcome(JobOutcome.SUCCESS)

    @property
    def partial(self) -> List[str]:
        return self._with_outcome(JobOutcome.PARTIAL)

    @property
    def failed(self) -> List[str]:
        return self._with_outcome(JobOutcome.FAILED)

    @property
    def provider_calls(self) -> int:
        return sum(result.provider_calls for result in self.results.values())


class TranslationOrchestrator:
    """
    Runs the incremental translation pipeline for a set of languages.

    Args:
        provider: Object with an async ``complete(prompt) -> str`` method.
            May be None in dry-run mode.
        output_dir: Directory holding one ``<language>.json`` snapshot per language.
        language_table: Read-only mapping of language id to display name.
        settings: Settings applied to every language task.
        dry_run: Report the pending work without calling the provider or writing files.
    """

    def __init__(
            self,
            provider,
            output_dir: str,
            language_table: Mapping[str, str],
            settings: Optional[TaskSettings] = None,
            dry_run: bool = False
    ):
        if provider is None and not dry_run:
            raise ValueError("A provider is required unless running in dry-run mode")
        self.provider = provider
        self.output_dir = output_dir
        self.language_table = language_table
        self.settings = settings or TaskSettings()
        self.dry_run = dry_run

    def check_languages(self, languages: Iterable[str]) -> List[str]:
        """Warn about languages missing from the table; they are still translated."""
        unsupported = find_unsupported_languages(languages, self.language_table)
        if unsupported:
            logger.warning(
                "The following languages are not officially supported: %s. "
                "You can continue with unsupported languages, but we cannot guarantee full functionality.",
                ', '.join(unsupported)
            )
            logger.debug("Supported languages: %s", ', '.join(
                f"{code} - {name}" for code, name in self.language_table.items()
            ))
        return unsupported

    def load_snapshots(self, resource: Mapping[str, str], languages: Iterable[str]) -> Dict[str, Dict[str, str]]:
        """
        Load and reconcile the snapshot of every language.

        Raises:
            SnapshotLoadError: If any existing snapshot cannot be parsed.
        """
        return {language: load_snapshot(self.output_dir, language, resource) for language in languages}

    async def run(self, resource: Mapping[str, str], languages: Iterable[str]) -> RunReport:
        """
        Translate ``resource`` into every language of ``languages``.

        Args:
            resource: Key -> source text mapping. Not modified.
            languages: Target language ids; repeated ids are processed once.

        Returns:
            The run report.

        Raises:
            SnapshotLoadError: Before any provider call, if a prior snapshot is corrupt.
        """
        resource = MappingProxyType(dict(resource))
        languages = dedupe_languages(languages)

        snapshots = self.load_snapshots(resource, languages)
        unsupported = self.check_languages(languages)

        jobs = [
            build_job(language, display_name(language, self.language_table), resource, snapshots[language])
            for language in languages
        ]
        total_missing = sum(len(job.missing) for job in jobs)
        logger.info("Translating %d resource(s) to %d language(s) (%d missing translation(s))",
                    len(resource), len(jobs), total_missing)

        completed: Dict[str, LanguageResult] = {}
        if jobs:
            tasks = [asyncio.ensure_future(self._run_language(job)) for job in jobs]
            for coro in tqdm.as_completed(tasks, total=len(tasks), desc="Translating", unit="language"):
                result = await coro
                completed[result.language] = self._persist(result)

        report = RunReport(
            results={language: completed[language] for language in languages},
            unsupported_languages=unsupported,
            dry_run=self.dry_run
        )
        log_report(report)
        return report

    async def _run_language(self, job: TranslationJob) -> LanguageResult:
        if self.dry_run:
            logger.info("[Dry Run] Would translate %d key(s) to %s (%s).",
                        len(job.missing), job.display_name, job.language)
            return LanguageResult(
                language=job.language,
                outcome=JobOutcome.SUCCESS,
                snapshot=dict(job.snapshot),
                requested_keys=list(job.missing)
            )

        logger.info("Started processing language: %s (%s)", job.display_name, job.language)
        try:
            return await translate_language(job, self.provider, self.settings)
        except Exception as general_exc:
            logger.error("Unexpected error while translating '%s': %s", job.language, general_exc, exc_info=True)
            return LanguageResult(
                language=job.language,
                outcome=JobOutcome.FAILED,
                snapshot=dict(job.snapshot),
                requested_keys=list(job.missing),
                errors=[f"Unexpected error: {general_exc}"]
            )

    def _persist(self, result: LanguageResult) -> LanguageResult:
        """Write the snapshot of a finished language, unless nothing succeeded."""
        if result.outcome is JobOutcome.FAILED:
            logger.error("Failed to translate %s; keeping the existing snapshot.", result.language)
            return result

        if self.dry_run:
            logger.info("[Dry Run] Would write %d translation(s) to '%s'.",
                        len(result.snapshot), snapshot_path(self.output_dir, result.language))
            return result

        try:
            save_snapshot(self.output_dir, result.language, result.snapshot)
        except OSError as write_exc:
            logger.error("Failed to write the snapshot for '%s': %s", result.language, write_exc)
            return replace(
                result,
                outcome=JobOutcome.FAILED,
                errors=result.errors + [f"Failed to write snapshot: {write_exc}"]
            )
        return result


def log_report(report: RunReport) -> None:
    """Log one summary line per language."""
    for language, result in report.results.items():
        if result.outcome is JobOutcome.FAILED:
            logger.error("%s: failed (%s)", language, '; '.join(result.errors) or 'no details')
        elif result.outcome is JobOutcome.PARTIAL:
            logger.warning("%s: partially translated (%d/%d keys, %d provider call(s))", language,
                           len(result.translated_keys), len(result.requested_keys), result.provider_calls)
        else:
            logger.info("%s: success (%d new translation(s), %d provider call(s))", language,
                        len(result.translated_keys), result.provider_calls)
    logger.info("Translation process completed! %d succeeded, %d partial, %d failed.",
                len(report.succeeded), len(report.partial), len(report.failed))
