"""
Integration tests for the translation pipeline.

The provider is replaced by an in-memory fake; snapshot loading, per-language
fan-out, repair, merging and persistence all run for real against a
temporary output directory.
"""
import asyncio
import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from verilis.errors import SnapshotLoadError
from verilis.languages import build_language_table
from verilis.orchestrator import TranslationOrchestrator
from verilis.snapshot_store import read_snapshot, save_snapshot, snapshot_path
from verilis.translation_task import JobOutcome, TaskSettings, translate_language
from tests.fakes import FakeProvider, fake_translation, language_of


class TestTranslationPipeline(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.output_dir = tempfile.mkdtemp(prefix='verilis_output_')
        self.language_table = build_language_table()
        self.resource = {"hello": "Hello", "whats_up": "whats up"}

    def tearDown(self):
        shutil.rmtree(self.output_dir, ignore_errors=True)

    def make_orchestrator(self, provider, **kwargs):
        return TranslationOrchestrator(provider, self.output_dir, self.language_table, **kwargs)

    def write_snapshot(self, language, content):
        with open(snapshot_path(self.output_dir, language), 'w', encoding='utf-8') as f:
            f.write(content if isinstance(content, str) else json.dumps(content))

    async def test_first_run_translates_every_language(self):
        provider = FakeProvider()

        report = await self.make_orchestrator(provider).run(self.resource, ["de", "zh-CN"])

        self.assertEqual(report.succeeded, ["de", "zh-CN"])
        self.assertEqual(provider.call_count, 2)
        self.assertEqual(read_snapshot(self.output_dir, "de"), {
            "hello": fake_translation("German", "Hello"),
            "whats_up": fake_translation("German", "whats up"),
        })
        self.assertEqual(read_snapshot(self.output_dir, "zh-CN")["hello"],
                         fake_translation("Chinese (Simplified)", "Hello"))

    async def test_second_run_is_idempotent_and_makes_no_calls(self):
        await self.make_orchestrator(FakeProvider()).run(self.resource, ["de", "fr"])
        first = {lang: read_snapshot(self.output_dir, lang) for lang in ("de", "fr")}

        provider = FakeProvider()
        report = await self.make_orchestrator(provider).run(self.resource, ["de", "fr"])

        self.assertEqual(provider.call_count, 0)
        self.assertEqual(report.provider_calls, 0)
        self.assertEqual({lang: read_snapshot(self.output_dir, lang) for lang in ("de", "fr")}, first)

    async def test_incremental_run_requests_only_new_keys(self):
        self.write_snapshot("de", {"A": "Prior A", "B": "Prior B"})
        provider = FakeProvider()

        await self.make_orchestrator(provider).run({"A": "a", "B": "b", "C": "c"}, ["de"])

        self.assertEqual(provider.requested_payloads("German"), [{"C": "c"}])
        self.assertEqual(read_snapshot(self.output_dir, "de"), {
            "A": "Prior A",
            "B": "Prior B",
            "C": fake_translation("German", "c"),
        })

    async def test_stale_keys_are_dropped_before_computing_missing(self):
        self.write_snapshot("de", {"A": "Prior A", "D": "Removed upstream"})
        provider = FakeProvider()

        await self.make_orchestrator(provider).run({"A": "a", "B": "b"}, ["de"])

        self.assertEqual(provider.requested_payloads("German"), [{"B": "b"}])
        self.assertEqual(read_snapshot(self.output_dir, "de"), {
            "A": "Prior A",
            "B": fake_translation("German", "b"),
        })

    async def test_stale_keys_are_pruned_even_without_provider_calls(self):
        self.write_snapshot("de", {"hello": "Hallo", "whats_up": "Was geht", "gone": "Weg"})
        provider = FakeProvider()

        await self.make_orchestrator(provider).run(self.resource, ["de"])

        self.assertEqual(provider.call_count, 0)
        self.assertEqual(read_snapshot(self.output_dir, "de"), {"hello": "Hallo", "whats_up": "Was geht"})

    async def test_repair_exhaustion_is_isolated_to_its_language(self):
        provider = FakeProvider(behaviour={"French": "garbage"})

        report = await self.make_orchestrator(provider).run(self.resource, ["de", "fr", "ja"])

        self.assertEqual(report.failed, ["fr"])
        self.assertEqual(report.succeeded, ["de", "ja"])
        self.assertEqual(report.results["fr"].provider_calls, 3)
        self.assertIsNone(read_snapshot(self.output_dir, "fr"))
        self.assertEqual(set(read_snapshot(self.output_dir, "ja")), set(self.resource))

    async def test_permanent_provider_error_keeps_pre_run_snapshot(self):
        self.write_snapshot("fr", {"hello": "Bonjour"})
        self.write_snapshot("de", {"hello": "Hallo"})
        provider = FakeProvider(behaviour={"French": "error"})

        report = await self.make_orchestrator(provider).run(self.resource, ["fr", "de"])

        self.assertEqual(report.results["fr"].outcome, JobOutcome.FAILED)
        self.assertEqual(report.results["de"].outcome, JobOutcome.SUCCESS)
        self.assertEqual(read_snapshot(self.output_dir, "fr"), {"hello": "Bonjour"})
        self.assertEqual(read_snapshot(self.output_dir, "de"), {
            "hello": "Hallo",
            "whats_up": fake_translation("German", "whats up"),
        })

    async def test_extra_keys_from_provider_are_not_persisted(self):
        provider = FakeProvider(extra_keys={"injected": "surprise"})

        await self.make_orchestrator(provider).run(self.resource, ["de"])

        self.assertEqual(set(read_snapshot(self.output_dir, "de")), {"hello", "whats_up"})

    async def test_corrupt_snapshot_aborts_before_any_provider_call(self):
        self.write_snapshot("fr", '{"hello": "Bonjour"')
        provider = FakeProvider()

        with self.assertRaises(SnapshotLoadError):
            await self.make_orchestrator(provider).run(self.resource, ["de", "fr"])

        self.assertEqual(provider.call_count, 0)
        self.assertIsNone(read_snapshot(self.output_dir, "de"))

    async def test_unknown_language_warns_and_is_still_translated(self):
        provider = FakeProvider()

        with self.assertLogs('verilis', level='WARNING') as logs:
            report = await self.make_orchestrator(provider).run(self.resource, ["tlh"])

        self.assertEqual(report.unsupported_languages, ["tlh"])
        self.assertTrue(any("not officially supported" in line for line in logs.output))
        self.assertEqual(read_snapshot(self.output_dir, "tlh")["hello"], fake_translation("tlh", "Hello"))

    async def test_repeated_languages_run_once(self):
        provider = FakeProvider()

        report = await self.make_orchestrator(provider).run(self.resource, ["de", "de"])

        self.assertEqual(list(report.results), ["de"])
        self.assertEqual(provider.call_count, 1)

    async def test_caller_resource_is_not_modified(self):
        resource = dict(self.resource)
        await self.make_orchestrator(FakeProvider(extra_keys={"x": "y"})).run(resource, ["de"])
        self.assertEqual(resource, self.resource)

    async def test_dry_run_makes_no_calls_and_writes_nothing(self):
        report = await self.make_orchestrator(None, dry_run=True).run(self.resource, ["de", "fr"])

        self.assertTrue(report.dry_run)
        self.assertEqual(report.results["de"].requested_keys, ["hello", "whats_up"])
        self.assertEqual(os.listdir(self.output_dir), [])

    async def test_unexpected_task_error_becomes_language_failure(self):
        provider = FakeProvider()

        async def flaky(job, provider, settings):
            if job.language == "de":
                raise RuntimeError("boom")
            return await translate_language(job, provider, settings)

        with patch('verilis.orchestrator.translate_language', side_effect=flaky):
            report = await self.make_orchestrator(provider).run(self.resource, ["de", "fr"])

        self.assertEqual(report.failed, ["de"])
        self.assertIn("boom", report.results["de"].errors[0])
        self.assertEqual(report.succeeded, ["fr"])

    async def test_write_failure_marks_only_that_language_failed(self):
        provider = FakeProvider()

        def failing_save(output_dir, language, snapshot):
            if language == "fr":
                raise OSError("disk full")
            return save_snapshot(output_dir, language, snapshot)

        with patch('verilis.orchestrator.save_snapshot', side_effect=failing_save):
            report = await self.make_orchestrator(provider).run(self.resource, ["de", "fr"])

        self.assertEqual(report.failed, ["fr"])
        self.assertIn("disk full", report.results["fr"].errors[-1])
        self.assertIsNotNone(read_snapshot(self.output_dir, "de"))

    async def test_token_budget_splits_requests_per_language(self):
        provider = FakeProvider()
        resource = {"a": "A", "b": "B", "c": "C"}

        with patch('verilis.translation_task.count_tokens', return_value=10):
            report = await self.make_orchestrator(
                provider, settings=TaskSettings(max_request_tokens=20)
            ).run(resource, ["de"])

        self.assertEqual(provider.requested_payloads("German"), [{"a": "A", "b": "B"}, {"c": "C"}])
        self.assertEqual(report.results["de"].outcome, JobOutcome.SUCCESS)
        self.assertEqual(set(read_snapshot(self.output_dir, "de")), {"a", "b", "c"})

    async def test_languages_are_translated_concurrently(self):
        french_started = asyncio.Event()
        provider = FakeProvider()
        translate = provider.complete

        async def complete(prompt):
            language = language_of(prompt)
            if language == "German":
                await french_started.wait()
            elif language == "French":
                french_started.set()
            return await translate(prompt)

        provider.complete = complete

        report = await asyncio.wait_for(
            self.make_orchestrator(provider).run(self.resource, ["de", "fr"]), timeout=5
        )

        self.assertEqual(report.succeeded, ["de", "fr"])
        self.assertEqual(provider.call_count, 2)


if __name__ == '__main__':
    unittest.main()
