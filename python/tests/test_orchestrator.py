"""
Tests for the pipeline orchestrator.

The orchestrator is exercised both with in-memory fakes, to check sequencing
and abort behavior, and end to end against real directories.
"""

import os
import shutil
import tempfile
import unittest
import zipfile
from pathlib import Path
from unittest.mock import patch

from deploy_archive import (
    ArchiveEntry,
    ArchiveError,
    CompletionReport,
    ConfigurationError,
    DirectoryTreeSource,
    DuplicateEntry,
    EntryRecord,
    PipelineOrchestrator,
    ProgressReporter,
    ReadError,
    SingleFileSource,
    SourceNotFound,
    WriteError,
    WriterState,
    ZipArchiveWriter,
    build_deploy_archive,
    format_size,
    iter_archive_entries,
)


class FakeWriter:
    """Records submitted entries instead of writing an archive."""

    def __init__(self, fail_on=None, error=None):
        self.state = WriterState.IDLE
        self.entries = []
        self.calls = []
        self.output_path = None
        self.fail_on = fail_on
        self.error = error or WriteError("fake.zip", "disk full")

    def open(self, output_path):
        self.calls.append("open")
        self.output_path = output_path
        self.state = WriterState.OPEN

    def add_entry(self, entry, source=None):
        if entry.archive_path == self.fail_on:
            raise self.error
        self.entries.append(entry.archive_path)
        return EntryRecord(entry.archive_path, 10, 4)

    def finalize(self):
        self.calls.append("finalize")
        self.state = WriterState.FINALIZED
        return self.output_path

    def abort(self):
        self.calls.append("abort")
        self.state = WriterState.ABORTED


class FakeEnumerator:
    """Serves directory listings from a dict of root -> relative names."""

    def __init__(self, trees=None, files=None, fail_after=None):
        self.trees = trees or {}
        self.files = set(files or [])
        self.fail_after = fail_after

    def check_root(self, source_root):
        if source_root not in self.trees:
            raise SourceNotFound(source_root)

    def check_file(self, source_path):
        if source_path not in self.files:
            raise SourceNotFound(source_path)

    def enumerate(self, source_root, archive_prefix=""):
        self.check_root(source_root)
        return self._walk(source_root, archive_prefix)

    def _walk(self, source_root, archive_prefix):
        for i, name in enumerate(self.trees[source_root]):
            if self.fail_after is not None and i == self.fail_after:
                raise ReadError(f"{source_root}/{name}", "permission denied")
            path = f"{archive_prefix}/{name}" if archive_prefix else name
            yield ArchiveEntry(path, f"{source_root}/{name}")

    def resolve_file(self, source_path, archive_path):
        self.check_file(source_path)
        return ArchiveEntry(archive_path, source_path)


class FakeReporter:
    def __init__(self):
        self.reported = []

    def report(self, output_path):
        self.reported.append(output_path)
        return CompletionReport(1234, "0 MB", output_path)


class TestPipelineOrchestrator(unittest.TestCase):
    """Sequencing and failure handling against fakes."""

    def setUp(self):
        self.writer = FakeWriter()
        self.enumerator = FakeEnumerator(
            trees={
                "dist/": ["index.js", "assets/app.css"],
                "node_modules/": ["left-pad/index.js"],
            },
            files=["package.json"],
        )
        self.reporter = FakeReporter()
        self.sources = [
            DirectoryTreeSource("dist/", "dist"),
            DirectoryTreeSource("node_modules/", "node_modules"),
            SingleFileSource("package.json", "package.json"),
        ]

    def _orchestrator(self, **kwargs):
        return PipelineOrchestrator(
            writer=self.writer,
            enumerator=self.enumerator,
            reporter=self.reporter,
            **kwargs,
        )

    def test_entries_follow_source_order(self):
        report = self._orchestrator().run(self.sources, "out.zip")

        self.assertEqual(
            self.writer.entries,
            [
                "dist/index.js",
                "dist/assets/app.css",
                "node_modules/left-pad/index.js",
                "package.json",
            ],
        )
        self.assertEqual(self.writer.calls, ["open", "finalize"])
        self.assertEqual(self.reporter.reported, ["out.zip"])
        self.assertEqual(report.output_path, "out.zip")

    def test_counters(self):
        orchestrator = self._orchestrator()
        orchestrator.run(self.sources, "out.zip")

        self.assertEqual(orchestrator.entries_written, 4)
        self.assertEqual(orchestrator.bytes_written, 40)

    def test_empty_source_list_finalizes_empty_archive(self):
        self._orchestrator().run([], "out.zip")

        self.assertEqual(self.writer.entries, [])
        self.assertEqual(self.writer.calls, ["open", "finalize"])

    def test_missing_root_fails_before_opening_writer(self):
        sources = self.sources + [DirectoryTreeSource("missing/", "missing")]

        with self.assertRaises(SourceNotFound):
            self._orchestrator().run(sources, "out.zip")

        self.assertEqual(self.writer.calls, [])
        self.assertEqual(self.writer.state, WriterState.IDLE)
        self.assertEqual(self.reporter.reported, [])

    def test_missing_file_fails_before_opening_writer(self):
        sources = [SingleFileSource("package-lock.json", "package-lock.json")]

        with self.assertRaises(SourceNotFound):
            self._orchestrator().run(sources, "out.zip")
        self.assertEqual(self.writer.calls, [])

    def test_unknown_source_spec(self):
        with self.assertRaises(ConfigurationError):
            self._orchestrator().run(["dist/"], "out.zip")
        self.assertEqual(self.writer.calls, [])

    def test_duplicate_across_sources_aborts(self):
        sources = self.sources + [SingleFileSource("package.json", "dist/index.js")]

        with self.assertRaises(DuplicateEntry) as ctx:
            self._orchestrator().run(sources, "out.zip")

        self.assertEqual(ctx.exception.archive_path, "dist/index.js")
        self.assertEqual(self.writer.calls, ["open", "abort"])
        self.assertEqual(self.reporter.reported, [])

    def test_write_failure_aborts_and_stops(self):
        self.writer.fail_on = "dist/assets/app.css"

        with self.assertRaises(WriteError):
            self._orchestrator().run(self.sources, "out.zip")

        self.assertEqual(self.writer.entries, ["dist/index.js"])
        self.assertEqual(self.writer.calls, ["open", "abort"])
        self.assertEqual(self.writer.state, WriterState.ABORTED)

    def test_enumeration_failure_mid_walk_aborts(self):
        self.enumerator.fail_after = 1

        with self.assertRaises(ReadError):
            self._orchestrator().run(self.sources, "out.zip")

        self.assertEqual(self.writer.entries, ["dist/index.js"])
        self.assertEqual(self.writer.calls, ["open", "abort"])

    def test_interrupt_aborts_and_propagates(self):
        self.writer.fail_on = "package.json"
        self.writer.error = KeyboardInterrupt()

        with self.assertRaises(KeyboardInterrupt):
            self._orchestrator().run(self.sources, "out.zip")
        self.assertEqual(self.writer.calls, ["open", "abort"])

    def test_progress_callback(self):
        progress = []
        self._orchestrator(
            progress_callback=lambda count, label: progress.append((count, label)),
            progress_interval=2,
        ).run(self.sources, "out.zip")

        self.assertEqual(
            progress,
            [
                (1, "dist/ -> dist/"),
                (2, "dist/ -> dist/"),
                (1, "node_modules/ -> node_modules/"),
                (1, "package.json -> package.json"),
            ],
        )


class TestProgressReporter(unittest.TestCase):
    def test_should_report_progress(self):
        reporter = ProgressReporter(interval=100)
        self.assertTrue(reporter.should_report_progress(1))
        self.assertFalse(reporter.should_report_progress(2))
        self.assertTrue(reporter.should_report_progress(200))

    def test_without_callback(self):
        ProgressReporter().report_progress_safely(None, 1, "dist")


class TestBuildDeployArchive(unittest.TestCase):
    """End-to-end builds against real directories."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.dist = self.temp_dir / "dist"
        (self.dist / "assets").mkdir(parents=True)
        (self.dist / "index.js").write_text("console.log('ready');\n")
        (self.dist / "assets" / "app.css").write_text("body { color: red }\n")
        self.manifest = self.temp_dir / "package.json"
        self.manifest.write_text('{"name": "app", "version": "1.0.0"}')
        self.output = str(self.temp_dir / "azure-deploy.zip")
        self.sources = [
            DirectoryTreeSource(str(self.dist), "dist"),
            SingleFileSource(str(self.manifest), "package.json"),
        ]

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_build_produces_ordered_archive(self):
        report = build_deploy_archive(self.sources, self.output, show_progress=False)

        with zipfile.ZipFile(self.output) as zipf:
            self.assertEqual(
                zipf.namelist(),
                ["dist/index.js", "dist/assets/app.css", "package.json"],
            )
            self.assertEqual(zipf.read("package.json"), self.manifest.read_bytes())
            self.assertEqual(
                zipf.read("dist/assets/app.css"),
                (self.dist / "assets" / "app.css").read_bytes(),
            )

        self.assertEqual(report.output_path, self.output)
        self.assertEqual(report.final_size_bytes, os.path.getsize(self.output))
        self.assertEqual(report.formatted_size, format_size(report.final_size_bytes))

    def test_build_is_deterministic_in_entry_order(self):
        first = build_deploy_archive(self.sources, self.output, show_progress=False)
        with zipfile.ZipFile(first.output_path) as zipf:
            first_names = zipf.namelist()

        second_output = str(self.temp_dir / "second.zip")
        build_deploy_archive(self.sources, second_output, show_progress=False)
        with zipfile.ZipFile(second_output) as zipf:
            self.assertEqual(zipf.namelist(), first_names)

    def test_extension_is_added(self):
        report = build_deploy_archive(
            self.sources, str(self.temp_dir / "bundle"), show_progress=False
        )
        self.assertTrue(report.output_path.endswith("bundle.zip"))
        self.assertTrue(os.path.isfile(report.output_path))

    def test_zstd_build(self):
        report = build_deploy_archive(
            self.sources,
            str(self.temp_dir / "bundle"),
            archive_format="zstd",
            show_progress=False,
        )
        self.assertTrue(report.output_path.endswith("bundle.tar.zst"))
        self.assertEqual(report.final_size_bytes, os.path.getsize(report.output_path))

    def test_missing_source_leaves_no_output(self):
        sources = self.sources + [
            DirectoryTreeSource(str(self.temp_dir / "node_modules"), "node_modules")
        ]

        with self.assertRaises(SourceNotFound):
            build_deploy_archive(sources, self.output, show_progress=False)

        self.assertFalse(os.path.exists(self.output))
        self.assertFalse(os.path.exists(self.output + ".partial"))

    def test_duplicate_leaves_no_output(self):
        sources = self.sources + [SingleFileSource(str(self.manifest), "dist/index.js")]

        with self.assertRaises(DuplicateEntry):
            build_deploy_archive(sources, self.output, show_progress=False)

        self.assertFalse(os.path.exists(self.output))
        self.assertFalse(os.path.exists(self.output + ".partial"))

    def test_read_failure_leaves_no_output(self):
        # Source disappears between the upfront check and the write
        orchestrator = PipelineOrchestrator(ZipArchiveWriter())
        original = orchestrator.enumerator.resolve_file

        def vanish(source_path, archive_path):
            entry = original(source_path, archive_path)
            os.remove(source_path)
            return entry

        with patch.object(orchestrator.enumerator, "resolve_file", side_effect=vanish):
            with self.assertRaises(ReadError):
                orchestrator.run(self.sources, self.output)

        self.assertEqual(orchestrator.writer.state, WriterState.ABORTED)
        self.assertFalse(os.path.exists(self.output))
        self.assertFalse(os.path.exists(self.output + ".partial"))

    def test_previous_output_is_removed_on_failure(self):
        Path(self.output).write_bytes(b"previous deploy")
        sources = self.sources + [SingleFileSource(str(self.manifest), "package.json")]

        with self.assertRaises(ArchiveError):
            build_deploy_archive(sources, self.output, show_progress=False)

        self.assertFalse(os.path.exists(self.output))
        self.assertFalse(os.path.exists(self.output + ".partial"))

    def test_previous_output_is_removed_when_a_source_is_missing(self):
        build_deploy_archive(self.sources, self.output, show_progress=False)
        self.assertTrue(os.path.isfile(self.output))

        sources = self.sources + [
            DirectoryTreeSource(str(self.temp_dir / "node_modules"), "node_modules")
        ]
        with self.assertRaises(SourceNotFound):
            build_deploy_archive(sources, self.output, show_progress=False)

        self.assertFalse(os.path.exists(self.output))

    def test_changed_output_path_is_logged(self):
        requested = str(self.temp_dir / "deploy.pkg")

        with self.assertLogs("deploy_archive.orchestrator", level="INFO") as logs:
            report = build_deploy_archive(self.sources, requested, show_progress=False)

        self.assertTrue(report.output_path.endswith("deploy.pkg.zip"))
        self.assertTrue(
            any("writing" in line and "deploy.pkg.zip" in line for line in logs.output)
        )

    @unittest.skipIf(os.name == "nt", "backslash is a separator on Windows")
    def test_backslash_file_name_is_kept_verbatim(self):
        (self.dist / "a").mkdir()
        (self.dist / "a" / "b.js").write_text("slash")
        (self.dist / "a\\b.js").write_text("backslash")

        build_deploy_archive(self.sources, self.output, show_progress=False)

        with zipfile.ZipFile(self.output) as zipf:
            names = zipf.namelist()
            self.assertIn("dist/a\\b.js", names)
            self.assertIn("dist/a/b.js", names)
            self.assertEqual(zipf.read("dist/a\\b.js"), b"backslash")
            self.assertEqual(zipf.read("dist/a/b.js"), b"slash")

    def test_failed_verification_removes_archive(self):
        with patch(
            "deploy_archive.orchestrator.ArchiveVerifier.verify_archive_integrity",
            return_value=False,
        ):
            with self.assertRaises(ArchiveError):
                build_deploy_archive(self.sources, self.output, show_progress=False)

        self.assertFalse(os.path.exists(self.output))

    def test_iter_archive_entries(self):
        entries = list(iter_archive_entries(self.sources))
        self.assertEqual(
            [e.archive_path for e in entries],
            ["dist/index.js", "dist/assets/app.css", "package.json"],
        )


if __name__ == "__main__":
    unittest.main()
