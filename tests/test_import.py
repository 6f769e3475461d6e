"""
Tests for the import engine.

Tests cover:
- Round-trip fidelity (export then force import)
- Merge mode idempotence
- Config deep merge and cron job merge
- Manifest validation before any write
- Dry-run classification
- Category skipping, credential gating and unsafe entry names
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
import unittest
import zipfile
from pathlib import Path
from unittest.mock import patch

from openclaw_packager.backup import (
    ArchiveExporter,
    ArchiveImporter,
    ErrorKind,
    ExportOptions,
    FileAction,
    ImportMode,
    ImportOptions,
    import_archive,
    map_entry_to_target,
)
from openclaw_packager.backup.importer import merge_config, merge_cron_jobs
from openclaw_packager.manifest import ManifestIncludes, create_manifest
from openclaw_packager.paths import STATE_DIR_ENV, derive_paths


def make_state_dir(root: Path) -> None:
    """Populate a small OpenClaw state directory."""
    (root / "cron").mkdir(parents=True)
    (root / "openclaw.json").write_text(
        json.dumps({"gateway": {"port": 8080}, "channels": {"slack": {"botToken": "xoxb-1-2-abc"}}})
    )
    (root / "cron" / "jobs.json").write_text(json.dumps({"jobs": [{"id": "daily"}]}))
    agent = root / "agents" / "main" / "agent"
    agent.mkdir(parents=True)
    (agent / "models.json").write_text('{"model": "claude"}')
    (agent / "auth-profiles.json").write_text('{"default": {"apiKey": "sk-abcdef123456"}}')
    (root / "credentials").mkdir()
    (root / "credentials" / "github.json").write_text('{"token": "ghp_abcdef0123456789"}')
    ws = root / "workspace"
    (ws / "skills" / "weather").mkdir(parents=True)
    (ws / "SOUL.md").write_text("# Soul")
    (ws / "skills" / "weather" / "SKILL.md").write_text("# Weather")


def write_archive(
    path: Path,
    entries: dict[str, str],
    manifest: dict | None = None,
    with_manifest: bool = True,
    **includes,
) -> Path:
    """Write a hand-built archive with a valid manifest unless one is given."""
    if manifest is None:
        manifest = create_manifest(includes=ManifestIncludes(**includes)).to_dict()
    with zipfile.ZipFile(path, "w") as zf:
        if with_manifest:
            zf.writestr("manifest.json", json.dumps(manifest))
        for name, content in entries.items():
            zf.writestr(name, content)
    return path


def snapshot(root: Path) -> dict[str, bytes]:
    """Map every file under root to its bytes."""
    return {
        str(p.relative_to(root)): p.read_bytes() for p in sorted(root.rglob("*")) if p.is_file()
    }


class ImportTestCase(unittest.TestCase):
    """Base class with a source installation and an empty target."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.source = Path(self.temp_dir) / "source"
        make_state_dir(self.source)
        self.target_root = Path(self.temp_dir) / "target"
        self.target = derive_paths(self.target_root)
        self.archive = Path(self.temp_dir) / "export.zip"

    def tearDown(self) -> None:
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def export(self, **options) -> Path:
        result = ArchiveExporter(derive_paths(self.source), ExportOptions(**options)).export(self.archive)
        self.assertTrue(result.success, result.error)
        return self.archive

    def run_import(self, archive: Path | None = None, **options):
        return ArchiveImporter(archive or self.archive, self.target, ImportOptions(**options)).run()


class TestRoundTrip(ImportTestCase):
    """Tests for export followed by import."""

    def test_force_import_byte_identical(self) -> None:
        """Test every exported file is restored byte-for-byte."""
        self.export(include_secrets=True, auth=True)

        result = self.run_import(mode=ImportMode.FORCE)

        self.assertTrue(result.success, result.error)
        self.assertTrue(result.fresh_install)
        expected = {
            "openclaw.json",
            "cron/jobs.json",
            "agents/main/agent/models.json",
            "agents/main/agent/auth-profiles.json",
            "credentials/github.json",
            "workspace/SOUL.md",
            "workspace/skills/weather/SKILL.md",
        }
        for rel in expected:
            self.assertEqual(
                (self.target_root / rel).read_bytes(), (self.source / rel).read_bytes(), rel
            )
        self.assertEqual(result.stats.files_written, len(expected))
        self.assertEqual(result.stats.files_skipped, 0)

    def test_merge_import_idempotent(self) -> None:
        """Test a second merge import changes nothing."""
        self.export()
        first = self.run_import()
        before = snapshot(self.target_root)

        second = self.run_import()

        self.assertTrue(first.success)
        self.assertTrue(second.success)
        self.assertEqual(second.stats.files_written, 0)
        self.assertEqual(second.stats.files_overwritten, 0)
        self.assertEqual(second.stats.files_skipped, first.stats.files_written)
        self.assertEqual(snapshot(self.target_root), before)

    def test_existing_files_preserved_in_merge(self) -> None:
        """Test merge mode never replaces an existing file."""
        self.export()
        soul = self.target_root / "workspace" / "SOUL.md"
        soul.parent.mkdir(parents=True)
        soul.write_text("mine")

        result = self.run_import()

        self.assertEqual(soul.read_text(), "mine")
        self.assertIn((FileAction.SKIP, "workspace/SOUL.md"), result.actions)

    def test_existing_files_replaced_in_force(self) -> None:
        """Test force mode replaces existing files."""
        self.export()
        soul = self.target_root / "workspace" / "SOUL.md"
        soul.parent.mkdir(parents=True)
        soul.write_text("mine")

        result = self.run_import(mode=ImportMode.FORCE)

        self.assertEqual(soul.read_text(), "# Soul")
        self.assertEqual(result.stats.files_overwritten, 1)

    def test_secrets_template_loaded(self) -> None:
        """Test stripped archives surface the secrets checklist."""
        self.export(auth=True)

        result = self.run_import()

        self.assertTrue(result.needs_secrets)
        self.assertIn("channels.slack.botToken", result.secrets_template.config)
        self.assertEqual(result.secrets_template.credentials, ["github.json"])

    def test_existing_install_detected(self) -> None:
        """Test the fresh/existing classification."""
        self.export()
        self.target_root.mkdir()
        (self.target_root / "openclaw.json").write_text("{}")

        result = self.run_import()

        self.assertFalse(result.fresh_install)


class TestStructuralMerges(ImportTestCase):
    """Tests for config and cron merging."""

    def test_config_merge_existing_wins(self) -> None:
        """Test nested config merge keeps destination values."""
        config = self.target_root / "openclaw.json"
        config.parent.mkdir(parents=True)
        config.write_text(json.dumps({"a": 99, "b": {"d": 4}}))
        archive = write_archive(
            self.archive,
            {"config/openclaw.json": json.dumps({"a": 1, "b": {"c": 2}})},
            config=True,
        )

        result = self.run_import(archive)

        self.assertEqual(json.loads(config.read_text()), {"a": 99, "b": {"c": 2, "d": 4}})
        self.assertEqual(result.stats.config_keys_added, 1)
        self.assertEqual(result.stats.files_overwritten, 1)

    def test_config_force_replaces(self) -> None:
        """Test force mode writes the archived config verbatim."""
        target = Path(self.temp_dir) / "openclaw.json"
        target.write_text('{"a": 99}')

        merged = merge_config(b'{"a": 1}', target, ImportMode.FORCE)

        self.assertEqual(merged.action, FileAction.OVERWRITE)
        self.assertEqual(target.read_bytes(), b'{"a": 1}')

    def test_config_merge_malformed_destination(self) -> None:
        """Test an unparseable destination config is left untouched."""
        target = Path(self.temp_dir) / "openclaw.json"
        target.write_text("{broken")

        merged = merge_config(b'{"a": 1}', target, ImportMode.MERGE)

        self.assertEqual(merged.action, FileAction.SKIP)
        self.assertIsNotNone(merged.error)
        self.assertEqual(target.read_text(), "{broken")

    def test_cron_merge_by_id(self) -> None:
        """Test cron jobs are appended by id."""
        jobs = self.target_root / "cron" / "jobs.json"
        jobs.parent.mkdir(parents=True)
        jobs.write_text(json.dumps({"jobs": [{"id": "a", "schedule": "mine"}]}))
        source = json.dumps({"jobs": [{"id": "a", "schedule": "theirs"}, {"id": "b"}]})
        archive = write_archive(self.archive, {"cron/jobs.json": source}, cron=True)

        result = self.run_import(archive)

        self.assertEqual(result.stats.cron_jobs_added, 1)
        self.assertEqual(result.stats.cron_jobs_skipped, 1)
        data = json.loads(jobs.read_text())
        self.assertEqual(data["jobs"], [{"id": "a", "schedule": "mine"}, {"id": "b"}])

    def test_cron_merge_nothing_new(self) -> None:
        """Test a merge adding no jobs leaves the file alone."""
        jobs = Path(self.temp_dir) / "jobs.json"
        jobs.write_text('{"jobs": [{"id": "a"}]}')

        merged = merge_cron_jobs(b'{"jobs": [{"id": "a"}]}', jobs, ImportMode.MERGE)

        self.assertEqual(merged.action, FileAction.SKIP)
        self.assertEqual(merged.skipped, 1)
        self.assertEqual(jobs.read_text(), '{"jobs": [{"id": "a"}]}')

    def test_cron_force_writes_verbatim(self) -> None:
        """Test force mode replaces the job list."""
        jobs = Path(self.temp_dir) / "jobs.json"
        jobs.write_text('{"jobs": [{"id": "mine"}]}')
        source = b'{"jobs": [{"id": "a"}, {"id": "b"}]}'

        merged = merge_cron_jobs(source, jobs, ImportMode.FORCE)

        self.assertEqual(merged.action, FileAction.OVERWRITE)
        self.assertEqual(merged.added, 2)
        self.assertEqual(jobs.read_bytes(), source)

    def test_cron_malformed_destination(self) -> None:
        """Test an unparseable job list is reported and left untouched."""
        jobs = self.target_root / "cron" / "jobs.json"
        jobs.parent.mkdir(parents=True)
        jobs.write_text("not json")
        archive = write_archive(self.archive, {"cron/jobs.json": '{"jobs": [{"id": "a"}]}'}, cron=True)

        result = self.run_import(archive)

        self.assertTrue(result.success)
        self.assertEqual(jobs.read_text(), "not json")
        self.assertEqual(len(result.stats.warnings), 1)

    def test_cron_malformed_source(self) -> None:
        """Test an unparseable archived job list is skipped."""
        merged = merge_cron_jobs(b"nope", Path(self.temp_dir) / "jobs.json", ImportMode.MERGE)

        self.assertEqual(merged.action, FileAction.SKIP)
        self.assertIsNotNone(merged.error)


class TestManifestGate(ImportTestCase):
    """Tests for archive validation before any write."""

    def assert_rejected(self, result, kind: ErrorKind) -> None:
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, kind)
        self.assertIsNone(result.manifest)
        self.assertFalse(self.target_root.exists())

    def test_foreign_tool_rejected(self) -> None:
        """Test archives from another tool are rejected with no writes."""
        manifest = create_manifest(includes=ManifestIncludes(workspace=True)).to_dict()
        manifest["tool"] = "someone-else"
        archive = write_archive(self.archive, {"workspace/SOUL.md": "x"}, manifest=manifest)

        self.assert_rejected(self.run_import(archive), ErrorKind.MANIFEST_INVALID)

    def test_missing_manifest(self) -> None:
        """Test archives without a manifest are rejected."""
        archive = write_archive(self.archive, {"workspace/SOUL.md": "x"}, with_manifest=False)

        self.assert_rejected(self.run_import(archive), ErrorKind.MANIFEST_MISSING)

    def test_unparseable_manifest(self) -> None:
        """Test a manifest that is not JSON is rejected."""
        with zipfile.ZipFile(self.archive, "w") as zf:
            zf.writestr("manifest.json", "{nope")

        self.assert_rejected(self.run_import(), ErrorKind.MANIFEST_INVALID)

    def test_not_a_zip(self) -> None:
        """Test a non-zip file is rejected."""
        self.archive.write_text("plain text")

        self.assert_rejected(self.run_import(), ErrorKind.ARCHIVE_UNREADABLE)

    def test_missing_file(self) -> None:
        """Test a missing archive is rejected."""
        self.assert_rejected(self.run_import(), ErrorKind.ARCHIVE_UNREADABLE)

    def test_odd_manifest_values(self) -> None:
        """Test mistyped manifest fields do not abort the import."""
        manifest = create_manifest(includes=ManifestIncludes(workspace=True)).to_dict()
        manifest["secretsStripped"] = "several"
        manifest["stats"]["totalFiles"] = "many"
        manifest["includes"]["auth"] = "false"
        archive = write_archive(
            self.archive,
            {"credentials/github.json": "{}", "workspace/SOUL.md": "x"},
            manifest=manifest,
        )

        result = self.run_import(archive)

        self.assertTrue(result.success, result.error)
        self.assertEqual(result.manifest.secrets_stripped, 0)
        self.assertFalse(result.manifest.includes.auth)
        self.assertFalse(self.target.credentials.exists())
        self.assertTrue((self.target_root / "workspace" / "SOUL.md").exists())


class TestImportOptions(ImportTestCase):
    """Tests for dry runs, skips and gating."""

    def test_dry_run_writes_nothing(self) -> None:
        """Test a dry run leaves the target untouched."""
        self.export()

        result = self.run_import(dry_run=True)

        self.assertTrue(result.dry_run)
        self.assertFalse(self.target_root.exists())
        self.assertGreater(result.stats.files_written, 0)

    def test_dry_run_matches_real_run(self) -> None:
        """Test dry-run counts equal the real import's counts."""
        self.export(auth=True)

        preview = self.run_import(dry_run=True)
        result = self.run_import()

        self.assertEqual(preview.stats.files_written, result.stats.files_written)
        self.assertEqual(preview.stats.files_skipped, result.stats.files_skipped)
        self.assertEqual(sorted(n for _, n in preview.actions), sorted(n for _, n in result.actions))

    def test_dry_run_classification(self) -> None:
        """Test entries are classified against the destination."""
        self.export()
        soul = self.target_root / "workspace" / "SOUL.md"
        soul.parent.mkdir(parents=True)
        soul.write_text("mine")

        merge = dict((n, a) for a, n in self.run_import(dry_run=True).actions)
        force = dict((n, a) for a, n in self.run_import(dry_run=True, mode=ImportMode.FORCE).actions)

        self.assertEqual(merge["workspace/SOUL.md"], FileAction.SKIP)
        self.assertEqual(force["workspace/SOUL.md"], FileAction.OVERWRITE)
        self.assertEqual(merge["workspace/skills/weather/SKILL.md"], FileAction.WRITE)

    def test_skip_categories(self) -> None:
        """Test skip flags leave whole categories out."""
        self.export()

        result = self.run_import(skip_workspace=True, skip_cron=True, skip_config=True)

        self.assertFalse((self.target_root / "workspace").exists())
        self.assertFalse(self.target.config.exists())
        self.assertFalse(self.target.cron_jobs.exists())
        self.assertTrue((self.target_root / "agents" / "main" / "agent" / "models.json").exists())
        self.assertFalse(result.plan.workspace)

    def test_skip_agents(self) -> None:
        """Test agents can be skipped."""
        self.export()

        self.run_import(skip_agents=True)

        self.assertFalse((self.target_root / "agents").exists())

    def test_credentials_need_auth_flag(self) -> None:
        """Test credential entries are ignored unless the archive declares auth."""
        archive = write_archive(
            self.archive,
            {"credentials/github.json": "{}", "workspace/SOUL.md": "x"},
            workspace=True,
        )

        result = self.run_import(archive)

        self.assertFalse(self.target.credentials.exists())
        self.assertEqual(result.stats.files_written, 1)

    def test_unsafe_entries_ignored(self) -> None:
        """Test entries escaping the destination are never written."""
        archive = write_archive(
            self.archive,
            {"workspace/../../evil.txt": "x", "agents/../agent/x.md": "x", "workspace/ok.md": "ok"},
            workspace=True,
            agents=["main"],
        )

        result = self.run_import(archive)

        self.assertTrue(result.success)
        self.assertFalse((Path(self.temp_dir) / "evil.txt").exists())
        self.assertTrue((self.target_root / "workspace" / "ok.md").exists())
        self.assertEqual(result.stats.files_written, 1)

    def test_import_archive_wrapper(self) -> None:
        """Test the convenience wrapper."""
        self.export()

        result = import_archive(self.archive, self.target)

        self.assertTrue(result.success)
        self.assertTrue((self.target_root / "workspace" / "SOUL.md").exists())

    def test_import_archive_detects_target(self) -> None:
        """Test the wrapper imports into the detected state directory."""
        self.export()
        self.target_root.mkdir()
        (self.target_root / "openclaw.json").write_text("{}")

        with patch.dict(os.environ, {STATE_DIR_ENV: str(self.target_root)}):
            result = import_archive(self.archive)

        self.assertTrue(result.success, result.error)
        self.assertTrue((self.target_root / "workspace" / "SOUL.md").exists())

    def test_import_archive_no_installation(self) -> None:
        """Test a missing destination is reported before the archive is read."""
        home = Path(self.temp_dir) / "home"
        home.mkdir()

        with patch.dict(os.environ, {}, clear=True):
            with patch("pathlib.Path.home", return_value=home):
                result = import_archive(self.archive)

        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.ENVIRONMENT_NOT_FOUND)
        self.assertIsNone(result.manifest)


class TestEntryMapping(unittest.TestCase):
    """Tests for map_entry_to_target()."""

    def setUp(self) -> None:
        """Set up target paths."""
        self.root = Path("/srv/openclaw")
        self.paths = derive_paths(self.root)

    def test_mappings(self) -> None:
        """Test each category prefix."""
        cases = {
            "config/openclaw.json": self.root / "openclaw.json",
            "cron/jobs.json": self.root / "cron" / "jobs.json",
            "workspace/skills/a/SKILL.md": self.root / "workspace" / "skills" / "a" / "SKILL.md",
            "agents/main/models.json": self.root / "agents" / "main" / "agent" / "models.json",
            "credentials/github.json": self.root / "credentials" / "github.json",
        }
        for entry, expected in cases.items():
            self.assertEqual(map_entry_to_target(entry, self.paths), expected, entry)

    def test_unmapped(self) -> None:
        """Test reserved, unknown and unsafe names map to nothing."""
        for entry in (
            "manifest.json",
            "SECRETS_TEMPLATE.json",
            "other/file.txt",
            "workspace/",
            "workspace/../x",
            "agents/main",
            "agents/../x/y",
            "/etc/passwd",
        ):
            self.assertIsNone(map_entry_to_target(entry, self.paths), entry)


if __name__ == "__main__":
    unittest.main()
