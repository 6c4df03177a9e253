"""
Tests for the infraforge CLI commands.
"""

import importlib
import subprocess
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from infraforge.cli import main
from infraforge.cli.pipeline import UnknownKindError, render_document, write_tree
from infraforge.errors import CommitError


@pytest.fixture(autouse=True)
def keep_logging(monkeypatch):
    """Commands configure the root logger; leave pytest's handlers alone."""
    monkeypatch.setattr("infraforge.cli.core.configure_logging", lambda *a, **k: None)
    # ``infraforge.cli.pipeline`` as an attribute is the click command, so patch the module object.
    pipeline_module = importlib.import_module("infraforge.cli.pipeline")
    monkeypatch.setattr(pipeline_module, "configure_logging", lambda *a, **k: None)


@pytest.fixture
def runner():
    return CliRunner()


def write_claim(path, kind, spec, name="demo"):
    path.write_text(yaml.safe_dump({
        "apiVersion": "platform.infraforge.io/v1",
        "kind": kind,
        "metadata": {"name": name},
        "spec": spec,
    }))
    return path


class TestRenderDocument:
    def test_platform_claim_tenant_falls_back_to_name(self, config, platform_claim_spec):
        rendered = render_document(
            {"kind": "PlatformClaim", "metadata": {"name": "core"}, "spec": platform_claim_spec},
            config,
        )
        assert rendered.metadata() == {
            "name": "core-dev",
            "labels": {"tenant": "core", "environment": "dev", "managed-by": "infraforge"},
        }

    def test_application_claim_tenant_is_team(self, config, application_claim_spec):
        rendered = render_document({"kind": "ApplicationClaim", "spec": application_claim_spec}, config)
        assert rendered.metadata()["name"] == "team-a-prod"

    def test_bootstrap_includes_setup(self, config, bootstrap_claim_spec):
        rendered = render_document({"kind": "BootstrapClaim", "spec": bootstrap_claim_spec}, config)
        assert "argocd-setup/README.md" in rendered.files
        assert rendered.environment == "nonprod"

    def test_unknown_kind(self, config):
        with pytest.raises(UnknownKindError):
            render_document({"kind": "Widget"}, config)


class TestPipelineCommand:
    def test_writes_tree_and_metadata(self, runner, tmp_path, platform_claim_spec):
        claim = write_claim(tmp_path / "object.yaml", "PlatformClaim", platform_claim_spec, "core")
        output = tmp_path / "out"

        result = runner.invoke(main, ["pipeline", "--input", str(claim), "--output", str(output)])

        assert result.exit_code == 0, result.output
        assert (output / "appsets/nonprod/platform/dev-platform-appset.yaml").exists()
        metadata = yaml.safe_load((output / "metadata.yaml").read_text())
        assert metadata["labels"]["tenant"] == "core"

    def test_environment_variables(self, runner, tmp_path, monkeypatch):
        claim = write_claim(tmp_path / "object.yaml", "InfraForge", {"tenant": "acme", "environment": "dev"})
        monkeypatch.setenv("KRATIX_INPUT_PATH", str(claim))
        monkeypatch.setenv("KRATIX_OUTPUT_PATH", str(tmp_path / "out"))

        result = runner.invoke(main, ["pipeline"])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "out/argocd/dev/project.yaml").exists()

    def test_invalid_claim_exits_nonzero(self, runner, tmp_path):
        claim = write_claim(tmp_path / "object.yaml", "ApplicationClaim", {
            "environment": "dev",
            "owner": {"team": "a"},
            "components": [{"type": "cassandra", "name": "c"}],
        })
        result = runner.invoke(main, ["pipeline", "--input", str(claim), "--output", str(tmp_path / "out")])
        assert result.exit_code == 1
        assert "unsupported component type: cassandra" in result.output

    def test_missing_input(self, runner, tmp_path):
        result = runner.invoke(main, ["pipeline", "--input", str(tmp_path / "nope.yaml"),
                                      "--output", str(tmp_path / "out")])
        assert result.exit_code == 1

    def test_service_name_cannot_escape_output(self, runner, tmp_path, platform_claim_spec):
        platform_claim_spec["services"][0]["name"] = "../../../../../escaped"
        claim = write_claim(tmp_path / "object.yaml", "PlatformClaim", platform_claim_spec)
        output = tmp_path / "a" / "b" / "out"

        result = runner.invoke(main, ["pipeline", "--input", str(claim), "--output", str(output)])

        assert result.exit_code == 1
        assert "RFC 1123 label" in result.output
        assert not list(tmp_path.rglob("values.yaml"))


class TestWriteTree:
    def test_writes_nested_files(self, tmp_path):
        write_tree(tmp_path, {"a/b/c.yaml": "x: 1\n"})
        assert (tmp_path / "a/b/c.yaml").read_text() == "x: 1\n"

    @pytest.mark.parametrize("path", ["../escaped.yaml", "a/../../escaped.yaml", "/etc/escaped.yaml"])
    def test_refuses_paths_outside_output(self, tmp_path, path):
        """Nothing is written when any path leaves the output directory."""
        output = tmp_path / "out"
        with pytest.raises(CommitError, match="refusing to write outside"):
            write_tree(output, {"a.yaml": "ok\n", path: "bad\n"})
        assert not output.exists()
        assert not (tmp_path / "escaped.yaml").exists()


class TestRenderCommand:
    def test_prints_tree(self, runner, tmp_path, platform_claim_spec):
        claim = write_claim(tmp_path / "claim.yaml", "PlatformClaim", platform_claim_spec)
        result = runner.invoke(main, ["render", str(claim)])
        assert result.exit_code == 0, result.output
        assert "--- appsets/nonprod/platform/dev-platform-appset.yaml" in result.output
        assert "kind: ApplicationSet" in result.output

    def test_writes_directory(self, runner, tmp_path, platform_claim_spec):
        claim = write_claim(tmp_path / "claim.yaml", "PlatformClaim", platform_claim_spec)
        result = runner.invoke(main, ["render", str(claim), "-o", str(tmp_path / "tree")])
        assert result.exit_code == 0
        assert "Wrote 3 file(s)" in result.output

    def test_bad_document(self, runner, tmp_path):
        claim = tmp_path / "claim.yaml"
        claim.write_text("- just\n- a list\n")
        result = runner.invoke(main, ["render", str(claim)])
        assert result.exit_code == 1
        assert "does not contain a YAML mapping" in result.output


class TestControllerCommand:
    def test_requires_kopf(self, runner):
        with patch("infraforge.cli.core.shutil.which", return_value=None):
            result = runner.invoke(main, ["controller"])
        assert result.exit_code == 1
        assert "kopf not found in PATH" in result.output

    def test_runs_kopf(self, runner):
        completed = subprocess.CompletedProcess(args=[], returncode=0)
        with patch("infraforge.cli.core.shutil.which", return_value="/usr/bin/kopf"), \
                patch("infraforge.cli.core.subprocess.run", return_value=completed) as run:
            result = runner.invoke(main, ["controller", "--namespace", "team-a", "--quiet",
                                          "--kubeconfig", "/tmp/kc"])

        assert result.exit_code == 0, result.output
        cmd = run.call_args.args[0]
        assert cmd == ["kopf", "run", "-m", "infraforge.operator", "--namespace", "team-a"]
        assert run.call_args.kwargs["env"]["INFRAFORGE_KUBECONFIG"] == "/tmp/kc"

    def test_all_namespaces_by_default(self, runner, monkeypatch):
        monkeypatch.delenv("KUBECONFIG", raising=False)
        completed = subprocess.CompletedProcess(args=[], returncode=3)
        with patch("infraforge.cli.core.shutil.which", return_value="/usr/bin/kopf"), \
                patch("infraforge.cli.core.subprocess.run", return_value=completed) as run:
            result = runner.invoke(main, ["controller"])

        assert run.call_args.args[0][-2:] == ["--verbose", "--all-namespaces"]
        assert result.exit_code == 1
        assert "Exit code: 3" in result.output
