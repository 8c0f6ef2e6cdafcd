"""Tests for the command-line interface."""

import hashlib
import json
import sys
from pathlib import Path

import pytest
import structlog

import ghdeploy.__main__
from ghdeploy import __version__
from ghdeploy.cli import build_deploy_parser, main

REPO_PATH = "/repos/keelerm84/deploy"
ARGS = ["--ref=main", "--env=staging", "keelerm84/deploy"]


@pytest.fixture
def gh(fake_github, monkeypatch):
    """Route the CLI through the fake API."""
    monkeypatch.setenv("GITHUB_TOKEN", "test-token")
    monkeypatch.setattr("ghdeploy.cli._build_client", lambda settings: fake_github.client())
    return fake_github


def _happy_path(fake_github, status_state="success", final_state="success"):
    fake_github.add(
        "GET",
        f"{REPO_PATH}/commits/main/status",
        json={"state": status_state, "total_count": 1, "statuses": [{"state": status_state}]},
    )
    fake_github.add("GET", f"{REPO_PATH}/deployments", json=[])
    fake_github.add("GET", REPO_PATH, json={"default_branch": "main"})
    fake_github.add("GET", f"{REPO_PATH}/commits/main", json={"sha": "abc123"})
    fake_github.add(
        "POST", f"{REPO_PATH}/deployments", status=201, json={"id": 789, "sha": "abc123"}
    )
    fake_github.add(
        "GET", f"{REPO_PATH}/deployments/789/statuses", json=[{"state": final_state}]
    )


class TestDeployParser:
    """Argument parsing."""

    @pytest.mark.parametrize("flag", ["-r", "--ref", "--branch", "--commit", "--tag"])
    def test_ref_aliases(self, flag):
        args = build_deploy_parser().parse_args(["-e", "prod", flag, "v1.0.0"])
        assert args.ref == "v1.0.0"

    def test_defaults(self):
        args = build_deploy_parser().parse_args(["--environment", "prod"])
        assert args.repository is None
        assert args.ref is None
        assert not args.force
        assert not args.detached
        assert not args.quiet

    def test_environment_required(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_deploy_parser().parse_args(["--ref", "main"])
        assert exc_info.value.code == 2

    def test_repository_requires_ref(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--env", "staging", "keelerm84/deploy"])
        assert exc_info.value.code == 2
        assert "--ref is required" in capsys.readouterr().err

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestDeployCommand:
    """The deploy flow end to end against a fake API."""

    def test_success(self, gh, capsys):
        _happy_path(gh)

        assert main(ARGS) == 0

        out = capsys.readouterr().out
        assert "Triggering deployment" in out
        assert "Created deployment 789 of main to staging" in out
        assert "[staging:789] Done!" in out

    def test_missing_token(self, capsys):
        assert main(ARGS) == 1
        assert "Missing GITHUB_TOKEN" in capsys.readouterr().err

    def test_invalid_setting(self, monkeypatch, capsys):
        monkeypatch.setenv("WATCH_TIMEOUT", "-1")

        assert main(ARGS) == 1
        assert "Invalid setting watch_timeout" in capsys.readouterr().err

    def test_invalid_setting_keeps_stdout_clean(self, monkeypatch, capsys):
        structlog.reset_defaults()
        monkeypatch.setenv("HTTP_TIMEOUT", "0")

        assert main(ARGS) == 1

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "Invalid setting http_timeout" in captured.err

    def test_failing_status_blocks(self, gh, capsys):
        _happy_path(gh, status_state="failure")

        assert main(ARGS) == 1

        err = capsys.readouterr().err
        assert "status check failed" in err
        assert "'failure'" in err
        assert gh.calls("POST", f"{REPO_PATH}/deployments") == []

    def test_force_overrides_status(self, gh):
        _happy_path(gh, status_state="pending")

        assert main([*ARGS, "--force"]) == 0

        (post,) = gh.calls("POST", f"{REPO_PATH}/deployments")
        payload = json.loads(post.read())
        assert payload["required_contexts"] == []
        assert payload["ref"] == "abc123"

    def test_status_api_error(self, gh, capsys):
        gh.add("GET", f"{REPO_PATH}/commits/main/status", status=500, text="boom")

        assert main(ARGS) == 1
        assert "status check failed: GitHub API returned 500: boom" in capsys.readouterr().err

    def test_conflict_rejected(self, gh, capsys):
        _happy_path(gh)
        gh.routes[("POST", f"{REPO_PATH}/deployments")] = []
        gh.add(
            "POST",
            f"{REPO_PATH}/deployments",
            status=409,
            json={"message": "Conflict: Commit status checks failed for main."},
        )

        assert main(ARGS) == 1
        assert (
            "deployment rejected: Conflict: Commit status checks failed for main."
            in capsys.readouterr().err
        )

    def test_detached_does_not_watch(self, gh):
        _happy_path(gh)

        assert main([*ARGS, "--detached"]) == 0
        assert gh.calls("GET", f"{REPO_PATH}/deployments/789/statuses") == []

    def test_quiet(self, gh, capsys):
        _happy_path(gh)

        assert main([*ARGS, "-q"]) == 0
        assert capsys.readouterr().out == ""

    def test_compare_url_from_previous_deployment(self, gh, capsys):
        _happy_path(gh)
        gh.routes[("GET", f"{REPO_PATH}/deployments")] = []
        gh.add("GET", f"{REPO_PATH}/deployments", json=[{"id": 1, "sha": "0ld5ha"}])

        assert main(ARGS) == 0
        assert (
            "See commit difference at https://github.com/keelerm84/deploy/compare/0ld5ha...main"
            in capsys.readouterr().out
        )

    def test_failed_deployment(self, gh, capsys):
        _happy_path(gh, final_state="failure")

        assert main(ARGS) == 1
        assert (
            "Deployment finished with failure. No description given"
            in capsys.readouterr().err
        )


class TestUpdateCommand:
    """``deploy update``."""

    TAG = "x86_64-unknown-linux-gnu"

    @pytest.fixture
    def exe(self, tmp_path, monkeypatch):
        path = tmp_path / "deploy"
        path.write_bytes(b"old")
        path.chmod(0o755)
        monkeypatch.setenv("EXECUTABLE_PATH", str(path))
        monkeypatch.setattr("ghdeploy.cli.detect_platform_tag", lambda: self.TAG)
        return path

    def test_installs_newer_release(self, gh, exe, capsys):
        binary = b"brand new"
        gh.add(
            "GET",
            f"{REPO_PATH}/releases/latest",
            json={
                "tag_name": "v99.0.0",
                "assets": [
                    {
                        "name": f"deploy-{self.TAG}",
                        "browser_download_url": f"https://github.com/dl/deploy-{self.TAG}",
                        "digest": f"sha256:{hashlib.sha256(binary).hexdigest()}",
                    }
                ],
            },
        )
        gh.add("GET", f"/dl/deploy-{self.TAG}", content=binary)

        assert main(["update"]) == 0

        captured = capsys.readouterr()
        assert "Update status: `99.0.0`!" in captured.out
        assert "was not verified" not in captured.err
        assert exe.read_bytes() == binary

    def test_already_up_to_date(self, gh, exe, capsys):
        gh.add("GET", f"{REPO_PATH}/releases/latest", json={"tag_name": f"v{__version__}"})

        assert main(["update"]) == 0
        assert "Already up to date" in capsys.readouterr().out
        assert exe.read_bytes() == b"old"

    def test_runs_without_git(self, gh, exe, monkeypatch):
        monkeypatch.setitem(sys.modules, "git", None)
        gh.add("GET", f"{REPO_PATH}/releases/latest", json={"tag_name": f"v{__version__}"})

        assert main(["update"]) == 0

    def test_refuses_to_replace_package_source(self, gh, exe, monkeypatch, capsys):
        monkeypatch.delenv("EXECUTABLE_PATH")
        monkeypatch.setattr(sys, "argv", [ghdeploy.__main__.__file__, "update"])
        main_py = Path(ghdeploy.__main__.__file__).read_bytes()

        assert main(["update"]) == 1

        assert "set EXECUTABLE_PATH" in capsys.readouterr().err
        assert gh.requests == []
        assert Path(ghdeploy.__main__.__file__).read_bytes() == main_py

    def test_unverified_install_warns(self, gh, exe, capsys):
        gh.add(
            "GET",
            f"{REPO_PATH}/releases/latest",
            json={
                "tag_name": "v99.0.0",
                "assets": [
                    {
                        "name": f"deploy-{self.TAG}",
                        "browser_download_url": f"https://github.com/dl/deploy-{self.TAG}",
                    }
                ],
            },
        )
        gh.add("GET", f"/dl/deploy-{self.TAG}", content=b"new")

        assert main(["update"]) == 0
        assert "was not verified" in capsys.readouterr().err

    def test_no_release(self, gh, exe, capsys):
        assert main(["update"]) == 1
        assert "fetch failed" in capsys.readouterr().err
        assert exe.read_bytes() == b"old"
