"""Command-line entry point for ``deploy``.

Usage:
    deploy --env staging                          # current repo, current branch
    deploy --env staging --ref v1.4.0             # current repo, explicit ref
    deploy --env production --ref main owner/app  # another repo
    deploy --env staging --force                  # ignore commit status checks
    deploy update                                 # replace this executable
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from ghdeploy import __version__
from ghdeploy.config import Settings, get_settings
from ghdeploy.constants import DEFAULT_DESCRIPTION
from ghdeploy.deploy import DeploymentSubmitter, DeploymentWatcher, RefResolver, StatusGate
from ghdeploy.errors import ConfigurationError, DeployToolError, failure_stage
from ghdeploy.github.client import GitHubClient
from ghdeploy.logging import get_logger, setup_logging
from ghdeploy.models import DeployRequest
from ghdeploy.updater import ReleaseUpdater, detect_platform_tag
from ghdeploy.updater.manager import current_executable

log = get_logger("ghdeploy.cli")


def build_deploy_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deploy",
        description="A CLI tool to trigger GitHub deployments",
        epilog="Run 'deploy update' to update this tool to the latest release.",
    )
    parser.add_argument(
        "repository",
        nargs="?",
        help="The repository you want to deploy to. Defaults to current repository",
    )
    parser.add_argument(
        "-r",
        "--ref",
        "--branch",
        "--commit",
        "--tag",
        dest="ref",
        help="The git ref to deploy. Can be a git commit, branch, or tag. "
        "Required when <repository> is specified.",
    )
    parser.add_argument(
        "-e", "--env", "--environment", dest="env", required=True, help="The environment to deploy to"
    )
    parser.add_argument("-f", "--force", action="store_true", help="Ignore commit status checks")
    parser.add_argument(
        "-d", "--detached", action="store_true", help="Don't wait for the deployment to complete"
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Silence any output to STDOUT")
    parser.add_argument(
        "--description", default=DEFAULT_DESCRIPTION, help="Description stored on the deployment"
    )
    parser.add_argument("-V", "--version", action="version", version=f"deploy {__version__}")
    return parser


def build_update_parser() -> argparse.ArgumentParser:
    return argparse.ArgumentParser(
        prog="deploy update",
        description="Update deploy to the latest published release",
    )


def _printer(quiet: bool) -> Callable[[str], None]:
    def say(message: str) -> None:
        if not quiet:
            print(message, flush=True)

    return say


def _fail(message: str) -> int:
    print(f"error: {message}", file=sys.stderr)
    return 1


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigurationError(f"Invalid setting {field}: {first.get('msg')}") from exc


def _require_token(settings: Settings) -> str:
    if settings.github_token is None or not settings.github_token.get_secret_value():
        raise ConfigurationError("Missing GITHUB_TOKEN. Please set this environment variable.")
    return settings.github_token.get_secret_value()


def _build_client(settings: Settings) -> GitHubClient:
    return GitHubClient(
        _require_token(settings),
        base_url=settings.github_api_url,
        timeout=settings.http_timeout,
    )


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


def deploy_command(args: argparse.Namespace, settings: Settings) -> int:
    say = _printer(args.quiet)

    with failure_stage("resolution"):
        repository, ref = RefResolver(host=settings.github_host).resolve(
            args.repository, args.ref
        )
        request = DeployRequest(
            repository=repository,
            ref=ref,
            environment=args.env,
            force_status_override=args.force,
            description=args.description,
        )

    with _build_client(settings) as client:
        gate = StatusGate(client)
        result = gate.check(repository, ref, args.force)
        if not gate.permits(result, args.force):
            return _fail(
                f"status check failed: commit status for {ref} is '{result.value}'; "
                "use --force to deploy anyway"
            )

        submitter = DeploymentSubmitter(client)
        previous = submitter.previous_sha(repository, args.env)
        if previous:
            say(
                f"See commit difference at {settings.github_web_url}/{repository}"
                f"/compare/{previous}...{ref}"
            )

        say("Triggering deployment")
        outcome = submitter.submit(request)
        if not outcome.accepted:
            return _fail(f"submission failed: deployment rejected: {outcome.message}")
        say(outcome.message)

        if args.detached or outcome.deployment_id is None:
            return 0

        watcher = DeploymentWatcher(
            client,
            poll_interval=settings.watch_poll_interval,
            timeout=settings.watch_timeout,
        )
        prefix = f"[{args.env}:{outcome.deployment_id}]"
        final = watcher.wait(
            repository, outcome.deployment_id, on_progress=lambda msg: say(f"{prefix} {msg}")
        )

    if final.succeeded:
        say(f"{prefix} Done!")
        return 0
    if final.state is None:
        return _fail(f"watch failed: {final.description}")
    return _fail(
        f"Deployment finished with {final.state.value}. "
        f"{final.description or 'No description given'}"
    )


def update_command(args: argparse.Namespace, settings: Settings) -> int:
    executable = (
        Path(settings.executable_path) if settings.executable_path else current_executable()
    )
    platform_tag = detect_platform_tag()

    with _build_client(settings) as client:
        updater = ReleaseUpdater(
            client,
            release_repo=settings.release_repo,
            bin_name=settings.bin_name,
            executable_path=executable,
        )
        outcome = updater.update(__version__, platform_tag)

    if outcome.replaced and not outcome.verified:
        print(
            f"warning: release {outcome.new_version} publishes no checksum; "
            "the download was not verified",
            file=sys.stderr,
        )
    print(f"Update status: `{outcome.new_version}`!")
    if not outcome.replaced:
        print(f"Already up to date ({outcome.previous_version}).")
    return 0


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, run the command and return the exit code."""
    argv = list(sys.argv[1:] if argv is None else argv)

    command: Callable[[argparse.Namespace, Settings], int]
    if argv[:1] == ["update"]:
        args = build_update_parser().parse_args(argv[1:])
        command = update_command
    else:
        parser = build_deploy_parser()
        args = parser.parse_args(argv)
        if args.repository and not args.ref:
            parser.error("--ref is required when a repository is specified")
        command = deploy_command

    try:
        settings = _load_settings()
    except ConfigurationError as exc:
        # Logging is configured from settings, so nothing may log here.
        return _fail(exc.describe())

    setup_logging()
    try:
        return command(args, settings)
    except DeployToolError as exc:
        log.debug("command_failed", error=exc.describe())
        return _fail(exc.describe())


def run() -> None:
    """Run the application."""
    sys.exit(main())


if __name__ == "__main__":
    run()
