"""GitHub API access."""

from ghdeploy.github.client import GitHubClient

__all__ = ["GitHubClient"]
