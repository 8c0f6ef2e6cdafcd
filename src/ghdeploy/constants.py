"""Centralized constants for ghdeploy."""

# GitHub
GITHUB_API_URL = "https://api.github.com"
GITHUB_WEB_URL = "https://github.com"
GITHUB_HOST = "github.com"
GITHUB_MEDIA_TYPE = "application/vnd.github+json"
GITHUB_API_VERSION = "2022-11-28"

# Where the tool's own releases are published
RELEASE_REPO = "keelerm84/deploy"
BIN_NAME = "deploy"

# HTTP timeouts (seconds)
HTTP_TIMEOUT = 30.0
DOWNLOAD_CHUNK_SIZE = 64 * 1024

# Deployment watching (seconds)
WATCH_POLL_INTERVAL = 1.0
WATCH_TIMEOUT = 1800.0

DEFAULT_DESCRIPTION = "Deployment triggered from the deploy CLI"
