"""ghdeploy: trigger GitHub deployments and keep the tool itself up to date."""

__version__ = "0.1.0"
