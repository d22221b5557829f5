"""Automated review of pull requests against repository review instructions."""

__version__ = "0.3.0"
