"""Kinde portal: a demo web app that signs users in through Kinde."""

__version__ = "0.1.0"
