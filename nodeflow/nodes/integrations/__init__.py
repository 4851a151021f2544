"""Integration nodes - external services and APIs."""

from .http_request import HttpRequestNode

__all__ = ["HttpRequestNode"]
