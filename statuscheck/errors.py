"""Errors raised by statuscheck."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """A check cannot be attempted at all (bad URL, bad CA bundle, bad checks file).

    Endpoint failures are never raised; they are recorded on the result.
    """
