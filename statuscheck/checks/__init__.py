"""Checkers: HTTP endpoint check, its transport and the checker registry."""

from .http_check import HTTPChecker, conclude
from .registry import CHECKER_TYPES, load_checkers, new_checker
from .transport import TransportPolicy, build_client, build_ssl_context, default_policy, parse_target
