"""statuscheck: probe HTTP(S) endpoints and classify them healthy, degraded or down."""

from .checks import CHECKER_TYPES, HTTPChecker, load_checkers, new_checker
from .errors import ConfigurationError
from .results import Attempt, Result, Stats, Status
