"""Exit codes shared by CLI commands."""

EXIT_SUCCESS = 0
EXIT_FAILURE = 1   # operation ran but did not succeed
EXIT_ERROR = 2     # configuration, guard or unexpected error
