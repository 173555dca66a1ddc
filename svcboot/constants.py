"""Infrastructure and technical constants."""

from typing import Final

DEFAULT_HOST: Final = "0.0.0.0"
DEFAULT_PORT: Final = 5001
DEFAULT_BODY_LIMIT: Final = "50mb"
DEFAULT_REQUEST_TIMEOUT_SECONDS: Final = 30.0
DEFAULT_DATABASE_ENV_VAR: Final = "DB_URL"
DEFAULT_ENV_FILE: Final = ".env"
DEFAULT_METRICS_PORT: Final = 8080

# Matches the extended query-string parser's default nesting depth
MAX_FORM_DEPTH: Final = 5
# Bracket indices above this stay object keys
MAX_FORM_ARRAY_INDEX: Final = 20

VERSION: Final = "0.1.0"
