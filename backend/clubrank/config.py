import logging
import os

logger = logging.getLogger(__name__)


def _canon_prefix(val):
    """
    Normalize API prefix to always be exactly like '/api':
      - defaults to '/api' when unset/empty
      - ensures a single leading slash
      - removes any trailing slash (except for root)
    """
    val = (val or "/api").strip()
    if not val.startswith("/"):
        val = "/" + val
    if len(val) > 1 and val.endswith("/"):
        val = val[:-1]
    return val


API_PREFIX = _canon_prefix(os.getenv("API_PREFIX"))

DEFAULT_K_FACTOR = 32
DEFAULT_STARTING_RATING = 1200
STORE_BACKENDS = ("memory", "sql")


def _parse_int_env(env_var: str, default: int, *, minimum: int = 0) -> int:
    raw_value = os.getenv(env_var)
    if raw_value is None or not raw_value.strip():
        return default

    try:
        value = int(raw_value)
    except ValueError:
        logger.warning(
            "%s is not a valid integer (got %r); defaulting to %d",
            env_var,
            raw_value,
            default,
        )
        return default

    if value < minimum:
        logger.warning(
            "%s cannot be below %d; defaulting to %d", env_var, minimum, default
        )
        return default

    return value


def rating_k_factor() -> int:
    return _parse_int_env("RATING_K_FACTOR", DEFAULT_K_FACTOR, minimum=1)


def starting_rating() -> int:
    return _parse_int_env("RATING_DEFAULT", DEFAULT_STARTING_RATING)


def database_url() -> str | None:
    """Return ``DATABASE_URL`` as configured, or ``None`` when unset."""

    url = (os.getenv("DATABASE_URL") or "").strip()
    return url or None


def store_backend_name() -> str:
    """Pick the store backend: ``STORE_BACKEND`` wins, else SQL iff a DB is configured."""

    raw = (os.getenv("STORE_BACKEND") or "").strip().lower()
    if raw:
        if raw not in STORE_BACKENDS:
            raise RuntimeError(
                f"STORE_BACKEND must be one of: {', '.join(STORE_BACKENDS)}"
            )
        return raw
    return "sql" if database_url() else "memory"


def get_jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        raise RuntimeError("JWT_SECRET environment variable is required")
    if len(secret) < 32 or secret.lower() in {"secret", "changeme", "default"}:
        raise RuntimeError(
            "JWT_SECRET must be at least 32 characters and not a common default"
        )
    return secret


def jwt_algorithm() -> str:
    return (os.getenv("JWT_ALGORITHM") or "HS256").strip()


def jwt_audience() -> str | None:
    return (os.getenv("JWT_AUDIENCE") or "").strip() or None
