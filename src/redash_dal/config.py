from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from redash_dal.errors import ConfigurationError
from redash_dal.util.env import get_env_float, get_env_int, get_env_str

DEFAULT_PORT = 80
DEFAULT_HTTP_TIMEOUT_SECS = 30.0
DEFAULT_POLL_INTERVAL_SECS = 5.0
DEFAULT_MAX_POLL_ATTEMPTS = 60

URL_SCHEMES = {"redash": "http", "redash+https": "https"}
API_KEY_PARAM = "apiKey"


@dataclass(frozen=True)
class RedashConfig:
    """Configuration required for Redash API access."""

    host: str
    api_key: str
    port: int = DEFAULT_PORT
    scheme: str = "http"
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECS
    max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS

    def __post_init__(self) -> None:
        """Validate the connection target."""
        if not self.host or not self.host.strip():
            raise ConfigurationError("Redash host is required.")
        if not self.api_key:
            raise ConfigurationError("API key is required for a Redash connection.")
        try:
            port = int(self.port)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid Redash port: {self.port!r}.") from None
        if not 0 < port < 65536:
            raise ConfigurationError(f"Invalid Redash port: {self.port}.")
        if self.scheme not in ("http", "https"):
            raise ConfigurationError(f"Unsupported Redash scheme: {self.scheme}.")
        if self.poll_interval_seconds < 0:
            raise ConfigurationError("Poll interval must not be negative.")
        if self.max_poll_attempts <= 0:
            raise ConfigurationError("Max poll attempts must be positive.")

    @property
    def base_url(self) -> str:
        """Return the API root URL for this target."""
        return f"{self.scheme}://{self.host}:{self.port}/api"

    @classmethod
    def from_env(cls) -> "RedashConfig":
        """Load Redash config from environment variables."""
        host = get_env_str("REDASH_HOST")
        api_key = get_env_str("REDASH_API_KEY")

        missing = [
            name
            for name, value in {
                "REDASH_HOST": host,
                "REDASH_API_KEY": api_key,
            }.items()
            if not value
        ]
        if missing:
            missing_list = ", ".join(missing)
            raise ConfigurationError(
                f"Redash connection missing required config: {missing_list}. "
                "Set REDASH_HOST and REDASH_API_KEY."
            )

        return cls(
            host=host,
            api_key=api_key,
            port=get_env_int("REDASH_PORT", DEFAULT_PORT),
            scheme=get_env_str("REDASH_SCHEME", "http"),
            http_timeout_seconds=get_env_float(
                "REDASH_HTTP_TIMEOUT_SECS", DEFAULT_HTTP_TIMEOUT_SECS
            ),
        )

    @classmethod
    def from_url(cls, url: str, api_key: Optional[str] = None) -> "RedashConfig":
        """Parse ``redash://host[:port][/][?apiKey=...]`` into a config.

        An ``apiKey`` query parameter wins over the ``api_key`` argument. A
        leading ``jdbc:`` prefix is accepted for connection strings copied
        from JDBC tooling.
        """
        if not url or not isinstance(url, str):
            raise ConfigurationError("Redash connection URL is required.")
        raw = url.strip()
        if raw.lower().startswith("jdbc:"):
            raw = raw[len("jdbc:") :]

        parts = urlsplit(raw)
        scheme = URL_SCHEMES.get(parts.scheme.lower())
        if scheme is None or not parts.hostname:
            raise ConfigurationError(f"Invalid Redash connection URL: {url}")
        if parts.path not in ("", "/"):
            raise ConfigurationError(f"Invalid Redash connection URL: {url}")
        try:
            port = DEFAULT_PORT if parts.port is None else parts.port
        except ValueError:
            raise ConfigurationError(f"Invalid Redash connection URL: {url}") from None

        url_key = None
        key_values = parse_qs(parts.query).get(API_KEY_PARAM)
        if key_values:
            url_key = key_values[0]

        return cls(
            host=parts.hostname,
            api_key=url_key or api_key or "",
            port=port,
            scheme=scheme,
        )
