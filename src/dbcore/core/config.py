"""Connection configuration for dbcore.

Structured connection configs, DSN parsing/resolution, environment
discovery, and engine settings.

Resolution is pure: nothing here performs I/O against a backend. TLS
file existence is checked lazily by the backend client at connect time.
"""

from __future__ import annotations

import os
import uuid
from enum import StrEnum
from typing import Any
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlsplit

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from dbcore.core.exceptions import ConfigError

DEFAULT_ENV_VAR = "DATABASE_URL"

_PG_ENV_VARS: dict[str, str] = {
    "PGHOST": "host",
    "PGPORT": "port",
    "PGDATABASE": "database",
    "PGUSER": "username",
    "PGPASSWORD": "password",  # pragma: allowlist secret
}

_SETTINGS_ENV_PREFIX = "DBCORE_"

_SSL_MODES = frozenset(
    {"disable", "allow", "prefer", "require", "verify-ca", "verify-full"}
)

# Query parameters that describe TLS rather than free-form driver options.
_TLS_PARAMS: dict[str, str] = {
    "sslmode": "mode",
    "sslrootcert": "root_cert",
    "sslcert": "client_cert",
    "sslkey": "client_key",
}


class BackendKind(StrEnum):
    POSTGRES = "postgres"
    MYSQL = "mysql"
    SQLITE = "sqlite"


_SCHEMES: dict[str, BackendKind] = {
    "postgres": BackendKind.POSTGRES,
    "postgresql": BackendKind.POSTGRES,
    "mysql": BackendKind.MYSQL,
    "mariadb": BackendKind.MYSQL,
    "sqlite": BackendKind.SQLITE,
}

DEFAULT_PORTS: dict[BackendKind, int | None] = {
    BackendKind.POSTGRES: 5432,
    BackendKind.MYSQL: 3306,
    BackendKind.SQLITE: None,
}


class TlsConfig(BaseModel):
    enabled: bool = False
    mode: str | None = None
    root_cert: str | None = None
    client_cert: str | None = None
    client_key: str | None = None

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str | None) -> str | None:
        if v is not None and v not in _SSL_MODES:
            msg = f"Invalid sslmode: '{v}'. Must be one of: {', '.join(sorted(_SSL_MODES))}"
            raise ValueError(msg)
        return v

    @property
    def effective_mode(self) -> str | None:
        """The sslmode to hand to the driver, or None to use its default."""
        if self.mode:
            return self.mode
        return "require" if self.enabled else None


class ConnectionConfig(BaseModel):
    """A named connection to one backend.

    Either ``connection_string`` or the discrete fields (host, database, ...)
    must resolve to a DSN. ``id`` is fixed once the config exists.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, frozen=True)
    name: str = ""
    backend: BackendKind = BackendKind.POSTGRES
    connection_string: str | None = None
    host: str | None = None
    port: int | None = None
    database: str | None = None
    username: str | None = None
    password: str | None = None
    options: dict[str, str] = {}
    tls: TlsConfig | None = None

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int | None) -> int | None:
        if v is not None and not (1 <= v <= 65535):
            msg = f"Invalid port: {v}. Must be 1-65535"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def default_name(self) -> ConnectionConfig:
        if not self.name:
            if self.backend is BackendKind.SQLITE:
                self.name = f"SQLite: {self.database or ''}"
            elif self.database or self.host:
                self.name = f"{self.database or ''} on {self.host or 'localhost'}"
        return self

    @property
    def effective_port(self) -> int | None:
        return self.port if self.port is not None else DEFAULT_PORTS[self.backend]

    def redacted(self) -> ConnectionConfig:
        """Copy with the password masked, for logs and display."""
        if self.password is None and not self.connection_string:
            return self
        update: dict[str, Any] = {}
        if self.password is not None:
            update["password"] = "****"  # pragma: allowlist secret
        if self.connection_string:
            update["connection_string"] = _redact_dsn(self.connection_string)
        return self.model_copy(update=update)


class ClientSettings(BaseModel):
    """Engine knobs shared by every client a registry creates."""

    model_config = ConfigDict(frozen=True)

    pool_min_size: int = 1
    pool_max_size: int = 5
    acquire_timeout: float = 10.0
    connect_timeout: int = 10
    statement_timeout: float = 0.0
    application_name: str = "dbcore"

    @model_validator(mode="after")
    def validate_pool_sizes(self) -> ClientSettings:
        if self.pool_min_size < 0 or self.pool_max_size < 1:
            msg = "Pool sizes must be non-negative and max size at least 1"
            raise ValueError(msg)
        if self.pool_min_size > self.pool_max_size:
            msg = (
                f"pool_min_size ({self.pool_min_size}) exceeds "
                f"pool_max_size ({self.pool_max_size})"
            )
            raise ValueError(msg)
        return self

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> ClientSettings:
        """Build settings from DBCORE_* environment variables.

        E.g. DBCORE_POOL_MAX_SIZE=10, DBCORE_ACQUIRE_TIMEOUT=2.5.
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        for field_name in cls.model_fields:
            value = env.get(f"{_SETTINGS_ENV_PREFIX}{field_name.upper()}")
            if value is not None:
                data[field_name] = value
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            msg = f"Invalid client settings in environment: {e}"
            raise ConfigError(msg) from e


def _redact_dsn(dsn: str) -> str:
    parts = urlsplit(dsn)
    if parts.password is None:
        return dsn
    netloc = parts.netloc.replace(f":{parts.password}@", ":****@", 1)
    return parts._replace(netloc=netloc).geturl()


def backend_for_scheme(scheme: str) -> BackendKind:
    try:
        return _SCHEMES[scheme.lower()]
    except KeyError:
        msg = f"Unsupported database type: {scheme}"
        raise ConfigError(msg) from None


def _netloc_host(netloc: str) -> str:
    # urlsplit().hostname lowercases; keep the host as written.
    hostport = netloc.rpartition("@")[2]
    if hostport.startswith("["):
        host = hostport[1:].partition("]")[0]
    else:
        host = hostport.partition(":")[0]
    return unquote(host)


def parse_connection_string(connection_string: str, **fields: Any) -> ConnectionConfig:
    """Parse a DSN-style URL into a ConnectionConfig.

    The scheme selects the backend; a missing port takes the backend
    default. Query parameters land in ``options`` except the libpq TLS
    parameters, which land in ``tls``. Extra keyword arguments (e.g.
    ``id``, ``name``) are passed through to the config.
    """
    try:
        parts = urlsplit(connection_string)
        port = parts.port
    except ValueError as e:
        msg = f"Invalid connection URL: {e}"
        raise ConfigError(msg) from e

    if not parts.scheme:
        msg = f"Invalid connection URL: missing scheme in '{_redact_dsn(connection_string)}'"
        raise ConfigError(msg)
    backend = backend_for_scheme(parts.scheme)

    if backend is BackendKind.SQLITE:
        database = unquote(parts.netloc + parts.path)
        host = None
    else:
        database = unquote(parts.path.lstrip("/"))
        host = _netloc_host(parts.netloc) or "localhost"

    options: dict[str, str] = {}
    tls: dict[str, Any] = {}
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        if key in _TLS_PARAMS:
            tls[_TLS_PARAMS[key]] = value
        else:
            options[key] = value
    if tls:
        tls["enabled"] = tls.get("mode") not in (None, "disable")

    data: dict[str, Any] = {
        "backend": backend,
        "host": host,
        "port": port if port is not None else DEFAULT_PORTS[backend],
        "database": database or None,
        "username": unquote(parts.username) if parts.username else None,
        "password": unquote(parts.password) if parts.password is not None else None,
        "options": options,
        "tls": tls or None,
    }
    data.update(fields)
    try:
        return ConnectionConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid connection string: {e}"
        raise ConfigError(msg) from e


def resolve_connection_string(config: ConnectionConfig) -> str:
    """Return the backend DSN for a config.

    An explicit ``connection_string`` wins; otherwise the DSN is built
    from the discrete fields. Raises ConfigError naming the first
    missing required field.
    """
    if config.connection_string:
        return config.connection_string

    scheme = config.backend.value
    if config.backend is BackendKind.SQLITE:
        if not config.database:
            raise ConfigError("Database path is required")
        return f"sqlite://{quote(config.database)}"

    if not config.host:
        raise ConfigError("Host is required")
    if not config.database:
        raise ConfigError("Database name is required")

    userinfo = ""
    if config.username:
        userinfo = quote(config.username, safe="")
        if config.password is not None:
            userinfo += ":" + quote(config.password, safe="")
        userinfo += "@"

    host = f"[{config.host}]" if ":" in config.host else config.host
    port = f":{config.effective_port}" if config.effective_port else ""

    params: dict[str, str] = dict(config.options)
    if config.tls is not None:
        for param, attr in _TLS_PARAMS.items():
            value = getattr(config.tls, attr)
            if value is not None:
                params[param] = value
    query = f"?{urlencode(params)}" if params else ""

    return f"{scheme}://{userinfo}{host}{port}/{quote(config.database)}{query}"


def connection_from_env(
    var: str = DEFAULT_ENV_VAR, environ: dict[str, str] | None = None
) -> ConnectionConfig | None:
    """Discover a connection from the environment.

    ``var`` (DATABASE_URL by default) holds a full connection string. When
    it is unset, the libpq PG* variables are used if PGHOST or PGDATABASE
    is present. Returns None when nothing is configured.
    """
    env = os.environ if environ is None else environ
    dsn = env.get(var)
    if dsn:
        return parse_connection_string(dsn)

    if "PGHOST" not in env and "PGDATABASE" not in env:
        return None

    data: dict[str, Any] = {"backend": BackendKind.POSTGRES, "host": "localhost"}
    for env_var, field_name in _PG_ENV_VARS.items():
        value = env.get(env_var)
        if value is None:
            continue
        if field_name == "port":
            try:
                data[field_name] = int(value)
            except ValueError:
                msg = f"Invalid {env_var} value: '{value}'. Must be an integer"
                raise ConfigError(msg) from None
        else:
            data[field_name] = value
    try:
        return ConnectionConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid connection in environment: {e}"
        raise ConfigError(msg) from e
