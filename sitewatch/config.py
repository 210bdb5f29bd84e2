"""
Configuration models and loader.

The configuration file is YAML (plain JSON works too). It is validated once at
startup into immutable pydantic models; the pipeline never sees an invalid
watch definition.
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Dict, List, Literal, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import jq
import yaml
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    HttpUrl,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from . import DEFAULT_USERAGENT
from .errors import ConfigError
from .infra.scheduler import validate_schedule
from .util import parse_duration


logger = logging.getLogger(__name__)

Duration = Annotated[timedelta, BeforeValidator(parse_duration)]

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_HTTP_URL = TypeAdapter(HttpUrl)


def _check_email(value: str) -> str:
    if not _EMAIL_RE.match(value):
        raise ValueError(f"invalid e-mail address: {value!r}")
    return value


def _check_http_url(value: str) -> str:
    try:
        _HTTP_URL.validate_python(value)
    except ValidationError as e:
        raise ValueError(f"invalid http(s) url {value!r}: {e.errors()[0]['msg']}") from e
    return value


def _check_regex(value: str) -> str:
    try:
        re.compile(value)
    except re.error as e:
        raise ValueError(f"invalid regular expression {value!r}: {e}") from e
    return value


def _check_status_codes(codes: List[int]) -> List[int]:
    for code in codes:
        if not 100 <= code <= 999:
            raise ValueError(f"status code {code} must be between 100 and 999")
    return codes


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class ProxyConfig(_Frozen):
    url: str
    username: Optional[str] = None
    password: Optional[str] = None
    no_proxy: str = ""

    @model_validator(mode="after")
    def check_credentials_together(self) -> "ProxyConfig":
        if bool(self.username) != bool(self.password):
            raise ValueError("proxy username and password must be set together")
        return self


class MailFrom(_Frozen):
    name: str
    mail: str

    @field_validator("mail")
    @classmethod
    def check_mail_valid(cls, value: str) -> str:
        return _check_email(value)


class MailConfig(_Frozen):
    server: str
    port: int = Field(gt=0, le=65535)
    sender: MailFrom = Field(alias="from")
    to: List[str] = Field(min_length=1)
    user: Optional[str] = None
    password: Optional[str] = None
    tls: bool = False
    starttls: bool = False
    skiptls: bool = False
    retries: int = Field(default=3, ge=1)
    retry_delay: Duration = timedelta(seconds=3)
    timeout: Duration = timedelta(seconds=10)

    @field_validator("to")
    @classmethod
    def check_recipients_valid(cls, value: List[str]) -> List[str]:
        return [_check_email(v) for v in value]


class RetryConfig(_Frozen):
    count: int = Field(default=3, ge=0)
    delay: Duration = timedelta(seconds=3)


class ReplaceConfig(_Frozen):
    pattern: str
    replace_with: str = ""

    @field_validator("pattern")
    @classmethod
    def check_pattern_valid(cls, value: str) -> str:
        return _check_regex(value)


class WebhookConfig(_Frozen):
    url: str
    header: Dict[str, str] = Field(default_factory=dict)
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    useragent: Optional[str] = None

    @field_validator("url")
    @classmethod
    def check_url_valid(cls, value: str) -> str:
        return _check_http_url(value)


class WatchIdentity(_Frozen):
    """A watch is identified by its name and URL together."""

    name: str
    url: str

    @property
    def key(self) -> str:
        return f"{self.name}|{self.url}"

    def __str__(self) -> str:
        return f"{self.name} ({self.url})"


class TransformOptions(_Frozen):
    """The content transform settings of a watch."""

    jq: Optional[str] = None
    extract_body: bool = False
    pattern: Optional[str] = None
    replaces: Tuple[ReplaceConfig, ...] = ()
    remove_empty_lines: bool = False
    trim_whitespace: bool = False


class WatchConfig(_Frozen):
    """One monitored URL with its schedule, transform and notification rules."""

    name: str = Field(min_length=1)
    url: str
    cron: str = "@hourly"
    description: str = ""
    method: str = "GET"
    body: str = ""
    header: Dict[str, str] = Field(default_factory=dict)
    useragent: Optional[str] = None
    additional_to: List[str] = Field(default_factory=list)
    no_errormail_on_statuscode: List[int] = Field(default_factory=list)
    disabled: bool = False
    pattern: Optional[str] = None
    replaces: List[ReplaceConfig] = Field(default_factory=list)
    retry_on_match: List[str] = Field(default_factory=list)
    skip_soft_error_patterns: bool = False
    jq: Optional[str] = None
    extract_body: bool = False
    remove_empty_lines: bool = False
    trim_whitespace: bool = False
    webhooks: List[WebhookConfig] = Field(default_factory=list)

    @field_validator("url")
    @classmethod
    def check_url_valid(cls, value: str) -> str:
        return _check_http_url(value)

    @field_validator("method")
    @classmethod
    def check_method_uppercase(cls, value: str) -> str:
        if not value or value != value.upper():
            raise ValueError(f"method must be uppercase: {value!r}")
        return value

    @field_validator("cron")
    @classmethod
    def check_cron_valid(cls, value: str) -> str:
        validate_schedule(value)
        return value

    @field_validator("additional_to")
    @classmethod
    def check_recipients_valid(cls, value: List[str]) -> List[str]:
        return [_check_email(v) for v in value]

    @field_validator("no_errormail_on_statuscode")
    @classmethod
    def check_codes_valid(cls, value: List[int]) -> List[int]:
        return _check_status_codes(value)

    @field_validator("pattern")
    @classmethod
    def check_pattern_valid(cls, value: Optional[str]) -> Optional[str]:
        return _check_regex(value) if value else value

    @field_validator("retry_on_match")
    @classmethod
    def check_retry_patterns_valid(cls, value: List[str]) -> List[str]:
        return [_check_regex(v) for v in value]

    @model_validator(mode="after")
    def check_jq_valid(self) -> "WatchConfig":
        if self.jq and self.extract_body:
            raise ValueError("jq filter and extract body cannot be used at the same time")
        if self.jq:
            try:
                jq.compile(self.jq)
            except ValueError as e:
                raise ValueError(f"invalid jq filter {self.jq}: {e}") from e
        return self

    @property
    def identity(self) -> WatchIdentity:
        return WatchIdentity(name=self.name, url=self.url)

    @property
    def transform_options(self) -> TransformOptions:
        return TransformOptions(
            jq=self.jq,
            extract_body=self.extract_body,
            pattern=self.pattern,
            replaces=tuple(self.replaces),
            remove_empty_lines=self.remove_empty_lines,
            trim_whitespace=self.trim_whitespace,
        )


class Configuration(_Frozen):
    mail: Optional[MailConfig] = None
    proxy: Optional[ProxyConfig] = None
    retry: RetryConfig = Field(default_factory=RetryConfig)
    useragent: str = DEFAULT_USERAGENT
    timeout: Duration = timedelta(seconds=30)
    database: str = "db.sqlite3"
    no_errormail_on_statuscode: List[int] = Field(default_factory=list)
    retry_on_match: List[str] = Field(default_factory=list)
    watches: List[WatchConfig] = Field(default_factory=list)
    graceful_timeout: Duration = timedelta(seconds=5)
    location: Optional[str] = None

    @field_validator("no_errormail_on_statuscode")
    @classmethod
    def check_codes_valid(cls, value: List[int]) -> List[int]:
        return _check_status_codes(value)

    @field_validator("retry_on_match")
    @classmethod
    def check_retry_patterns_valid(cls, value: List[str]) -> List[str]:
        return [_check_regex(v) for v in value]

    @field_validator("location")
    @classmethod
    def check_location_valid(cls, value: Optional[str]) -> Optional[str]:
        if value:
            try:
                ZoneInfo(value)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError(f"unknown timezone {value!r}") from e
        return value

    @model_validator(mode="after")
    def check_identities_unique(self) -> "Configuration":
        seen = set()
        for watch in self.watches:
            key = watch.identity.key
            if key in seen:
                raise ValueError(
                    "name and url combinations need to be unique. "
                    f"Please use another name or url for entry {watch.name}"
                )
            seen.add(key)
        return self

    @property
    def timezone(self) -> str:
        return self.location or "UTC"

    @property
    def enabled_watches(self) -> List[WatchConfig]:
        return [w for w in self.watches if not w.disabled]


def _format_validation_error(error: ValidationError) -> str:
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        lines.append(f"  {location}: {item['msg']}")
    return "invalid configuration:\n" + "\n".join(lines)


def parse_config(data: Optional[dict]) -> Configuration:
    """Validate an already parsed configuration mapping."""
    try:
        return Configuration.model_validate(data or {})
    except ValidationError as e:
        raise ConfigError(_format_validation_error(e)) from e


def load_config(path: str = "config.yaml") -> Configuration:
    """Load and validate the configuration file at *path*."""
    config_path = Path(path)
    try:
        with config_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"could not load config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"could not parse config {path}: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise ConfigError(f"config {path} must contain a mapping at the top level")

    config = parse_config(data)
    logger.info(f"Loaded {len(config.watches)} watch(es) from {path}")
    return config
