"""
Settings for the transformation engine, read from the environment (or .env).

SCRIPT_EXEC_TIMEOUT: per phase-call alarm in seconds (main thread, Unix only).
TRANSFORM_TIMEOUT: whole-run deadline in seconds, checked between phases.
SCRIPT_HTTP_ALLOWED_HOSTS: comma-separated host patterns (``*``, exact, ``*.domain``).
TRANSFORM_POLICY_RULES: comma-separated ``phase:method:allow|deny`` rules; empty = defaults.
TRANSFORM_NETWORK_PHASES: comma-separated phases that run with the network guard on.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(raw: str | None) -> list[str]:
    return [s.strip() for s in (raw or "").split(",") if s.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    SCRIPT_EXEC_TIMEOUT: int | None = None
    TRANSFORM_TIMEOUT: float | None = None

    SCRIPT_HTTP_TIMEOUT: float = 30.0
    SCRIPT_HTTP_ALLOWED_HOSTS: str = "*"
    SCRIPT_HTTP_BLOCK_PRIVATE: bool = True

    TRANSFORM_POLICY_RULES: str = ""
    TRANSFORM_NETWORK_PHASES: str = "download"

    SCRIPT_ALLOW_FLOAT: bool = True
    SCRIPT_ALLOW_SET: bool = True
    SCRIPT_ALLOW_LAMBDA: bool = False
    SCRIPT_ALLOW_NESTED_DEF: bool = False

    @property
    def http_allowed_hosts(self) -> frozenset[str]:
        return frozenset(h.lower() for h in _split_csv(self.SCRIPT_HTTP_ALLOWED_HOSTS))

    @property
    def network_phases(self) -> frozenset[str]:
        return frozenset(_split_csv(self.TRANSFORM_NETWORK_PHASES))

    @property
    def policy_rule_specs(self) -> list[str]:
        return _split_csv(self.TRANSFORM_POLICY_RULES)


settings = Settings()
