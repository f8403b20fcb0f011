from typing import Annotated, Literal

from annotated_types import Ge, Gt
from pydantic import PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="INFRAGRAPH_", extra="ignore")

    parallelism: PositiveInt = 10
    """Max number of provider operations running at once."""

    provider_timeout: Annotated[float, Gt(0)] = 300.0
    """Max duration in seconds of a single provider call."""

    state_lock_timeout: Annotated[int, Ge(1)] = 5
    """Max lock acquisition timeout in seconds for state stores."""

    state_secret: str = "supersecretsecret"
    """Key used for signing state payloads and digesting secret values."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
