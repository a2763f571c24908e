"""Engine settings read from the environment (ODATA_TABLE_* variables)."""

from functools import lru_cache
from typing import Callable, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = (
    "https://services.odata.org/TripPinRESTierService/"
    "(S(pl155em213fgzge2i2bn5l4j))/People"
)
DEFAULT_ERROR_MESSAGE = "Failed to load data from the server."


class EngineSettings(BaseSettings):
    """
    Settings for the remote tabular data engine.

    Every field can be overridden with an environment variable, e.g.
    ODATA_TABLE_PAGE_SIZE=25 or ODATA_TABLE_BASE_URL=https://host/Entity.
    """

    model_config = SettingsConfigDict(
        env_prefix="ODATA_TABLE_",
        extra="ignore",
    )

    base_url: str = DEFAULT_BASE_URL
    page_size: int = Field(default=8, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_continuation_hops: int = Field(default=1000, ge=1)
    empty_message: str = "No data available."
    error_message: str = DEFAULT_ERROR_MESSAGE


def _create_settings_accessors() -> Tuple[
    Callable[[], EngineSettings], Callable[[], EngineSettings]
]:
    @lru_cache(maxsize=1)
    def get_settings() -> EngineSettings:
        return EngineSettings()

    def reload_settings() -> EngineSettings:
        get_settings.cache_clear()
        return get_settings()

    return get_settings, reload_settings


get_settings, reload_settings = _create_settings_accessors()
