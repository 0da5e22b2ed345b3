"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str

    # Logging
    LOG_LEVEL: str = "INFO"

    # Template versioning: attempts before a (type, name, version) race is reported
    TEMPLATE_VERSION_MAX_ATTEMPTS: int = 3

    # Suffix appended to copied template names when no new name is given
    COPY_NAME_SUFFIX: str = " (Copy)"

    # List endpoints
    DEFAULT_PAGE_SIZE: int = 20

    # Holiday calendar for business-day rules with exclude_holidays
    HOLIDAY_COUNTRY: str = "US"

    @property
    def is_dev(self) -> bool:
        return self.ENV == "dev"


settings = Settings()
