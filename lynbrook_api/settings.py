from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    # Backend
    api_origin: str = Field(default="https://lynbrookasb.org/api/", alias="API_ORIGIN")
    request_timeout: float = Field(default=30.0, alias="REQUEST_TIMEOUT")

    # Cache Configuration
    cache_max_size: int = Field(default=0, alias="CACHE_MAX_SIZE")
    revalidate_on_subscribe: bool = Field(default=True, alias="REVALIDATE_ON_SUBSCRIBE")

    # Session persistence
    token_file: str = Field(default=".lynbrook_token", alias="TOKEN_FILE")

    # Credentials for the command line entry point (optional)
    api_email: str | None = Field(default=None, alias="API_EMAIL")
    api_password: str | None = Field(default=None, alias="API_PASSWORD")

    debug: bool = Field(default=False, alias="API_DEBUG")

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)


global_settings = Settings()
