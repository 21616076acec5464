from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Poolside Picks Engine"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "postgresql://localhost:5432/poolside"

    # Shared key for the admin surface (auth proper lives outside this service)
    admin_key: str = "changeme"

    # Pool defaults
    default_max_nominees: int = 4
    default_picks_per_team: int = 5

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
