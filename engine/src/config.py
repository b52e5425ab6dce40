from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    database_url: str = "sqlite:///snapci.db"
    redis_url: str = "redis://localhost:6379/0"

    # Working tree settings
    workspace_dir: str = "temp_repo"
    pipeline_file: str = ".ci.yaml"
    default_branch: str = "main"
    github_host: str = "github.com"
    auth_data_dir: str = "auth_data"

    # Execution settings
    max_concurrent_jobs: int = 4
    step_timeout: Optional[int] = None  # No per-step limit by default
    clone_timeout: int = 600
    git_timeout: int = 60
    workspace_lock_timeout: Optional[float] = None  # Wait indefinitely

    manual_trigger_actor: str = "CLI User"

    class Config:
        env_file = ".env"
        env_prefix = "SNAPCI_"

@lru_cache()
def get_settings() -> Settings:
    return Settings()
