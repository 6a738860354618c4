"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Flow Designer"
    debug: bool = True
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    log_level: str = "INFO"

    # Compiler / planner
    max_traversal_depth: int = 100
    yaml_indent: int = 2
    include_metadata: bool = True
    default_max_iterations: int = 50
    warn_unreachable: bool = False

    model_config = {"env_prefix": "DESIGNER_"}


settings = Settings()
