from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration settings"""

    # Application
    app_name: str = "ExamHub"
    debug: bool = False
    api_version: str = "v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str = "sqlite:///./examhub.db"
    storage_backend: str = "sql"  # "sql" or "memory"

    # Security
    secret_key: str
    session_cookie: str = "examhub_session"
    session_max_age: int = 86400
    allow_teacher_signup: bool = True

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # Exam timing
    enforce_exam_window: bool = False
    submission_grace_seconds: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
