import json

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str

    REDIS_URL: str = "redis://redis:6379/0"

    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    BACKEND_URL: str = "http://localhost:8000"

    BACKEND_CORS_ORIGINS: str = '["http://localhost:5173","http://localhost:3000"]'

    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Real Estate Marketplace Messaging API"
    DEBUG: bool = False

    # "es" or "en"
    DEFAULT_LANGUAGE: str = "es"

    UPLOAD_DIR: str = "./uploads"

    # Cloudflare R2 storage (S3-compatible)
    R2_ACCOUNT_ID: str = ""
    R2_ACCESS_KEY_ID: str = ""
    R2_SECRET_ACCESS_KEY: str = ""
    R2_BUCKET_NAME: str = "marketplace-uploads"
    R2_PUBLIC_URL: str = ""  # e.g. https://files.example.com

    # Storage backend: "local" for development, "r2" for production
    STORAGE_BACKEND: str = "local"

    CHAT_IMAGES_FOLDER: str = "chat-images"
    MAX_CHAT_IMAGE_SIZE_MB: int = 10

    UNREAD_CACHE_TTL_SECONDS: int = 30
    SEND_MESSAGE_RATE_LIMIT: str = "30/minute"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def cors_origins(self) -> list[str]:
        if isinstance(self.BACKEND_CORS_ORIGINS, str):
            try:
                parsed: list[str] = json.loads(self.BACKEND_CORS_ORIGINS)
                return parsed
            except json.JSONDecodeError:
                return ["http://localhost:5173", "http://localhost:3000"]
        return self.BACKEND_CORS_ORIGINS

    @property
    def r2_endpoint_url(self) -> str:
        return f"https://{self.R2_ACCOUNT_ID}.r2.cloudflarestorage.com"


settings = Settings()
