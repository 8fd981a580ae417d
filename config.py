import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from errors import ConfigError


class Settings(BaseModel):
    database_url: str
    database_name: str = "docushop"
    port: int = 8000
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    bcrypt_rounds: int = Field(10, ge=4, le=31)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @property
    def cloudinary_configured(self) -> bool:
        return bool(self.cloudinary_cloud_name and self.cloudinary_api_key and self.cloudinary_api_secret)


def load_settings() -> Settings:
    """Read settings from the environment, after loading a local .env file."""
    load_dotenv()

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ConfigError("Missing required environment variable: DATABASE_URL")

    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        database_url=database_url,
        database_name=os.getenv("DATABASE_NAME", "docushop"),
        port=int(os.getenv("PORT", 8000)),
        cloudinary_cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
        cloudinary_api_key=os.getenv("CLOUDINARY_API_KEY"),
        cloudinary_api_secret=os.getenv("CLOUDINARY_API_SECRET"),
        bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", 10)),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
    )
