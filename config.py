import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    database_url: str
    database_name: str
    jwt_secret: str
    pinata_jwt: str
    pinata_api_url: str
    clerk_secret_key: str
    clerk_api_url: str
    log_level: str
    port: int


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
        database_name=os.getenv("DATABASE_NAME", "storefront"),
        jwt_secret=os.getenv("JWT_SECRET", "devsecret"),
        pinata_jwt=os.getenv("PINATA_JWT", ""),
        pinata_api_url=os.getenv("PINATA_API_URL", "https://api.pinata.cloud"),
        clerk_secret_key=os.getenv("CLERK_SECRET_KEY", ""),
        clerk_api_url=os.getenv("CLERK_API_URL", "https://api.clerk.com/v1"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        port=int(os.getenv("PORT", 8000)),
    )
