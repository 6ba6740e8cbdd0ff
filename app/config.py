import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
    MAX_CHUNK_SIZE = int(os.getenv("MAX_CHUNK_SIZE", str(100 * 1024 * 1024)))  # 100 MB
    MAX_TOTAL_CHUNKS = int(os.getenv("MAX_TOTAL_CHUNKS", "10000"))

    STAGING_TTL_SECONDS = int(os.getenv("STAGING_TTL_SECONDS", "3600"))  # drop abandoned uploads after 1 hour
    CLEANUP_INTERVAL_SECONDS = int(os.getenv("CLEANUP_INTERVAL_SECONDS", "600"))

    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "3000"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",")]
