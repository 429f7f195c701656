import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


class Settings(BaseModel):
    api_key: str = os.getenv("OPENAI_API_KEY", "") or os.getenv("API_KEY", "")
    vision_model: str = os.getenv("VISION_MODEL", "gpt-4o-mini")
    # OpenAI-compatible endpoint, e.g. Gemini's /v1beta/openai/
    vision_base_url: str = os.getenv("VISION_BASE_URL", "")

    redis_url: str = os.getenv("REDIS_URL", "")
    history_key: str = os.getenv("HISTORY_KEY", "analysisHistory")
    config_key: str = os.getenv("CONFIG_KEY", "appConfig")
    history_limit: int = int(os.getenv("HISTORY_LIMIT", "50"))
    max_images: int = int(os.getenv("MAX_IMAGES", "5"))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
