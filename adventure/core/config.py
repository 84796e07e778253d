from pathlib import Path

from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    # OpenAI-compatible API configuration (defaults target Gemini's compatibility endpoint)
    OPENAI_API_KEY: str
    OPENAI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    OPENAI_MODEL: str = "gemini-2.5-flash"
    OPENAI_IMAGE_MODEL: str = "imagen-3.0-generate-002"
    # Closest landscape size OpenAI-style image endpoints accept to 16:9
    IMAGE_SIZE: str = "1792x1024"
    IMAGE_OUTPUT_FORMAT: str = "jpeg"
    STORY_TEMPERATURE: float = 0.9

    # Rotating flavor text while a turn is loading
    LOADING_MESSAGE_INTERVAL_SECONDS: float = 2.5

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'

settings = Settings()
