import os
from dataclasses import dataclass
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # Reasoning provider (refine). No key means refine falls back to the simple prompt.
    OPENAI_API_KEY: Optional[str]
    OPENAI_BASE_URL: Optional[str]
    MODEL_NAME: str
    REFINE_MAX_TOKENS: int
    REFINE_TEMPERATURE: float
    PER_ROLE_IMAGE_CAP: int
    MAX_REFINE_IMAGES: Optional[int]

    # Generation providers. No Gemini key routes straight to the keyless provider.
    GEMINI_API_KEY: Optional[str]
    GEMINI_MODEL: str
    IMAGE_MODEL: str
    IMAGE_WIDTH: int
    IMAGE_HEIGHT: int
    PROVIDER_TIMEOUT_S: float

    # Auth / persistence
    SUPABASE_URL: str
    SUPABASE_JWT_SECRET: str
    JWT_AUDIENCE: str
    CORS_ORIGINS: List[str]
    DB_URI: str

def _required(name: str) -> str:
    v = os.getenv(name)
    if not v:
        raise ValueError(f"{name} required")
    return v

def _optional(name: str) -> Optional[str]:
    v = os.getenv(name)
    return v.strip() if v and v.strip() else None

def _int(name: str, default: int) -> int:
    v = os.getenv(name)
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"{name} must be an integer")

def _float(name: str, default: float) -> float:
    v = os.getenv(name)
    if not v:
        return default
    try:
        return float(v)
    except ValueError:
        raise ValueError(f"{name} must be a number")

def _load_settings() -> Settings:
    cors_origins_str = _required("CORS_ORIGINS")
    cors_origins = [o.strip() for o in cors_origins_str.split(",") if o.strip()]

    if "*" in cors_origins:
        raise ValueError("CORS_ORIGINS must not contain '*' when using credentials/auth")

    max_refine_images = _optional("MAX_REFINE_IMAGES")

    return Settings(
        OPENAI_API_KEY=_optional("OPENAI_API_KEY"),
        OPENAI_BASE_URL=_optional("OPENAI_BASE_URL"),
        MODEL_NAME=os.getenv("MODEL_NAME", "gpt-4o"),
        REFINE_MAX_TOKENS=_int("REFINE_MAX_TOKENS", 400),
        REFINE_TEMPERATURE=_float("REFINE_TEMPERATURE", 0.7),
        PER_ROLE_IMAGE_CAP=_int("PER_ROLE_IMAGE_CAP", 2),
        MAX_REFINE_IMAGES=int(max_refine_images) if max_refine_images else None,

        GEMINI_API_KEY=_optional("GEMINI_API_KEY"),
        GEMINI_MODEL=os.getenv("GEMINI_MODEL", "gemini-2.0-flash-exp"),
        IMAGE_MODEL=os.getenv("IMAGE_MODEL", "flux"),
        IMAGE_WIDTH=_int("IMAGE_WIDTH", 1024),
        IMAGE_HEIGHT=_int("IMAGE_HEIGHT", 1024),
        PROVIDER_TIMEOUT_S=_float("PROVIDER_TIMEOUT_S", 45.0),

        SUPABASE_URL=_required("SUPABASE_URL").rstrip("/"),
        SUPABASE_JWT_SECRET=_required("SUPABASE_JWT_SECRET"),
        JWT_AUDIENCE=os.getenv("JWT_AUDIENCE", "authenticated"),
        CORS_ORIGINS=cors_origins,
        DB_URI=_required("DB_URI"),
    )

settings = _load_settings()
