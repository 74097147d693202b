import os
from pathlib import Path

from dotenv import load_dotenv

# Load constructpro/.env so settings are available however the app is started
load_dotenv(dotenv_path=(Path(__file__).parent / ".env"))

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./constructpro.db")

# Task persistence backend: "sql" (DATABASE_URL) or "supabase" (hosted PostgREST)
TASK_BACKEND = os.getenv("TASK_BACKEND", "sql").lower()
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")
SUPABASE_TIMEOUT_SECONDS = int(os.getenv("SUPABASE_TIMEOUT_SECONDS", "15"))

# CORS settings
CORS_ALLOW_ORIGINS = os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")

# JWT configuration
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "3600"))

# Gantt defaults
DEFAULT_TIME_SCALE = os.getenv("DEFAULT_TIME_SCALE", "day")
GANTT_LABEL_WIDTH = int(os.getenv("GANTT_LABEL_WIDTH", "150"))
GANTT_ROW_HEIGHT = int(os.getenv("GANTT_ROW_HEIGHT", "40"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Uvicorn server settings
UVICORN_HOST = os.getenv("UVICORN_HOST", "0.0.0.0")
UVICORN_PORT = int(os.getenv("UVICORN_PORT", "8000"))
