# backend/config.py
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# SQLite for speed; any SQLAlchemy URL works
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./app.db")

GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")

DOT_BUDGET = int(os.getenv("DOT_BUDGET", "3"))
TOP_N_GOALS = int(os.getenv("TOP_N_GOALS", "3"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
