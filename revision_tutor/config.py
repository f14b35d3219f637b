"""
revIsion RSC v1.0 — Configuration
All environment variables and policy constants. Single source of truth.
No other file reads os.environ directly.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# ─── Paths ───────────────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env file if present (never overrides real environment variables)
load_dotenv(BASE_DIR / ".env", override=False)

# ─── API Keys ────────────────────────────────────────────────────────────────
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

# ─── LLM Settings ────────────────────────────────────────────────────────────
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))

# Evaluation must be near-deterministic; tutoring can be more varied
LLM_EVAL_TEMPERATURE = float(os.getenv("LLM_EVAL_TEMPERATURE", "0.1"))
LLM_TUTOR_TEMPERATURE = float(os.getenv("LLM_TUTOR_TEMPERATURE", "0.7"))
LLM_COMPLETION_TEMPERATURE = float(os.getenv("LLM_COMPLETION_TEMPERATURE", "0.3"))

LLM_EVAL_MAX_TOKENS = int(os.getenv("LLM_EVAL_MAX_TOKENS", "100"))
LLM_TUTOR_MAX_TOKENS = int(os.getenv("LLM_TUTOR_MAX_TOKENS", "800"))
LLM_COMPLETION_MAX_TOKENS = int(os.getenv("LLM_COMPLETION_MAX_TOKENS", "2000"))

# ─── Decision Policy ─────────────────────────────────────────────────────────
# Thresholds carried over as fixed literals. Tunable, not pedagogically derived.
DIAGNOSTIC_QUESTION_COUNT = int(os.getenv("DIAGNOSTIC_QUESTION_COUNT", "3"))
MASTERY_STREAK = int(os.getenv("MASTERY_STREAK", "2"))
RECOVERY_ATTEMPTS = int(os.getenv("RECOVERY_ATTEMPTS", "3"))
GUESSING_RECOVERY_ATTEMPTS = int(os.getenv("GUESSING_RECOVERY_ATTEMPTS", "2"))

# ─── Generation Output Handling ──────────────────────────────────────────────
GENERATION_MAX_RETRIES = 1  # Identical re-prompt once, then fail safe
HISTORY_TURNS = 4           # Recent messages passed to the combined agent

# ─── Answer Normaliser ───────────────────────────────────────────────────────
NUMERIC_TOLERANCE = 0.001

# ─── Response Enforcer Limits ────────────────────────────────────────────────
MAX_RESPONSE_WORDS = 200
DIAGNOSTIC_MAX_WORDS = 40

# ─── Logging ─────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def configure_logging() -> None:
    """Apply LOG_LEVEL to the root logger. Called by the host application."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
