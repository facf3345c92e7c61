"""Configuration loader."""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / ".env")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
FRED_API_KEY = os.getenv("FRED_API_KEY", "")

DATA_DIR = Path(os.getenv("DATA_DIR", str(Path(__file__).parent.parent / "data")))
CACHE_DB_URL = os.getenv("CACHE_DB_URL", f"sqlite:///{DATA_DIR / 'cache.db'}")
HISTORY_PATH = DATA_DIR / "score_history.csv"
# Hand-maintained weekly/monthly inputs
AAII_SENTIMENT_PATH = DATA_DIR / "aaii-sentiment.json"
GLOBAL_PMI_PATH = DATA_DIR / "global-pmi.json"

# Calendar day used for history keys
EXCHANGE_TIMEZONE = os.getenv("EXCHANGE_TIMEZONE", "America/New_York")

PILLAR_WEIGHTS = {
    "direction":  0.25,
    "breadth":    0.20,
    "volatility": 0.15,
    "credit":     0.15,
    "sentiment":  0.10,
    "global":     0.15,
}

# More than this many of the 18 signals on fallback values -> incomplete
INCOMPLETE_THRESHOLD = 6

# Calls per rolling minute, kept below each provider's published limit
RATE_LIMITS = {
    "yahoo": 55,
    "fred":  110,
    "cnn":   10,
}

RETRY_CONFIG = {
    "max_attempts": 3,
    "base_delay": 1.0,  # seconds
}
REQUEST_TIMEOUT = 10.0
CNN_FEAR_GREED_URL = "https://production.dataviz.cnn.io/index/fearandgreed/graphdata"
USER_AGENT = "Mozilla/5.0 (compatible; market-compass/1.0)"

# ── Cache TTLs (seconds) ──────────────────────────────────────────────────────
CACHE_TTL_SECONDS = {
    "direction":  15,
    "volatility": 30,
    "breadth":    60,
    "global":     60,
    "credit":     300,
    "sentiment":  3600,
    "series":     3600,
}

KV_MAX_ENTRIES = 500
KV_MAX_BYTES = 5 * 1024 * 1024

HISTORY_MAX_DAYS = 60
PERCENTILE_WINDOW_DAYS = 30
