import logging
import os
from pathlib import Path
from dotenv import load_dotenv

# --- Base Directory ---
BASE_DIR = Path(__file__).resolve().parent.parent

# --- Load Environment Variables ---
load_dotenv(BASE_DIR / ".env")

# --- Path Configuration ---
# Use Path objects for robust, OS-agnostic path handling.
INPUT_DIR = BASE_DIR / os.getenv("INPUT_DIR", "input")
OUTPUT_DIR = BASE_DIR / os.getenv("OUTPUT_DIR", "output")
SNAPSHOT_DIR = BASE_DIR / os.getenv("SNAPSHOT_DIR", "data/snapshots")
LOG_DIR = BASE_DIR / os.getenv("LOG_DIR", "logs")
LOG_LEVEL = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)

# --- Filename Configuration ---
ORDERS_FILENAME_PREFIX = os.getenv("ORDERS_FILENAME_PREFIX", "orders_")
INVENTORY_FILENAME_PREFIX = os.getenv("INVENTORY_FILENAME_PREFIX", "inventory_")
SIGNALS_FILENAME_BASE = os.getenv("SIGNALS_FILENAME", "signals_report")
SAVE_JSON_OUTPUT = os.getenv("SAVE_JSON_OUTPUT", "true").lower() in ("1", "true", "yes")

# --- Store / Sources ---
STORE_ID = os.getenv("STORE_ID", "main")
ORDERS_API_URL = os.getenv("ORDERS_API_URL")
SOURCE_TIMEOUT_SECONDS = float(os.getenv("SOURCE_TIMEOUT_SECONDS", "10"))

# --- Webhook ---
WEBHOOK_URL = os.getenv("WEBHOOK_URL")

# --- Velocity ---
# The observation window is the only analytics knob read from the environment.
OBSERVATION_WINDOW_DAYS = int(os.getenv("OBSERVATION_WINDOW_DAYS", "30"))

# Confidence tiers are driven by order count only.
CONFIDENCE_HIGH_ORDERS = 10
CONFIDENCE_MEDIUM_ORDERS = 5

SLOW_MOVER_MAX_VELOCITY = 0.5  # units/day, ranking helper only
DEPLETION_RISK_MAX_DAYS = 14

# --- Snapshot Comparison ---
FLAT_CHANGE_PERCENT = 0.5
VELOCITY_CHANGE_PERCENT = 20.0

# --- Trends ---
TREND_MIN_SNAPSHOTS = 3
TREND_WINDOW_MAX = 5
TREND_CONSISTENCY_THRESHOLD = 0.75

# --- Signal Thresholds ---
CRITICAL_DEPLETION_DAYS = 3
URGENT_DEPLETION_DAYS = 7
PLAN_DEPLETION_DAYS = 14

HIGH_STOCK_UNITS = 20  # price opportunity
AGING_STOCK_UNITS = 15
SLOW_VELOCITY = 1.0  # units/day
HIGH_VARIANCE_PERCENT = 50.0

# --- Actions ---
PROOF_VALID_DAYS = 7

# --- Snapshot Store ---
SNAPSHOT_TIMEFRAME = os.getenv("SNAPSHOT_TIMEFRAME", "daily")
SNAPSHOT_MEMORY_CACHE_SIZE = 100
SNAPSHOT_RETENTION_DAYS = 90
