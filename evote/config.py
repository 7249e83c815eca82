# evote/config.py
# Central place for thresholds and constants
import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), "../.env"))

# --- Database Config ---
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB = os.getenv("MONGO_DB", "evote")

BALLOTS_COLLECTION_NAME = "ballots"
ABUSE_LOGS_COLLECTION_NAME = "abuse_logs"
ELECTIONS_COLLECTION_NAME = "elections"
POSITIONS_COLLECTION_NAME = "positions"
CANDIDATES_COLLECTION_NAME = "candidates"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Matriculation number format, e.g. CSC/21/03/0042
MATRIC_PATTERN = os.getenv("MATRIC_PATTERN", r"^[A-Z]{3}/\d{2}/\d{2}/\d{4}$")

# Max ballots per device per position when no biometric is used (0 = off)
DEVICE_VOTE_LIMIT = int(os.getenv("DEVICE_VOTE_LIMIT", "0"))

# Submission attempts per caller per window (0 = off)
VOTE_RATE_LIMIT = int(os.getenv("VOTE_RATE_LIMIT", "3"))
VOTE_RATE_WINDOW_SECONDS = float(os.getenv("VOTE_RATE_WINDOW_SECONDS", "600"))

# Longest a rejected submission waits on its abuse log write
ABUSE_WRITE_TIMEOUT_SECONDS = float(os.getenv("ABUSE_WRITE_TIMEOUT_SECONDS", "2.0"))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
    ).split(",")
    if origin.strip()
]
