"""Configuration settings for the contest backend."""

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()

# CORS settings
CORS_ORIGINS: List[str] = os.getenv("CORS_ORIGINS", "*").split(",")
CORS_METHODS: List[str] = ["*"]
CORS_HEADERS: List[str] = ["*"]

# Directories
REPORTS_DIR = os.getenv(
    "REPORTS_DIR",
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "reports"),
)

# Ensure directories exist
os.makedirs(REPORTS_DIR, exist_ok=True)

# API settings
API_TITLE = "Contest Proctor API"
API_VERSION = "1.0.0"

# Contest settings
CONTEST_TOPIC = "Build a Coffee Shop Website"
CONTEST_DURATION_SECONDS = int(os.getenv("CONTEST_DURATION_SECONDS", str(60 * 60)))
TICK_INTERVAL_SECONDS = 1.0
WARNING_THRESHOLD_SECONDS = 300
CRITICAL_THRESHOLD_SECONDS = 60
PREVIEW_REFRESH_SECONDS = 1.0
IDLE_TIMEOUT_SECONDS = int(os.getenv("IDLE_TIMEOUT_SECONDS", str(5 * 60)))
WARNING_DISPLAY_SECONDS = 3.0
TAB_SWITCH_LIMIT = int(os.getenv("TAB_SWITCH_LIMIT", "3"))
PASS_SCORE = int(os.getenv("PASS_SCORE", "80"))

# Navigation targets pushed to the client
HOME_ROUTE = "/"
RESUME_UPLOAD_ROUTE = "/resume-upload"
FAILED_ROUTE = "/failed"
SUCCESS_ROUTE = "/success"

# Data store
STORE_BACKEND = os.getenv("STORE_BACKEND", "memory")  # "memory" or "rest"
STORE_URL = os.getenv("STORE_URL", "")
STORE_API_KEY = os.getenv("STORE_API_KEY", "")
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "30"))
VIDEO_BUCKET = "videos"
RESUME_BUCKET = "resumes"
RECORDING_MAX_BYTES = int(os.getenv("RECORDING_MAX_BYTES", str(200 * 1024 * 1024)))
RESUME_CONTENT_TYPES = (
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)

# Logging Configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"
