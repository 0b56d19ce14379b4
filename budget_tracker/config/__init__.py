"""
Budget Tracker — Configuration & Constants
All environment variables, feature flags, thresholds and enumerations.
"""
import os
from pathlib import Path

# ============================================================
# ENVIRONMENT
# ============================================================
ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
IS_PRODUCTION = ENVIRONMENT == "production"
PORT = int(os.environ.get("PORT", "8080"))
APP_URL = os.environ.get("APP_URL", "http://localhost:3000")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ============================================================
# PATHS
# ============================================================
BASE_DIR = Path(__file__).parent.parent.parent
DATA_DIR = Path(os.environ.get("DATA_DIR", BASE_DIR / "data"))
DATA_DIR.mkdir(parents=True, exist_ok=True)

DB_PATH = DATA_DIR / "db.json"
DATABASE_URL = os.environ.get("DATABASE_URL")

# ============================================================
# FEATURE FLAGS
# ============================================================
PERSIST_DATA = os.environ.get("PERSIST_DATA", "true").lower() == "true"

# ============================================================
# AUTH
# ============================================================
JWT_SECRET = os.environ.get("JWT_SECRET", os.urandom(32).hex())
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = int(os.environ.get("JWT_EXPIRY_HOURS", "72"))
MIN_PASSWORD_LENGTH = 6

USER_ROLES = ["admin", "user"]
DEFAULT_USER_ROLE = "user"

# ============================================================
# DOMAIN ENUMERATIONS
# ============================================================
PROJECT_STATUSES = ["active", "completed", "archived"]
MEMBER_ROLES = ["owner", "member", "viewer"]
DEFAULT_MEMBER_ROLE = "member"

# ============================================================
# BUDGET THRESHOLDS (percent of budget)
# ============================================================
WARNING_THRESHOLD_PCT = float(os.environ.get("WARNING_THRESHOLD_PCT", "80"))
EXCEEDED_THRESHOLD_PCT = float(os.environ.get("EXCEEDED_THRESHOLD_PCT", "100"))
MODERATE_THRESHOLD_PCT = float(os.environ.get("MODERATE_THRESHOLD_PCT", "50"))

# ============================================================
# NOTIFICATION DISPATCH
# ============================================================
NOTIFY_MAX_ATTEMPTS = int(os.environ.get("NOTIFY_MAX_ATTEMPTS", "2"))
NOTIFY_RETRY_DELAY = float(os.environ.get("NOTIFY_RETRY_DELAY", "1"))

# ============================================================
# EMAIL (Brevo)
# ============================================================
BREVO_KEY = os.environ.get("BREVO_KEY", "")
BREVO_API_URL = os.environ.get("BREVO_API_URL", "https://api.brevo.com/v3")
BREVO_RETRIES = 3
BREVO_RETRY_DELAY = 1.0
BREVO_RETRY_ON = (502, 503, 504)
SENDER_NAME = os.environ.get("SENDER_NAME", "Budget Tracker")
SENDER_EMAIL = os.environ.get("SENDER_EMAIL", "no-reply@budget-tracker.app")
# Outside production, only recipients matching this pattern get mail
STAGING_EMAIL_PATTERN = os.environ.get("STAGING_EMAIL_PATTERN", r"selego\.co")

# ============================================================
# CATEGORIZER
# ============================================================
USE_REAL_API = bool(os.environ.get("ANTHROPIC_API_KEY"))
CATEGORIZER_MODEL = os.environ.get("CATEGORIZER_MODEL", "claude-haiku-4-5-20251001")

CATEGORIES = ["Marketing", "Développement", "Design", "Infrastructure", "RH", "Autre"]
DEFAULT_CATEGORY = "Autre"

# Checked in insertion order; first category with a matching keyword wins
CATEGORY_KEYWORDS = {
    "Marketing": ["marketing", "pub", "publicité", "facebook", "google ads",
                  "instagram", "campagne", "seo", "social media"],
    "Développement": ["dev", "développement", "code", "api", "serveur",
                      "hosting", "github", "aws", "cloud"],
    "Design": ["design", "graphique", "logo", "ui", "ux", "figma",
               "photoshop", "illustration"],
    "Infrastructure": ["infrastructure", "serveur", "hébergement", "domaine",
                       "ssl", "backup", "sécurité"],
    "RH": ["salaire", "recrutement", "formation", "rh", "employé",
           "freelance", "prestataire"],
}

# ============================================================
# VERSION
# ============================================================
VERSION = "1.2.0"
