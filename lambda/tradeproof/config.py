import os
"""
Configuration for the compliance analysis service.

All thresholds, policy constants, and deployment settings in one place.
Change here, not in business logic modules.
"""

# --- Logging ---

LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

# --- Photo Validation ---

MAX_FILE_SIZE_MB: float = 10.0
MIN_RESOLUTION: int = 320
ALLOWED_FORMATS: set[str] = {"JPEG", "PNG"}

# --- Photo Quality Assessment ---

QUALITY_THRESHOLD: float = 0.3

# Quality is measured on a copy no longer than this on its long edge
QUALITY_MAX_EDGE: int = 1024

QUALITY_WEIGHTS: dict[str, float] = {
    "sharpness": 0.5,
    "brightness": 0.3,
    "contrast": 0.2,
}

# Sharpness: Laplacian variance normalization ceiling
SHARPNESS_CEILING: float = 500.0

# Brightness: below/above these trigger warnings
BRIGHTNESS_LOW: float = 0.25
BRIGHTNESS_HIGH: float = 0.8

# Contrast: std dev normalization ceiling
CONTRAST_CEILING: float = 128.0
CONTRAST_LOW: float = 0.2

# --- Inference ---

INFERENCE_MODEL: str = os.environ.get("INFERENCE_MODEL", "gpt-4o")
INFERENCE_MAX_TOKENS: int = 4096
INFERENCE_TIMEOUT_S: float = 60.0

DEFAULT_JURISDICTION: str = os.environ.get("DEFAULT_JURISDICTION", "California")
DEFAULT_TRADE: str = "electrical"
DEFAULT_USER_ID: str = os.environ.get("DEFAULT_USER_ID", "demo-user")

# --- Scoring ---

SCORE_MIN: int = 0
SCORE_MAX: int = 100

# Trend: compare mean of newest TREND_WINDOW scores against oldest TREND_WINDOW
TREND_WINDOW: int = 3
TREND_MIN_HISTORY: int = 4
TREND_DELTA: float = 5.0

# Skill score: weight of an analysis is SKILL_RECENCY_DECAY ** age
# (age 0 = newest analysis demonstrating the skill)
SKILL_RECENCY_DECAY: float = 0.8
SKILL_EXPERIENCE_BONUS: float = 1.0
SKILL_EXPERIENCE_BONUS_CAP: int = 5

# Fixed policy, not configurable per user
STRONG_SKILL_THRESHOLD: int = 85

DASHBOARD_RECENT_COUNT: int = 5

# Words in a new-violation description that mark it critical when the
# inference step did not supply a severity
CRITICAL_KEYWORDS: tuple[str, ...] = (
    "shock",
    "electrocution",
    "fire hazard",
    "exposed live",
    "energized",
    "ungrounded",
    "no ground",
    "arcing",
    "scorch",
    "melted",
)

# --- Storage ---

ANALYSES_TABLE: str = os.environ.get("ANALYSES_TABLE", "analyses")
PROFILES_TABLE: str = os.environ.get("PROFILES_TABLE", "profiles")
SKILL_SCORES_TABLE: str = os.environ.get("SKILL_SCORES_TABLE", "skill_scores")
USER_INDEX: str = os.environ.get("USER_INDEX", "user_id-created_at-index")
PHOTO_BUCKET: str = os.environ.get("PHOTO_BUCKET", "tradeproof-photos")

# --- Credential ---

CREDENTIAL_PATH_PREFIX: str = "/credential/"
