"""Configuration constants, paths, and thresholds."""

import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Load .env if present
# ---------------------------------------------------------------------------
BASE_DIR = Path(__file__).parent.parent
_env_path = BASE_DIR / ".env"
if _env_path.exists():
    for _line in _env_path.read_text().splitlines():
        _line = _line.strip()
        if _line and not _line.startswith("#") and "=" in _line:
            _k, _, _v = _line.partition("=")
            os.environ.setdefault(_k.strip(), _v.strip().strip("\"'"))

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
POLICY_DIR = Path(os.environ.get("POLICY_DIR", str(BASE_DIR / "data" / "policy")))
OUTPUT_DIR = BASE_DIR / "output"
OUTPUT_PATH = OUTPUT_DIR / "detections.json"

# File-name prefixes of the two policy bodies inside POLICY_DIR
FAR_FILE_PREFIX = os.environ.get("FAR_FILE_PREFIX", "2023-03-20_FARMatrix_")
FAR_EXCLUDED_TABLES = ("Definitions",)
INSTITUTION_FILE_PREFIX = os.environ.get("INSTITUTION_FILE_PREFIX", "ContractTs&CsMatrix_")
POLICY_FILE_SUFFIXES = (".csv", ".xlsx")

# ---------------------------------------------------------------------------
# Matching Thresholds
# ---------------------------------------------------------------------------
FUZZY_THRESHOLD = float(os.environ.get("FUZZY_THRESHOLD", "0.35"))
MIN_PARAGRAPH_LENGTH = 20
MISSING_CLAUSE_CONFIDENCE = 0.9

# ---------------------------------------------------------------------------
# Clause Classifier Settings
# ---------------------------------------------------------------------------
USE_AI = os.environ.get("USE_AI", "1").lower() in ("1", "true", "yes")
CLASSIFIER_MODEL = os.environ.get("CLASSIFIER_MODEL", "typeform/mobilebert-uncased-mnli")
CLASSIFIER_DEVICE = int(os.environ.get("CLASSIFIER_DEVICE", "-1"))  # -1 = CPU
AI_MIN_CONFIDENCE = float(os.environ.get("AI_MIN_CONFIDENCE", "0.3"))
AI_MIN_PARAGRAPH_LENGTH = 50
