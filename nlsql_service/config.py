import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

# ---- Scoring ----
CONFIDENCE_THRESHOLD = float(os.getenv("CONFIDENCE_THRESHOLD", "0.7"))
FUZZY_THRESHOLD = float(os.getenv("FUZZY_THRESHOLD", "0.8"))

# "latest" annotates the most recent history entry with the same SQL text,
# "all" annotates every entry with the same SQL text.
FEEDBACK_MATCH = os.getenv("FEEDBACK_MATCH", "latest")

# ---- Pagination ----
DEFAULT_LIMIT = int(os.getenv("DEFAULT_LIMIT", "10"))
MAX_LIMIT = int(os.getenv("MAX_LIMIT", "1000"))

# ---- Service ----
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
DATABASE_URL = os.getenv("DATABASE_URL", "")

FEEDBACK_STRATEGIES = ("latest", "all")


@dataclass(frozen=True)
class Settings:
    confidence_threshold: float = CONFIDENCE_THRESHOLD
    fuzzy_threshold: float = FUZZY_THRESHOLD
    feedback_match: str = FEEDBACK_MATCH
    default_limit: int = DEFAULT_LIMIT
    max_limit: int = MAX_LIMIT

    def __post_init__(self):
        if self.feedback_match not in FEEDBACK_STRATEGIES:
            raise ValueError(
                f"feedback_match must be one of {FEEDBACK_STRATEGIES}, "
                f"got '{self.feedback_match}'"
            )
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be within [0, 1]")
        if not 0.0 <= self.fuzzy_threshold <= 1.0:
            raise ValueError("fuzzy_threshold must be within [0, 1]")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            confidence_threshold=float(os.getenv("CONFIDENCE_THRESHOLD", str(CONFIDENCE_THRESHOLD))),
            fuzzy_threshold=float(os.getenv("FUZZY_THRESHOLD", str(FUZZY_THRESHOLD))),
            feedback_match=os.getenv("FEEDBACK_MATCH", FEEDBACK_MATCH),
            default_limit=int(os.getenv("DEFAULT_LIMIT", str(DEFAULT_LIMIT))),
            max_limit=int(os.getenv("MAX_LIMIT", str(MAX_LIMIT))),
        )
