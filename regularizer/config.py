# regularizer/config.py
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple
from dotenv import load_dotenv
import os

load_dotenv()

# API Keys
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

# Data sources
DATASET_DB = os.getenv("DATASET_DB", "saaq_data.sqlite")
CATALOG_DB = os.getenv("CATALOG_DB", "cvs_complete.sqlite")

# Year windows (inclusive)
REFERENCE_YEARS = (2011, 2022)
EVALUATION_YEARS = (2023, 2024)

# Similarity parameters
SIMILARITY_FLOOR = 0.4
PRIMARY_SIMILARITY_THRESHOLD = 0.7
NORMALIZATION_BOOST = 0.99
NUMERIC_DIVERGENCE_THRESHOLD = 0.15
SEPARATOR = "-"

# Validator parameters
TEMPORAL_GRACE_YEARS = 2
TEMPORAL_FIELD = os.getenv("TEMPORAL_FIELD", "registration")  # or "model_year"

# Vehicle type inference (optional)
PASSENGER_VEHICLE_TYPES = frozenset({"PAU", "CAU", "VUS"})
MOTORCYCLE_TYPES = frozenset({"MOTO", "CYC", "CYCL", "PMC", "CMC", "RMC"})
SPECIALIZED_TYPES = frozenset({"MONE", "AGRI", "CONS", "TRAC", "HMN", "HVO", "HVT", "CVO", "RMN", "HOT", "ROT"})
SIMILARITY_THRESHOLD_PASSENGER = 0.75
SIMILARITY_THRESHOLD_OTHER = 0.65

# Arbitration thresholds
REFERENCE_OVERRIDE_CONFIDENCE = 0.9
TEMPORAL_OVERRIDE_CONFIDENCE = 0.8
CLASSIFIER_MIN_CONFIDENCE = 0.7

# Runtime parameters
CONCURRENCY = int(os.getenv("CONCURRENCY", "20"))
CLASSIFIER_RATE = int(os.getenv("CLASSIFIER_RATE", "50"))  # requests per second
CLASSIFIER_TIMEOUT = float(os.getenv("CLASSIFIER_TIMEOUT", "60"))
PROGRESS_EVERY = 10
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Known make misspellings seen in the evaluation years
MAKE_ALIASES: Dict[str, str] = {
    "VOLV0": "VOLVO",
    "HOND": "HONDA",
    "TOYOT": "TOYOTA",
    "MERCE": "MERCEDES-BENZ",
    "CHEVR": "CHEVROLET",
    "VOLKSW": "VOLKSWAGEN",
    "MAZD": "MAZDA",
}

# File names
REPORT_PATH = os.getenv("REPORT_PATH", "make_model_decisions.csv")
MARKDOWN_REPORT_PATH = os.getenv("MARKDOWN_REPORT_PATH", "make_model_report.md")


@dataclass(frozen=True)
class ResolverSettings:
    """Per-run tunables. Defaults come from the module constants above."""
    similarity_floor: float = SIMILARITY_FLOOR
    primary_threshold: float = PRIMARY_SIMILARITY_THRESHOLD
    normalization_boost: float = NORMALIZATION_BOOST
    numeric_threshold: Optional[float] = NUMERIC_DIVERGENCE_THRESHOLD  # None disables the veto
    separator: str = SEPARATOR
    make_aliases: Dict[str, str] = field(default_factory=lambda: dict(MAKE_ALIASES))
    category_filter: bool = False
    two_pass: bool = False
    type_inference: bool = False
    match_other_types: bool = False  # with type_inference: match non-passenger pairs too
    passenger_threshold: float = SIMILARITY_THRESHOLD_PASSENGER
    other_threshold: float = SIMILARITY_THRESHOLD_OTHER
    temporal_grace_years: int = TEMPORAL_GRACE_YEARS
    temporal_field: str = TEMPORAL_FIELD
    reference_override_confidence: float = REFERENCE_OVERRIDE_CONFIDENCE
    temporal_override_confidence: float = TEMPORAL_OVERRIDE_CONFIDENCE
    classifier_min_confidence: float = CLASSIFIER_MIN_CONFIDENCE
    concurrency: int = CONCURRENCY
    classifier_timeout: float = CLASSIFIER_TIMEOUT
    progress_every: int = PROGRESS_EVERY
    reference_years: Tuple[int, int] = REFERENCE_YEARS
    evaluation_years: Tuple[int, int] = EVALUATION_YEARS
