"""Tunable weights, thresholds and vocabularies used by the scoring engine."""

SEMANTIC_KEYWORDS = [
    "menu",
    "order",
    "pay",
    "checkout",
    "product",
    "service",
    "book",
    "reserve",
]

SENSITIVE_PARAM_TERMS = [
    "password",
    "token",
    "secret",
    "key",
    "credit",
    "card",
    "ssn",
    "social",
    "account",
    "bank",
    "payment",
]

SECURE_SCHEMES = ("https", "wss")
MAX_URL_LENGTH = 2048

# Feature weights
DOMAIN_SEGMENT_WEIGHT = 0.3
DOMAIN_LENGTH_WEIGHT = 0.01

# Performance model
COMPLEXITY_SEGMENT_WEIGHT = 0.1
COMPLEXITY_PARAM_WEIGHT = 0.05
COMPLEXITY_LENGTH_WEIGHT = 0.001
PERFORMANCE_COMPLEXITY_WEIGHT = 0.3
PERFORMANCE_MEMORY_WEIGHT = 0.5
PERFORMANCE_CACHE_WEIGHT = 0.2
MEMORY_CEILING_MB = 10.0
BASE_LOAD_TIME = 0.5
SIMILAR_URL_LIMIT = 10

BASELINE_RESOURCES = {
    "memory_mb": 4.0,
    "cpu_percent": 0.2,
    "network_bytes": 1024,
    "disk_bytes": 512,
}

# Security model
INSECURE_SCHEME_RISK = 0.3
SUSPICIOUS_DOMAIN_RISK = 0.5
NEW_DOMAIN_RISK = 0.2
LOW_REPUTATION_RISK = 0.3
SENSITIVE_PARAM_RISK = 0.2
NEW_DOMAIN_AGE_DAYS = 30
LOW_REPUTATION_THRESHOLD = 0.5

RISK_MEDIUM_THRESHOLD = 0.2
RISK_HIGH_THRESHOLD = 0.5
RISK_CRITICAL_THRESHOLD = 0.8

# Recommender thresholds
MAX_PATH_SEGMENTS = 5
MAX_QUERY_PARAMS = 10
HIGH_MEMORY_MB = 8.0
HIGH_CPU_PERCENT = 0.8
HIGH_NETWORK_LATENCY_MS = 200.0

# Learning
RETRAIN_THRESHOLD = 1000
HISTORY_CAPACITY = 100
PATTERN_MIN_FREQUENCY = 2
MAX_FREQUENT_PATHS = 10

# Intent rule table: keyword -> intent name. Matched against path segments,
# query keys and host labels.
INTENT_KEYWORDS = {
    "purchase": [
        "checkout",
        "cart",
        "pay",
        "buy",
        "order",
        "purchase",
        "billing",
        "subscribe",
    ],
    "booking": [
        "book",
        "booking",
        "reserve",
        "reservation",
        "appointment",
        "schedule",
        "ticket",
        "table",
    ],
    "browse": [
        "menu",
        "product",
        "products",
        "catalog",
        "shop",
        "store",
        "category",
        "collection",
        "item",
    ],
    "information": [
        "about",
        "info",
        "help",
        "faq",
        "support",
        "contact",
        "hours",
        "location",
        "docs",
        "service",
    ],
    "social": ["share", "invite", "friend", "profile", "follow", "community"],
    "entertainment": ["play", "game", "video", "music", "watch", "stream", "event"],
    "productivity": [
        "task",
        "note",
        "calendar",
        "document",
        "upload",
        "scan",
        "form",
        "dashboard",
    ],
}

# Behavior action -> intent label used to derive training samples.
ACTION_INTENT_LABELS = {
    "purchase": "purchase",
    "search": "information",
    "navigation": "browse",
    "url_access": "browse",
}
