"""
System Constants and Enumerations

This module defines the constants shared across the menu TTS cache service:
cache tier identifiers, placement strategies, key prefixes, protocol
constants for the object store and the speech provider, and the default
prewarm phrase list.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers
- Type-safe enums for tier and strategy names
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Request processing stages used as the ``stage`` field of log entries.

    Format: {SEQUENCE}_{DESCRIPTIVE_NAME}
    """

    # Request lifecycle
    INITIALIZATION = "0.0_INITIALIZATION"
    KEY_DERIVATION = "1.0_KEY_DERIVATION"
    EDGE_LOOKUP = "2.1_EDGE_LOOKUP"
    OBJECT_STORE_LOOKUP = "2.2_OBJECT_STORE_LOOKUP"
    BLOB_LOOKUP = "2.3_BLOB_LOOKUP"
    CACHE_STORE = "2.4_CACHE_STORE"
    CACHE_BACKFILL = "2.5_CACHE_BACKFILL"
    CACHE_INVALIDATE = "2.6_CACHE_INVALIDATE"
    SYNTHESIS = "3.0_SYNTHESIS"
    METRICS_RECORD = "4.0_METRICS_RECORD"
    CLEANUP = "6.0_CLEANUP"

    # Cross-cutting concerns
    TOKEN = "T_ACCESS_TOKEN"
    SIGNING = "S_REQUEST_SIGNING"
    PREWARM = "P_PREWARM"
    METRICS = "M_METRICS_COLLECTION"


# ============================================================================
# Cache Tiers
# ============================================================================


class CacheTier(str, Enum):
    """
    Storage tiers, fastest first.

    EDGE: Redis key-value store close to the service
    OBJECT_STORE: S3-compatible bucket (durable)
    BLOB: public blob store (durable fallback)
    MISS: no tier had the entry
    """

    EDGE = "edge"
    OBJECT_STORE = "object-store"
    BLOB = "blob"
    MISS = "miss"


class PlacementStrategy(str, Enum):
    """
    Where freshly synthesized audio is written.

    EAGER: every tier, and blob hits are promoted into the object store
    STANDARD: every tier
    MINIMAL: edge tier only
    """

    EAGER = "eager"
    STANDARD = "standard"
    MINIMAL = "minimal"


# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_REQUEST_ID = "X-Request-ID"
HEADER_CACHE_TIER = "X-Cache-Tier"
HEADER_CACHE_KEY = "X-Cache-Key"

AUDIO_CONTENT_TYPE = "audio/mpeg"
METADATA_CONTENT_TYPE = "application/json"
AUDIO_CACHE_CONTROL = "public, max-age=31536000, immutable"

# ============================================================================
# Key Formats
# ============================================================================

EDGE_KEY_PREFIX = "tts:audio"
AUDIO_OBJECT_SUFFIX = ".mp3"
METADATA_OBJECT_SUFFIX = ".json"
BLOB_NAMESPACE = "tts-cache"

# ============================================================================
# Object Store Signing Protocol
# ============================================================================

SIGNING_ALGORITHM = "AWS4-HMAC-SHA256"
SIGNING_SERVICE = "s3"
SIGNING_TERMINATOR = "aws4_request"
SIGNED_HEADERS = "host;x-amz-content-sha256;x-amz-date"
METADATA_HEADER_PREFIX = "x-amz-meta-"

# ============================================================================
# Speech Provider Protocol
# ============================================================================

SPEECH_LANGUAGE = "ja-JP"
SPEECH_VOICE = "ja-JP-NanamiNeural"
SPEECH_PROSODY_VOLUME = "+100%"
SPEECH_OUTPUT_FORMAT = "audio-16khz-32kbitrate-mono-mp3"
SSML_CONTENT_TYPE = "application/ssml+xml"
SUBSCRIPTION_KEY_HEADER = "Ocp-Apim-Subscription-Key"
OUTPUT_FORMAT_HEADER = "X-Microsoft-OutputFormat"

# ============================================================================
# Time Constants (seconds)
# ============================================================================

EDGE_TTL_SECONDS = 365 * 24 * 60 * 60  # one year
TOKEN_LIFETIME_SECONDS = 10 * 60  # provider tokens live ten minutes
TOKEN_REFRESH_MARGIN_SECONDS = 60
SECONDS_PER_DAY = 24 * 60 * 60

# ============================================================================
# Usage Metrics Thresholds
# ============================================================================

METRIC_RETENTION_DAYS = 30
MOVING_AVERAGE_WINDOW = 10
POPULARITY_DECAY_DAYS = 30
EAGER_MIN_HITS = 20
EAGER_RECENT_MIN_HITS = 5
EAGER_RECENT_MAX_DAYS = 7
MINIMAL_MAX_HITS = 2
MINIMAL_MIN_IDLE_DAYS = 30
RECENT_ACTIVITY_DAYS = 7
ANALYSIS_TOP_N = 10

# ============================================================================
# Default Prewarm Phrases
# ============================================================================

DEFAULT_PREWARM_PHRASES: tuple[str, ...] = (
    # grilled meats
    "上ロース", "中ロース", "特上ハラミ", "上ハラミ", "並ハラミ",
    "上ヒレ肉", "上ミスジ", "上カルビ", "上赤身", "並赤身",
    "中切り落とし", "並切り落とし", "骨付きカルビ", "特撰上ロース", "特撰上カルビ",
    # offal
    "上ミノ", "並ミノ", "上タン", "並タン", "ミックスホルモン",
    "ギアラ", "ホルモン", "ハツ", "センマイ", "子袋",
    "しびれ塩", "ナンコツ塩", "レバ塩",
    # other
    "ひな鳥", "いか焼き", "豚足", "季節の焼野菜",
    # soups
    "コムタンスープ", "玉子スープ", "野菜スープ", "わかめスープ",
    "わかめ玉子スープ", "もやしスープ", "ほほ肉スープ",
    # rice
    "コムタン", "カルビクッパ", "クッパ", "のりクッパ",
    "わかめクッパ", "ビビンバ", "ライス", "大ライス",
)
