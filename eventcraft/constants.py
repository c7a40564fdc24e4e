INQUIRY_STATUSES = {
    "pending": "Pending",
    "contacted": "Contacted",
    "completed": "Completed",
    "cancelled": "Cancelled",
}

STATUS_PENDING = "pending"

# limiter action keys
ACTION_INQUIRY = "inquiry"

RATE_LIMIT_WINDOW_MS = 60_000
MAX_REQUESTS_PER_WINDOW = 3
RATE_LIMIT_KEY_PREFIX = "rateLimit_"

SHORT_ID_LEN = 8
