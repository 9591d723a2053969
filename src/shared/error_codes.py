# src/shared/error_codes.py
# Central mapping that aligns with the Error Contract.
# Keep keys stable: API clients and provider integrations rely on these.
ERROR_CODES = {
    # ─── Validation & Requests ──────────────────────────────────────────────
    "validation_error": {
        "http": 422,
        "message": "Validation failed for one or more fields."
    },
    "invalid_request_format": {
        "http": 400,
        "message": "Invalid request format."
    },

    # ─── Authentication ────────────────────────────────────────────────────
    "unauthorized": {
        "http": 401,
        "message": "Unauthorized. Please provide valid credentials."
    },

    # ─── Resources ─────────────────────────────────────────────────────────
    "not_found": {
        "http": 404,
        "message": "Resource not found."
    },
    "duplicate_event": {
        "http": 200,
        "message": "Event already processed."
    },

    # ─── Delivery policy ───────────────────────────────────────────────────
    "rate_limited": {
        "http": 429,
        "message": "Too many requests. Please try again later."
    },
    "recipient_suppressed": {
        "http": 403,
        "message": "Recipient is suppressed on this channel."
    },
    "provider_rejected": {
        "http": 502,
        "message": "The delivery provider rejected the message."
    },

    # ─── Infrastructure ────────────────────────────────────────────────────
    "quota_unavailable": {
        "http": 503,
        "message": "Quota store unavailable. Please retry."
    },
    "store_unavailable": {
        "http": 503,
        "message": "Backing store unavailable."
    },
    "internal_error": {
        "http": 500,
        "message": "Internal server error."
    },
}
