# gnarhub/constants/booking.py
"""
Business limits and status groupings shared by validators, crud and services.
"""

RATE_MIN = 20
RATE_MAX = 500
MESSAGE_MAX_LENGTH = 1000
NOTES_MAX_LENGTH = 500
REVIEW_TEXT_MAX_LENGTH = 1000
SANITIZED_MAX_LENGTH = 2000

RATING_MIN = 1
RATING_MAX = 5

# Discovery defaults for upcoming-session browsing
UPCOMING_DAYS_DEFAULT = 14
UPCOMING_LIMIT_DEFAULT = 50

# Firestore-era collection names, kept so stored documents stay compatible
COLLECTION_SESSIONS = "sessions"
COLLECTION_REQUESTS = "sessionRequests"
# One marker per (session, rider) pointing at the rider's latest request
COLLECTION_ACTIVE_REQUESTS = "activeRequests"
COLLECTION_CONVERSATIONS = "conversations"
COLLECTION_REVIEWS = "reviews"
COLLECTION_USERS = "users"
