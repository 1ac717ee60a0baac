"""Application-wide constants.

This module centralizes magic numbers and configuration constants
that are used across multiple modules. For environment-specific
configuration, see config.py.
"""

# =============================================================================
# Pagination Defaults
# =============================================================================

# Default page size for the conversation list
CONVERSATIONS_PAGE_SIZE: int = 20

# Default page size for conversation messages
CONVERSATION_MESSAGES_PAGE_SIZE: int = 50

# Maximum page size to prevent abuse
MAX_PAGE_SIZE: int = 100

# =============================================================================
# Messaging
# =============================================================================

# Conversation preview stored for image messages
IMAGE_MESSAGE_PREVIEW: str = "Image"

# Message content limits
MESSAGE_CONTENT_MAX_LENGTH: int = 5000
IMAGE_URL_MAX_LENGTH: int = 10 * 1024 * 1024

# Redirect hops followed when fetching a remote chat image
MAX_IMAGE_REDIRECTS: int = 3

# Conversations processed per batch by the unread reconciliation job
RECONCILIATION_BATCH_SIZE: int = 500

# =============================================================================
# Live channel
# =============================================================================

# Close code used when a socket fails authentication at connect time
WS_CLOSE_UNAUTHENTICATED: int = 4001

# Fixed error texts for channel-scoped error events
WS_ERROR_JOIN: str = "Cannot join conversation"
WS_ERROR_SEND: str = "Failed to send message"
WS_ERROR_NOT_IN_ROOM: str = "Not subscribed to conversation"
WS_ERROR_DELIVERED: str = "Failed to update message status"
WS_ERROR_READ: str = "Failed to mark messages as read"
WS_ERROR_INVALID_PAYLOAD: str = "Invalid payload"
WS_ERROR_UNKNOWN_EVENT: str = "Unknown event"
WS_ERROR_INTERNAL: str = "Failed to process event"
