"""Connection constants for the enrollment handshake."""

# Default TLS port
SSL_PORT = 443

# Bound in seconds on connect and handshake socket operations
TIMEOUT = 10.0

# Auth type reported when the cipher could not be determined
AUTH_TYPE_UNKNOWN = "UNKNOWN"
