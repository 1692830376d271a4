class InvalidTrackingToken(Exception):
    """Click or unsubscribe token failed signature, expiry or type checks."""
