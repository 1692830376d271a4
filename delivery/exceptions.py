class TransportError(Exception):
    """The outbound transport could not hand the message to the provider."""


class DeliveryLogError(Exception):
    """The provider's delivery-log API returned an unusable response."""
