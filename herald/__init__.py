"""Herald: mention relay and conversation context for WhatsApp groups."""

__version__ = "0.4.0"
