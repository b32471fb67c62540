"""Service-desk ticketing API with real-time notifications and ticket chat."""
