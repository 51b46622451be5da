"""Client for the external payment-authorization service."""
