"""Stateless converters between the canonical model and each backend wire format."""
