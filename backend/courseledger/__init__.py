"""Booking lifecycle and billing-document engine for the course admin console."""

__version__ = "0.1.0"
