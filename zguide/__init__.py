"""Reliable request-reply patterns over ZeroMQ: Majordomo, Titanic, Freelance, Pirates, load balancing and key-value messages."""

__version__ = "0.1.0"