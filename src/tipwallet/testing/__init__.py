"""Test doubles for tipwallet."""

from .engine import InMemoryPaymentEngine

__all__ = ["InMemoryPaymentEngine"]
