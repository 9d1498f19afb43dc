"""Cabin booking engine: inventory locking, holds and refund resolution."""
