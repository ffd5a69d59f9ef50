"""Recurring job entrypoints referenced from the schedule config."""

__all__ = [
    "cleanup",
    "no_shows",
    "tiers",
    "webhooks",
]
