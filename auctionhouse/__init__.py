"""Timed auctions with batched bidding over HTTP, stored in MongoDB."""

__version__ = "0.1.0"