"""Randomness coordinator and payout collaborators."""
