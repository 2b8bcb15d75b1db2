"""Raffle operator: a keeper-driven, VRF-resolved raffle."""

__version__ = "1.0.0"
