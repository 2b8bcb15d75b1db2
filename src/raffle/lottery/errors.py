"""
Raffle errors

Every error is a rejected precondition. Nothing here is recovered inside the
round controller; callers see the exception and the round is left untouched.
"""

from __future__ import annotations

from typing import Optional


class RaffleError(Exception):
    """Base class of all raffle errors."""


class InsufficientPayment(RaffleError):
    """Entry payment below the entrance fee."""

    def __init__(self, amount: int, entrance_fee: int):
        self.amount = amount
        self.entrance_fee = entrance_fee
        super().__init__(f"Payment of {amount} wei is below the entrance fee of {entrance_fee} wei")


class RoundClosed(RaffleError):
    """Entry attempted while a winner is being calculated."""

    def __init__(self, request_id: Optional[int] = None):
        self.request_id = request_id
        super().__init__("Raffle is calculating a winner and does not accept entries")


class UpkeepConditionsNotMet(RaffleError):
    """Round closure attempted while the readiness predicate is false.

    The payload tells the caller which condition failed.
    """

    def __init__(self, state, participant_count: int, balance: int):
        self.state = state
        self.participant_count = participant_count
        self.balance = balance
        super().__init__(
            f"Upkeep not needed (state={getattr(state, 'name', state)}, "
            f"players={participant_count}, balance={balance})"
        )


class PayoutTransferFailed(RaffleError):
    """The pooled balance could not be sent to the winner."""

    def __init__(self, winner: str, amount: int):
        self.winner = winner
        self.amount = amount
        super().__init__(f"Transfer of {amount} wei to {winner} failed")


class UnknownRequest(RaffleError):
    """Fulfilment for a request id that is not outstanding."""

    def __init__(self, request_id: int, reason: str = "nonexistent request"):
        self.request_id = request_id
        super().__init__(f"{reason}: {request_id}")


class InvalidParticipant(RaffleError, ValueError):
    """Participant identifier is not an account address."""
