"""In-process randomness coordinator modelled on the VRF v2 coordinator mock."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from web3 import Web3

from raffle.lottery.errors import UnknownRequest
from raffle.utils.common import SystemClock, normalize_address
from raffle.utils.logger import get_logger

logger = get_logger(__name__)

BASE_FEE = Web3.to_wei("0.25", "ether")  # LINK per request
GAS_PRICE_LINK = 10**9  # LINK per gas

MIN_REQUEST_CONFIRMATIONS = 3
MAX_REQUEST_CONFIRMATIONS = 200
MAX_NUM_WORDS = 500
MAX_CALLBACK_GAS_LIMIT = 2_500_000

FulfillCallback = Callable[[int, List[int]], object]


class CoordinatorError(Exception):
    """Base class of coordinator bookkeeping errors."""


class InvalidSubscription(CoordinatorError):
    pass


class InvalidConsumer(CoordinatorError):
    pass


class InsufficientBalance(CoordinatorError):
    pass


@dataclass
class Subscription:
    sub_id: int
    owner: str
    balance: int = 0
    request_count: int = 0
    consumers: Dict[str, FulfillCallback] = field(default_factory=dict, repr=False)


@dataclass
class RandomnessRequest:
    request_id: int
    sub_id: int
    key_hash: str
    request_confirmations: int
    callback_gas_limit: int
    num_words: int
    consumer: str
    requested_at: int


def default_random_words(request_id: int, num_words: int) -> List[int]:
    """Words the mock derives when none are supplied: keccak256(abi.encode(id, i))."""
    return [
        int.from_bytes(Web3.solidity_keccak(["uint256", "uint256"], [request_id, i]), "big")
        for i in range(num_words)
    ]


class VRFCoordinatorMock:
    """Subscription-based randomness coordinator.

    Requests are answered later through ``fulfill_random_words``, which calls
    the consumer callback registered with ``add_consumer``.
    """

    def __init__(self, base_fee: int = BASE_FEE, gas_price_link: int = GAS_PRICE_LINK, clock=None) -> None:
        self.base_fee = base_fee
        self.gas_price_link = gas_price_link
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._subscriptions: Dict[int, Subscription] = {}
        self._requests: Dict[int, RandomnessRequest] = {}
        self._current_sub_id = 0
        self._next_request_id = 1
        logger.info(f"VRF coordinator mock ready (base fee {base_fee}, gas price {gas_price_link})")

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def create_subscription(self, owner: str) -> int:
        with self._lock:
            self._current_sub_id += 1
            sub_id = self._current_sub_id
            self._subscriptions[sub_id] = Subscription(sub_id=sub_id, owner=normalize_address(owner))
        logger.info(f"Subscription {sub_id} created for {owner}")
        return sub_id

    def fund_subscription(self, sub_id: int, amount: int) -> int:
        if amount <= 0:
            raise ValueError("Funding amount must be positive")
        with self._lock:
            sub = self._get_subscription(sub_id)
            sub.balance += amount
            balance = sub.balance
        logger.info(f"Subscription {sub_id} funded with {amount}, balance {balance}")
        return balance

    def add_consumer(self, sub_id: int, consumer: str, callback: FulfillCallback) -> None:
        consumer = normalize_address(consumer)
        with self._lock:
            self._get_subscription(sub_id).consumers[consumer] = callback
        logger.info(f"Consumer {consumer} added to subscription {sub_id}")

    def remove_consumer(self, sub_id: int, consumer: str) -> None:
        consumer = normalize_address(consumer)
        with self._lock:
            sub = self._get_subscription(sub_id)
            if consumer not in sub.consumers:
                raise InvalidConsumer(f"{consumer} is not a consumer of subscription {sub_id}")
            del sub.consumers[consumer]

    def get_subscription(self, sub_id: int) -> Subscription:
        with self._lock:
            return self._get_subscription(sub_id)

    def _get_subscription(self, sub_id: int) -> Subscription:
        sub = self._subscriptions.get(sub_id)
        if sub is None:
            raise InvalidSubscription(f"Subscription {sub_id} does not exist")
        return sub

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def request_random_words(
        self,
        key_hash: str,
        sub_id: int,
        request_confirmations: int,
        callback_gas_limit: int,
        num_words: int,
        consumer: str,
    ) -> int:
        if not MIN_REQUEST_CONFIRMATIONS <= request_confirmations <= MAX_REQUEST_CONFIRMATIONS:
            raise ValueError(f"Invalid request confirmations: {request_confirmations}")
        if not 1 <= num_words <= MAX_NUM_WORDS:
            raise ValueError(f"Invalid number of words: {num_words}")
        if callback_gas_limit > MAX_CALLBACK_GAS_LIMIT:
            raise ValueError(f"Callback gas limit too big: {callback_gas_limit}")
        consumer = normalize_address(consumer)

        with self._lock:
            sub = self._get_subscription(sub_id)
            if consumer not in sub.consumers:
                raise InvalidConsumer(f"{consumer} is not a consumer of subscription {sub_id}")
            request_id = self._next_request_id
            self._next_request_id += 1
            sub.request_count += 1
            self._requests[request_id] = RandomnessRequest(
                request_id=request_id,
                sub_id=sub_id,
                key_hash=key_hash,
                request_confirmations=request_confirmations,
                callback_gas_limit=callback_gas_limit,
                num_words=num_words,
                consumer=consumer,
                requested_at=self._clock.now(),
            )
        logger.info(f"RandomWordsRequested: request {request_id} from {consumer} on subscription {sub_id}")
        return request_id

    def pending_requests(self) -> List[RandomnessRequest]:
        with self._lock:
            return sorted(self._requests.values(), key=lambda req: req.request_id)

    def fulfillment_cost(self, request: RandomnessRequest) -> int:
        return self.base_fee + request.callback_gas_limit * self.gas_price_link

    def fulfill_random_words(
        self,
        request_id: int,
        consumer: str,
        words: Optional[Sequence[int]] = None,
    ) -> List[int]:
        """Deliver random words for ``request_id`` to its consumer.

        When the consumer callback raises, the request stays pending and the
        error propagates; the subscription is only charged on success.
        """
        consumer = normalize_address(consumer)
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                raise UnknownRequest(request_id)
            if request.consumer != consumer:
                raise InvalidConsumer(f"Request {request_id} belongs to {request.consumer}, not {consumer}")
            sub = self._get_subscription(request.sub_id)
            callback = sub.consumers.get(consumer)
            if callback is None:
                raise InvalidConsumer(f"{consumer} is not a consumer of subscription {request.sub_id}")
            payment = self.fulfillment_cost(request)
            if sub.balance < payment:
                raise InsufficientBalance(
                    f"Subscription {request.sub_id} balance {sub.balance} cannot cover {payment}"
                )

        if words is None:
            random_words = default_random_words(request_id, request.num_words)
        else:
            random_words = [int(w) for w in words]
            if len(random_words) != request.num_words:
                raise ValueError(
                    f"Request {request_id} expects {request.num_words} words, got {len(random_words)}"
                )

        # Consumer takes its own lock; the coordinator lock must not be held here.
        callback(request_id, random_words)

        with self._lock:
            if self._requests.pop(request_id, None) is not None:
                self._subscriptions[request.sub_id].balance -= payment
        logger.info(f"RandomWordsFulfilled: request {request_id}, payment {payment}")
        return random_words
