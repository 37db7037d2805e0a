"""
Concurrency control for earnings operations.

Two mechanisms, used together:

1. DistributedLock: Redis mutual exclusion (django-redis). Held around
   operations that call PayPal, where a database row lock cannot be kept
   open across the network call. A double-clicked "process payout" takes
   the same key twice and the second caller gets LockAcquisitionError.

2. Row locks: select_for_update() inside transaction.atomic(). Every
   balance mutation locks the earning or payout request first and the
   seller row second. lock_seller() and check_version() are the helpers.

Usage:
    from earnings.locks import DistributedLock, lock_seller

    with DistributedLock(f"payout:process:{request_id}", ttl=60):
        ...

    with transaction.atomic():
        seller = lock_seller(seller_id)
        ...
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.db import models, transaction

from django_redis import get_redis_connection

from core.exceptions import NotFoundError
from earnings.exceptions import (
    LockAcquisitionError,
    SellerAccountNotFound,
    StaleRecordError,
)

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

    from earnings.models import SellerAccount

T = TypeVar("T", bound=models.Model)


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis lock with a TTL and an ownership token.

    The TTL frees the key if the holder crashes. Release and extend only
    touch the key while it still carries our token, so a lock that expired
    and was taken by another worker is never released by us.

    Args:
        key: Lock identifier, stored as "lock:<key>"
        ttl: Seconds until the key expires on its own
        blocking: Wait up to ``timeout`` seconds instead of failing at once
        timeout: Maximum wait in blocking mode
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    POLL_INTERVAL = 0.05

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def _try_acquire(self, redis: Redis) -> bool:
        return bool(redis.set(self.key, self._token, nx=True, ex=self.ttl))

    def acquire(self) -> bool:
        """
        Take the lock.

        Raises:
            LockAcquisitionError: Another holder kept it past the timeout
                (blocking) or holds it right now (non-blocking)
        """
        self._token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if not self.blocking:
            if self._try_acquire(redis):
                return True
            self._token = None
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )

        deadline = time.monotonic() + self.timeout
        while time.monotonic() < deadline:
            if self._try_acquire(redis):
                return True
            time.sleep(self.POLL_INTERVAL)

        self._token = None
        raise LockAcquisitionError(
            f"Failed to acquire lock '{self.key}' within {self.timeout}s",
            details={"key": self.key, "timeout": self.timeout},
        )

    def release(self) -> bool:
        """Release the lock if we still own it. Safe to call twice."""
        if self._token is None:
            return False
        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, ttl: int | None = None) -> bool:
        """Reset the remaining TTL to ``ttl`` (default: the original TTL)."""
        if self._token is None:
            return False
        result = self._get_redis().eval(
            self.EXTEND_SCRIPT, 1, self.key, self._token, ttl or self.ttl
        )
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


# =============================================================================
# Row Locks
# =============================================================================


def lock_seller(seller_id: Any) -> SellerAccount:
    """
    Lock and return a seller account row.

    Must be called inside transaction.atomic(); the lock lasts until the
    transaction ends.

    Raises:
        SellerAccountNotFound: No such seller
    """
    from earnings.models import SellerAccount

    try:
        return SellerAccount.objects.select_for_update().get(pk=seller_id)
    except SellerAccount.DoesNotExist:
        raise SellerAccountNotFound(
            f"Seller account {seller_id} not found",
            details={"seller_id": str(seller_id)},
        )


def check_version(
    model_class: type[T],
    pk: Any,
    expected_version: int,
) -> T:
    """
    Lock a record only if it is still at ``expected_version``.

    Used by operator actions that were decided on a version the caller
    displayed (e.g. changing a seller's status from the admin screen).

    Raises:
        StaleRecordError: The record was modified since it was read
        NotFoundError: The record does not exist
    """
    with transaction.atomic():
        instance = (
            model_class.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )
        if instance is not None:
            return instance

        model_name = model_class.__name__
        current = model_class.objects.filter(pk=pk).values_list("version", flat=True).first()
        if current is None:
            raise NotFoundError(
                f"{model_name} {pk} not found",
                error_code=f"{model_name.upper()}_NOT_FOUND",
                details={"pk": str(pk)},
            )

        raise StaleRecordError(
            f"{model_name} {pk} has been modified "
            f"(expected version {expected_version}, current {current})",
            details={
                "pk": str(pk),
                "expected_version": expected_version,
                "current_version": current,
            },
        )


__all__ = [
    "DistributedLock",
    "check_version",
    "lock_seller",
]
