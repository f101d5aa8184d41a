"""Failure classification for retry decisions.

A failure answers to a set of "kinds": its own ``kind`` tag, any
``compatible_kinds`` it declares, and every class in its exception type
hierarchy. A retryable-kinds set matches a failure when the two overlap, so
callers can list tags (``"timeout"``), exception classes (``ConnectionError``)
or a mix of both. Listing a base tag or class retries everything that
declares compatibility with it.
"""

from typing import Any, FrozenSet, Iterable, Optional, Union

from rpcguard.domain.models.common import FailureKindTag

KindSpec = Union[str, type]


class FailureKind:
    """Well-known failure kind tags for RPC transports."""
    TRANSIENT = FailureKindTag("transient")
    TIMEOUT = FailureKindTag("timeout")
    CONNECTION = FailureKindTag("connection")
    SERVER_ERROR = FailureKindTag("server_error")
    RATE_LIMITED = FailureKindTag("rate_limited")
    VALIDATION = FailureKindTag("validation")
    PERMANENT = FailureKindTag("permanent")


class ClassifiedError(Exception):
    """Exception carrying an explicit kind tag for retry classification.

    Subclasses set ``default_kind`` and ``default_compatible_kinds``;
    instances may add more compatible kinds.
    """

    default_kind: FailureKindTag = FailureKind.PERMANENT
    default_compatible_kinds: FrozenSet[str] = frozenset()

    def __init__(
        self,
        message: str = "",
        kind: Optional[str] = None,
        compatible_kinds: Iterable[str] = (),
    ):
        super().__init__(message)
        self.kind = FailureKindTag(kind or self.default_kind)
        self.compatible_kinds = frozenset(self.default_compatible_kinds) | frozenset(compatible_kinds)


class TransientRpcError(ClassifiedError):
    """Base for failures that are usually safe to retry."""
    default_kind = FailureKind.TRANSIENT


class RpcTimeoutError(TransientRpcError):
    default_kind = FailureKind.TIMEOUT
    default_compatible_kinds = frozenset({FailureKind.TRANSIENT})


class RpcConnectionError(TransientRpcError):
    default_kind = FailureKind.CONNECTION
    default_compatible_kinds = frozenset({FailureKind.TRANSIENT})


class RpcServerError(TransientRpcError):
    """Remote endpoint answered with a 5xx status."""
    default_kind = FailureKind.SERVER_ERROR
    default_compatible_kinds = frozenset({FailureKind.TRANSIENT})

    def __init__(self, message: str = "", status_code: Optional[int] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class RpcRateLimitedError(TransientRpcError):
    """Remote endpoint answered 429; ``retry_after`` is in seconds when known."""
    default_kind = FailureKind.RATE_LIMITED
    default_compatible_kinds = frozenset({FailureKind.TRANSIENT})

    def __init__(self, message: str = "", retry_after: Optional[float] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class RpcValidationError(ClassifiedError):
    """The request itself is invalid; retrying cannot help."""
    default_kind = FailureKind.VALIDATION


# Kinds a transport adapter would normally want retried.
DEFAULT_TRANSIENT_KINDS: FrozenSet[KindSpec] = frozenset({
    FailureKind.TRANSIENT,
    ConnectionError,
    TimeoutError,
})


def failure_kinds(failure: BaseException) -> FrozenSet[KindSpec]:
    """Returns every kind tag and class the given failure answers to."""
    kinds = set(type(failure).__mro__)
    kind = getattr(failure, "kind", None)
    if isinstance(kind, str):
        kinds.add(kind)
    compatible = getattr(failure, "compatible_kinds", None)
    if compatible:
        kinds.update(k for k in compatible if isinstance(k, str))
    return frozenset(kinds)


def kind_set(kinds: Union[KindSpec, Iterable[KindSpec]]) -> FrozenSet[KindSpec]:
    """Normalises kinds to a frozenset; a lone tag or class becomes a one-element set."""
    if isinstance(kinds, (str, type)):
        return frozenset({kinds})
    return frozenset(kinds)


def is_retryable(failure: BaseException, retryable_kinds: Union[KindSpec, Iterable[KindSpec]]) -> bool:
    """Checks whether a failure matches any member of ``retryable_kinds``."""
    return not failure_kinds(failure).isdisjoint(kind_set(retryable_kinds))
