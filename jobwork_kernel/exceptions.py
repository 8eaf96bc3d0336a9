"""
Typed exception hierarchy for the job-work kernel.

Every error has its own class with a class-level ``code`` (machine-readable,
API-safe) and carries its context as attributes rather than only in the
message string, so callers catch by type and read structured data.

    JobWorkKernelError (base)
    |
    +-- VoucherError
    |   +-- VoucherNotFoundError
    |   +-- VoucherAlreadyCompletedError
    |   +-- DuplicateVoucherNumberError
    |   +-- VoucherNotCompletableError
    |
    +-- EventError
    |   +-- InvalidEventError
    |   +-- DuplicateEventIdError
    |   +-- ForwardQuantityExceededError
    |
    +-- NumberingError
    |   +-- InvalidVoucherNumberError
    |
    +-- PaymentError
    |   +-- InvalidPaymentError
    |
    +-- ConfigError
        +-- InvalidConfigError

Derivation engines only raise ``InvalidEventError`` for structurally invalid
input. Missing optional fields, unresolvable senders and unattributable
payments are reported in engine results, never raised.

Code                          | When raised
------------------------------|----------------------------------------------
VOUCHER_NOT_FOUND             | Voucher id / number does not exist
VOUCHER_ALREADY_COMPLETED     | Write attempted on a closed voucher
DUPLICATE_VOUCHER_NUMBER      | Voucher number already issued
VOUCHER_NOT_COMPLETABLE       | Completion refused by analysis, not forced
INVALID_EVENT                 | Event record is structurally invalid
DUPLICATE_EVENT_ID            | Event id already present on the voucher
FORWARD_QUANTITY_EXCEEDED     | Forward exceeds the sender's availability
INVALID_VOUCHER_NUMBER        | Number does not match the configured format
INVALID_PAYMENT               | Negative or otherwise malformed payment
INVALID_CONFIG                | Configuration value out of range
"""


class JobWorkKernelError(Exception):
    """
    Base exception for all job-work kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "JOBWORK_KERNEL_ERROR"


# Voucher-related exceptions


class VoucherError(JobWorkKernelError):
    """Base exception for voucher-related errors."""

    code: str = "VOUCHER_ERROR"


class VoucherNotFoundError(VoucherError):
    """Voucher with given id or number was not found."""

    code: str = "VOUCHER_NOT_FOUND"

    def __init__(self, voucher_ref: str):
        self.voucher_ref = voucher_ref
        super().__init__(f"Voucher not found: {voucher_ref}")


class VoucherAlreadyCompletedError(VoucherError):
    """Voucher carries a completion marker and no longer accepts events."""

    code: str = "VOUCHER_ALREADY_COMPLETED"

    def __init__(self, voucher_no: str):
        self.voucher_no = voucher_no
        super().__init__(f"Voucher {voucher_no} is already completed")


class DuplicateVoucherNumberError(VoucherError):
    """Voucher number has already been issued."""

    code: str = "DUPLICATE_VOUCHER_NUMBER"

    def __init__(self, voucher_no: str):
        self.voucher_no = voucher_no
        super().__init__(f"Voucher number already issued: {voucher_no}")


class VoucherNotCompletableError(VoucherError):
    """Voucher fails completion analysis and completion was not forced."""

    code: str = "VOUCHER_NOT_COMPLETABLE"

    def __init__(self, voucher_no: str, reason: str):
        self.voucher_no = voucher_no
        self.reason = reason
        super().__init__(f"Voucher {voucher_no} cannot be completed: {reason}")


# Event-related exceptions


class EventError(JobWorkKernelError):
    """Base exception for voucher event errors."""

    code: str = "EVENT_ERROR"


class InvalidEventError(EventError):
    """
    Event input is structurally invalid.

    Raised for a non-mapping event record, an unknown ``event_type``,
    a missing ``event_id`` or an unparseable ``timestamp``, or when the
    event collection itself is not a list.
    """

    code: str = "INVALID_EVENT"

    def __init__(self, reason: str, event_id: str | None = None):
        self.reason = reason
        self.event_id = event_id
        where = f" ({event_id})" if event_id else ""
        super().__init__(f"Invalid voucher event{where}: {reason}")


class DuplicateEventIdError(EventError):
    """Event id already exists on the voucher."""

    code: str = "DUPLICATE_EVENT_ID"

    def __init__(self, voucher_no: str, event_id: str):
        self.voucher_no = voucher_no
        self.event_id = event_id
        super().__init__(f"Event {event_id} already exists on voucher {voucher_no}")


class ForwardQuantityExceededError(EventError):
    """Forwarded quantity is larger than what the sender still holds."""

    code: str = "FORWARD_QUANTITY_EXCEEDED"

    def __init__(self, voucher_no: str, sender_id: str, requested: int, available: int):
        self.voucher_no = voucher_no
        self.sender_id = sender_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot forward {requested} pieces on voucher {voucher_no}: "
            f"only {available} available to {sender_id}"
        )


# Numbering exceptions


class NumberingError(JobWorkKernelError):
    """Base exception for voucher numbering errors."""

    code: str = "NUMBERING_ERROR"


class InvalidVoucherNumberError(NumberingError):
    """Voucher number does not match the configured format."""

    code: str = "INVALID_VOUCHER_NUMBER"

    def __init__(self, voucher_no: str):
        self.voucher_no = voucher_no
        super().__init__(f"Invalid voucher number: {voucher_no!r}")


# Payment exceptions


class PaymentError(JobWorkKernelError):
    """Base exception for payment errors."""

    code: str = "PAYMENT_ERROR"


class InvalidPaymentError(PaymentError):
    """Payment record is malformed (e.g. negative amount)."""

    code: str = "INVALID_PAYMENT"

    def __init__(self, reason: str, payment_id: str | None = None):
        self.reason = reason
        self.payment_id = payment_id
        super().__init__(f"Invalid payment: {reason}")


# Configuration exceptions


class ConfigError(JobWorkKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class InvalidConfigError(ConfigError):
    """Configuration value is missing or out of range."""

    code: str = "INVALID_CONFIG"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for {key!r}: {reason}")
