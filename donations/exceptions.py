class DonationError(Exception):
    """Base class for donation lifecycle errors."""


class DonationNotFound(DonationError):
    pass


class InvalidState(DonationError):
    """Operation not allowed for the donation's current status."""


class SignatureInvalid(DonationError):
    pass


class AmountMismatch(DonationError):
    def __init__(self, expected: int, reported: int):
        super().__init__(f"expected {expected} paise, gateway reported {reported}")
        self.expected = expected
        self.reported = reported


class ReceiptNotReady(DonationError):
    pass


class ImmutableFieldError(DonationError):
    """A write-once donation field was changed after creation."""
