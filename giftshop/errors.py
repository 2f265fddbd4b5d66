class GiftShopError(Exception):
    """Base class for gift shop errors."""


class InvalidGiftState(GiftShopError):
    """The gift is not in a state that allows the requested transition."""

    def __init__(self, gift_id: int, message: str = "") -> None:
        self.gift_id = gift_id
        super().__init__(message or f"Gift {gift_id} is not in a valid state for this operation")


class PaymentProviderError(GiftShopError):
    """The payment provider rejected or failed to create a payment."""
