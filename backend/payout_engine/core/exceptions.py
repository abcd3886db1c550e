"""Exceptions raised by the payout engine."""


class PayoutEngineError(Exception):
    """Base class for payout engine errors."""


class InvalidTransitionError(PayoutEngineError):
    """A tranche status change that is not the single next step."""

    def __init__(self, current, target=None):
        self.current = current
        self.target = target
        if target is None:
            message = f"Cannot advance tranche status past '{getattr(current, 'value', current)}'"
        else:
            message = (
                f"Invalid tranche status transition "
                f"'{getattr(current, 'value', current)}' -> '{getattr(target, 'value', target)}'"
            )
        super().__init__(message)


class TrancheNotEligibleError(PayoutEngineError):
    """Tranche 2 requested before its eligibility date."""

    def __init__(self, eligible_date, as_of):
        self.eligible_date = eligible_date
        self.as_of = as_of
        super().__init__(
            f"Tranche 2 is not eligible until {eligible_date.isoformat()} (requested on {as_of.isoformat()})"
        )
