"""Exception types raised by the budget services (never by the APU engine)."""


class BudgetError(Exception):
    """Base class for budget payload and edit failures."""


class BudgetPayloadError(BudgetError, ValueError):
    """The upstream payload is structurally unusable (not a mapping, not a list...)."""


class LineItemEditError(BudgetError, ValueError):
    """An edit addressed an unknown category, field or resource line."""
