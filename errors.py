"""Domain errors raised by the cart, checkout and selection modules."""


class StoreError(Exception):
    """Base class for storefront domain errors."""


class InvalidQuantity(StoreError):
    def __init__(self, quantity):
        self.quantity = quantity
        super().__init__(f"Invalid quantity: {quantity!r}")


class NotFound(StoreError):
    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class SelectionSizeError(StoreError):
    def __init__(self, surface: str, count: int, limit: int, message: str):
        self.surface = surface
        self.count = count
        self.limit = limit
        super().__init__(message)


class TooManySelected(SelectionSizeError):
    def __init__(self, surface: str, count: int, limit: int):
        super().__init__(surface, count, limit, f"You can select up to {limit} items for {surface} (got {count})")


class TooFewSelected(SelectionSizeError):
    def __init__(self, surface: str, count: int, limit: int):
        super().__init__(surface, count, limit, f"Expected {limit} ids for {surface} (got {count})")


class DuplicateItem(StoreError):
    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} already exists: {identifier}")


class InvalidTransition(StoreError):
    """A checkout action was attempted from a step that does not allow it."""


class OrderInProgress(StoreError):
    """place_order was called while a previous call is still processing."""


class ProcessingTimedOut(StoreError):
    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Order processing timed out after {timeout:g}s")


class InvalidSurface(StoreError):
    def __init__(self, surface):
        self.surface = surface
        super().__init__("surface must be 'desktop' or 'mobile'")


class InvalidAddress(StoreError):
    def __init__(self, fields):
        self.fields = list(fields)
        super().__init__(f"Missing required address fields: {', '.join(self.fields)}")
