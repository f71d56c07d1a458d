"""
Error taxonomy for the pricing engine and the sync layer.

Code ranges:
  1xxx: Input / validation
  2xxx: Upstream data (pool read API, indexer)
  3xxx: Lookup
"""


class AppError(Exception):
    """Base application error."""

    def __init__(self, code: int, message: str, http_status: int = 500):
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            'code': self.code,
            'type': type(self).__name__,
            'message': self.message,
        }


# --- 1xxx: Input ---

class InvalidInputError(AppError):
    """Malformed calculator input (non-integer or negative stake)."""

    def __init__(self, detail: str):
        super().__init__(1001, f"Invalid calculator input: {detail}", 422)


class ValidationError(AppError):
    """User-entered amount cannot be used; trade submission must be blocked."""

    def __init__(self, detail: str):
        super().__init__(1002, f"Invalid amount: {detail}", 422)


# --- 2xxx: Upstream ---

class NetworkError(AppError):
    def __init__(self, detail: str):
        super().__init__(2001, f"Upstream fetch failed: {detail}", 502)


class InconsistentDataError(AppError):
    """Fetched snapshot failed a structural invariant and was rejected."""

    def __init__(self, detail: str):
        super().__init__(2002, f"Inconsistent upstream data: {detail}", 502)


# --- 3xxx: Lookup ---

class MarketNotFoundError(AppError):
    def __init__(self, market_id: str):
        super().__init__(3001, f"Market not found: {market_id}", 404)
