from typing import Any, Dict


class ApiError(Exception):
    """Error answered to the client as {"status": "error", "message": ...}."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"status": "error", "message": self.message}
