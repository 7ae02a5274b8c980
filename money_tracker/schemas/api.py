from typing import Literal, Optional
from pydantic import BaseModel


class ApiResponse(BaseModel):
    status: Literal["success", "error"]
    message: Optional[str] = None


class LoginResponse(ApiResponse):
    user_id: Optional[int] = None
