from pydantic import BaseModel


class ErrorBody(BaseModel):
    error_code: str
    message: str
    details: dict | str | None = None
    trace_id: str | None = None
