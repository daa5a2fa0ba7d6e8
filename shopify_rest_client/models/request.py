"""Pydantic model for per-request options."""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field


class RequestOptions(BaseModel):
    """Options for a single API call."""
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    query: Dict[str, Any] = Field(default_factory=dict, description="Query string parameters")
    body: Any = Field(None, description="JSON-serializable payload")
    timeout: Optional[float] = Field(None, gt=0, description="Overrides the client timeout (seconds)")

    @classmethod
    def coerce(cls, options: Union["RequestOptions", Dict[str, Any], None]) -> "RequestOptions":
        """Accept a RequestOptions, a plain dict or None."""
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        return cls.model_validate(options)
