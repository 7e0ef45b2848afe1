from pydantic import BaseModel, Field
from typing import Any, Dict, Optional, Union


class UpstreamInfo(BaseModel):
    """
    What the upstream Rapla server returned, attached to error responses so
    a failing calendar can be checked without reproducing the request.
    """
    url: str = Field(..., description="The transformed upstream URL.")
    status_code: Optional[int] = Field(None, description="Status code returned by upstream, if a response was received.")


class ProxyErrorResponse(BaseModel):
    """
    Body of every JSON error returned by the calendar endpoint.
    """
    message: str = Field(..., description="Generic message describing the kind of error.")
    # Either a plain string (transport errors) or the structured parser error payload
    details: Optional[Union[str, Dict[str, Any]]] = Field(None, description="Specific error information.")
    upstream: Optional[UpstreamInfo] = Field(None, description="Upstream request information, if one was made.")
