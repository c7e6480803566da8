"""
app.schemas
~~~~~~~~~~~
Pydantic schemas for the REST API and the signaling protocol.
"""
from app.schemas.api_response import ApiResponse
from app.schemas.signaling import (
    SignalEnvelope,
    StartStreamAck,
    StartStreamRequest,
    StreamInfoData,
)

# Call model_rebuild to resolve forward references in generic Pydantic models.
ApiResponse.model_rebuild()
