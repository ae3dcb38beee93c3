from typing import Optional
from pydantic import BaseModel, Field


class N8nConnectionSettings(BaseModel):
    """Resolved settings for talking to the n8n REST API"""

    api_url: str = "http://localhost:5678/api/v1"
    api_key: Optional[str] = None
    request_timeout: int = Field(default=30, ge=1)
    max_retries: int = Field(default=0, ge=0)
    execution_timeout: int = Field(default=300, ge=1)
