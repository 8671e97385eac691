from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class Cookie(BaseModel):
    name: str
    value: str
    domain: Optional[str] = None
    path: Optional[str] = None
    expires: Optional[str] = None
    max_age: Optional[int] = None
    secure: bool = False
    http_only: bool = False
    same_site: Optional[str] = None


class ProxyRequest(BaseModel):
    url: str = ""
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    cookies: List[Cookie] = Field(default_factory=list)


class ProxyResponse(BaseModel):
    status: int
    status_text: str
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None
    cookies: List[Cookie] = Field(default_factory=list)
