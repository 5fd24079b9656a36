"""
Pydantic schema for webpage metadata extracted by the fetcher
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any


class PageMetadata(BaseModel):
    """
    Metadata extracted from a fetched webpage.

    Ensures:
    - title and description are stripped strings (empty when absent)
    - properties maps lower-cased Open Graph names to their values in
      document order, e.g. {"og:image": ["https://.../1.png", ".../2.png"]}
    """

    title: str = ""
    description: str = ""
    properties: Dict[str, List[str]] = Field(default_factory=dict)

    @validator("title", "description", pre=True)
    def clean_text(cls, v):
        """Treat missing text as empty"""
        if v is None:
            return ""
        return str(v).strip()

    @validator("properties", pre=True)
    def clean_properties(cls, v):
        """Lower-case keys and drop empty values"""
        if not v:
            return {}
        cleaned: Dict[str, List[str]] = {}
        for key, values in v.items():
            key = str(key).strip().lower()
            if not key:
                continue
            if isinstance(values, str):
                values = [values]
            for value in values:
                value = str(value).strip()
                if value:
                    cleaned.setdefault(key, []).append(value)
        return cleaned

    @property
    def image_url(self) -> Optional[str]:
        """First og:image value, if any"""
        images = self.properties.get("og:image")
        return images[0] if images else None

    def to_blob(self) -> Dict[str, Any]:
        """JSON-ready representation stored on the article"""
        return self.dict()
