"""
Pydantic schemas for data validation and serialization.

Schemas:
    metadata: PageMetadata, the record produced by the metadata fetcher and
        stored on the article as its metadata blob

Usage:
    from schemas.metadata import PageMetadata

Example:
    meta = PageMetadata(
        title="Example",
        description="An example page",
        properties={"og:image": ["https://example.com/a.png"]},
    )
    meta.image_url  # "https://example.com/a.png"
"""

__all__ = [
    "PageMetadata",
]
