"""Product and error records produced by page extraction."""

from datetime import datetime, timezone
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RecordModel(BaseModel):
    """Base for records persisted with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class PriceEntry(RecordModel):
    """One price string read from an item, plus its normalized form."""

    value: str
    selector: str
    attribute: str

    numeric_value: Optional[float] = None
    currency: Optional[str] = None
    unset_price: bool = False
    parse_failed: bool = False
    price_scrape_error: bool = False
    error: Optional[str] = None


class ProductRecord(RecordModel):
    """Raw product record for one product-item element."""

    title: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    primary_image: Optional[str] = None
    link: Optional[str] = None
    prices: list[PriceEntry] = Field(default_factory=list)
    videos: list[str] = Field(default_factory=list)
    product_not_in_stock: bool = False
    matched_selectors: dict[str, str] = Field(default_factory=dict)
    matched_page_selector: Optional[str] = None
    page_title: str = ""
    page_url: str = Field(default="", alias="pageURL")
    timestamp: str = Field(default_factory=utc_now_iso)


class ValidatedProductRecord(ProductRecord):
    """Product record with per-field validity flags."""

    img_valid: bool = False
    link_valid: bool = False
    title_valid: bool = False
    page_title_valid: bool = False
    price_valid: bool = False
    video_valid: bool = False
    media_type: Literal["image", "video"] = "image"

    def invalid_fields(self) -> list[str]:
        """Names of the validity flags that failed."""
        failed = []
        for name in ("img_valid", "link_valid", "title_valid", "page_title_valid", "price_valid"):
            if not getattr(self, name):
                failed.append(name.removesuffix("_valid"))
        if self.media_type == "video" and not self.video_valid:
            failed.append("video")
        return failed

    @property
    def is_valid(self) -> bool:
        return not self.invalid_fields()


class ErrorRecord(RecordModel):
    """Stand-in for a product-item element whose extraction raised."""

    error: Literal[True] = True
    message: str
    content: str = ""
    url: str = ""
    page_title: str = ""
    timestamp: str = Field(default_factory=utc_now_iso)


ExtractedRecord = Union[ProductRecord, ErrorRecord]
StoredRecord = Union[ValidatedProductRecord, ErrorRecord]


def record_from_json(data: dict) -> StoredRecord:
    """Rebuild a stored record from its JSON form."""
    if data.get("error") is True:
        return ErrorRecord.model_validate(data)
    return ValidatedProductRecord.model_validate(data)
