"""Pydantic models for API requests and responses."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from enum import Enum
from datetime import datetime


class PlatformEnum(str, Enum):
    WOOCOMMERCE = "woocommerce"
    SHOPIFY = "shopify"


class RunStatusEnum(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Request Models
class RetrySettingsCreate(BaseModel):
    enabled: bool = True
    attempts: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)


class WordPressCredentialsCreate(BaseModel):
    username: str = ""
    application_password: str = ""


class ShopifyCredentialsCreate(BaseModel):
    admin_access_token: str = ""
    storefront_access_token: str = ""


class RunCreate(BaseModel):
    target_url: str = Field(min_length=1)
    platform: PlatformEnum = PlatformEnum.WOOCOMMERCE
    options: Dict[str, bool] = Field(default_factory=dict)
    retry: RetrySettingsCreate = Field(default_factory=RetrySettingsCreate)
    output_root: str = "./output"
    categories: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    wordpress: Optional[WordPressCredentialsCreate] = None
    shopify: Optional[ShopifyCredentialsCreate] = None
    additional_extension_entry_urls: List[str] = Field(default_factory=list)
    additional_design_page_urls: List[str] = Field(default_factory=list)
    screenshot_breakpoints: Optional[List[str]] = None
    public_extension_max_pages: Optional[Any] = 75
    public_extension_max_bytes: Optional[Any] = None
    directory_delay_seconds: float = Field(default=1.0, ge=0)


class ReplayRequest(BaseModel):
    base_url: str = Field(min_length=1)
    consumer_key: str = Field(min_length=1)
    consumer_secret: str = Field(min_length=1)
    include_configuration: bool = False
    dry_run: bool = False


# Response Models
class StepResponse(BaseModel):
    id: str
    name: str
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    records_processed: int = 0
    skip_reason: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


class RunResponse(BaseModel):
    id: str
    source_url: str
    store_id: str
    status: RunStatusEnum
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    steps: List[StepResponse] = Field(default_factory=list)
    missing_credentials: List[str] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    report_path: Optional[str] = None
    archive_path: Optional[str] = None
    has_snapshot: bool = False
    replay: Optional[Dict[str, Any]] = None


class RunStartedResponse(BaseModel):
    status: str
    run_id: str
