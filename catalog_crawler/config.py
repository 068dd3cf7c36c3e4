"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Site being crawled (main domain part, e.g. "vakko")
    site: str = ""

    # App Settings
    debug: bool = False
    log_level: str = "INFO"

    # ==========================================================================
    # Browser Settings
    # ==========================================================================
    headless: bool = True
    navigation_timeout_seconds: int = 120
    selector_wait_timeout_ms: int = 15000  # Product-item gate timeout
    wait_for_seconds: float = 3.0  # Settle time before the product-page check
    max_concurrency: int = 1  # Pages processed in parallel
    max_navigation_retries: int = 3
    viewport_width: int = 1920
    viewport_height: int = 1080

    # ==========================================================================
    # Storage
    # ==========================================================================
    dataset_dir: str = "data/datasets"
    artifacts_dir: str = "data/artifacts"
    selector_catalog_path: str = ""  # Empty = built-in selector sets

    # ==========================================================================
    # Site Configuration Source (Google Sheets)
    # ==========================================================================
    google_sheet_id: str = ""
    google_sheet_name: str = "wbags-scroll"
    google_api_key: str = ""
    google_access_token: str = ""
    site_config_cache_path: str = "siteConfig.json"
    site_config_max_age_minutes: int = 60
    use_local_site_config: bool = False

    # ==========================================================================
    # Price Conversion
    # ==========================================================================
    usd_rate: float = 33.5
    eur_rate: float = 37.01

    # ==========================================================================
    # Sinks
    # ==========================================================================
    log_sheet_id: str = ""  # Spreadsheet receiving crawl log rows
    github_token: str = ""
    github_repo: str = ""  # "owner/name"
    github_branch: str = "main"
    github_max_retries: int = 3
    sample_size: int = 5  # Records per uploaded sample file

    # Category keywords used when discovering initial navigation URLs
    navigation_keywords: list[str] = [
        "kadin-canta",
        "kadin-cuzdan",
        "valiz-modelleri",
        "seyahat",
        "canta-155",
        "canta-aksesuar",
        "canta",
        "bags",
        "aksesuar",
    ]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
