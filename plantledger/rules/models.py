from pydantic import BaseModel, Field


class ProjectRules(BaseModel):
    slug: str = "plantledger"
    rules_version: str = "1"

class LowStockRules(BaseModel):
    integer_threshold: float = 10
    fractional_floor: float = 2
    fractional_ratio: float = 0.05

class InventoryRules(BaseModel):
    page_size: int = 40
    max_quantity: float = 999_999
    integer_units: list[str] = Field(default_factory=lambda: ["UN"])
    fractional_decimals: int = 3
    metadata_max_length: int = 200
    customer_max_length: int = 100
    default_window_days: int = 30
    low_stock: LowStockRules = Field(default_factory=LowStockRules)
    # filter value -> stored tx_types
    type_filter_expansion: dict[str, list[str]] = Field(
        default_factory=lambda: {"sale": ["sale", "outbound"]}
    )

class ProgressBands(BaseModel):
    good: float = 0.8
    warning: float = 0.5

class ProductionRules(BaseModel):
    min_animal_count: int = 1
    max_animal_count: int = 10_000
    history_limit: int = 180
    report_limit: int = 1000
    report_chunk_size: int = 100
    rollup_current_month_only: bool = False
    progress_bands: ProgressBands = Field(default_factory=ProgressBands)

class ProductCatalogRules(BaseModel):
    name_min_length: int = 2
    name_max_length: int = 50
    name_pattern: str = r"^[0-9A-Za-zÀ-ÿ\s\-.]+$"
    unit_max_length: int = 10
    max_meta_per_animal: float = 1000

class RbacRules(BaseModel):
    roles: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "admin": ["*"],
            "user": [
                "inventory:inbound",
                "inventory:outbound",
                "inventory:sale",
                "inventory:transfer",
                "inventory:undo",
                "production:create",
            ],
            "viewer": [],
        }
    )
    public_permissions: list[str] = Field(default_factory=list)

class FormattingRules(BaseModel):
    decimal_separator: str = ","
    group_separator: str = "."
    today_label: str = "Today"
    yesterday_label: str = "Yesterday"
    mixed_unit_label: str = "Mixed"
    csv_delimiter: str = ";"
    export_date_format: str = "%d/%m/%Y"
    month_abbreviations: list[str] = Field(
        default_factory=lambda: [
            "Jan", "Feb", "Mar", "Apr", "May", "Jun",
            "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
        ],
        min_length=12,
        max_length=12,
    )

class TimingRules(BaseModel):
    filter_debounce_ms: int = 500
    input_debounce_ms: int = 300

class BackendRules(BaseModel):
    url_env: str = "PLANTLEDGER_BACKEND_URL"
    key_env: str = "PLANTLEDGER_BACKEND_KEY"
    timeout_seconds: float = 10.0

class OpsRules(BaseModel):
    log_level: str = "INFO"
    timezone: str = "America/Sao_Paulo"
    required_env: list[str] = Field(default_factory=list)
    snapshot_path: str = "data/app_state.json"

class LedgerRules(BaseModel):
    project: ProjectRules = Field(default_factory=ProjectRules)
    inventory: InventoryRules = Field(default_factory=InventoryRules)
    production: ProductionRules = Field(default_factory=ProductionRules)
    products: ProductCatalogRules = Field(default_factory=ProductCatalogRules)
    rbac: RbacRules = Field(default_factory=RbacRules)
    formatting: FormattingRules = Field(default_factory=FormattingRules)
    timing: TimingRules = Field(default_factory=TimingRules)
    backend: BackendRules = Field(default_factory=BackendRules)
    ops: OpsRules = Field(default_factory=OpsRules)
