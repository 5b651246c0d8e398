from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .addressing import column_index


class SheetsConfig(BaseModel):
    credentials_file: Path = Field(
        ..., description="Path to the Google service account JSON credentials"
    )
    template_file_id: Optional[str] = Field(
        None,
        description="File ID of the client RFI responses template copied per client",
    )
    testing_sheet: str = Field("Testing", description="Tab holding the testing results")
    rfi_sheet: str = Field(
        "RFI Spreadsheet", description="Tab that receives the general/specific RFI issues"
    )
    responses_sheet: str = Field(
        "RFI Responses", description="Tab holding client responses to the RFIs"
    )
    copy_target_sheet: str = Field(
        "RFI Responses", description="Tab in the copied client workbook that receives the RFIs"
    )
    copy_fallback_sheet: Optional[str] = Field(
        "Sheet1",
        description="Tab tried once when writing to copy_target_sheet fails",
    )

    @field_validator("credentials_file")
    @classmethod
    def _expand_credentials_path(cls, value: Path) -> Path:
        return value.expanduser().resolve()


class ScanLayoutConfig(BaseModel):
    """Fixed positions of the Testing and RFI Spreadsheet templates."""

    marker: str = Field("RFI", min_length=1, description="Substring that flags an RFI cell")
    header_rows: int = Field(2, ge=0, description="Leading rows skipped by the scan")
    identifier_column: int = Field(
        2, ge=0, description="Zero-based column holding the item id of each row"
    )
    excluded_column: Optional[int] = Field(
        35,
        ge=0,
        description="Zero-based column that always contains the marker as a label",
    )
    general_threshold: int = Field(
        4, ge=1, description="Groups with at least this many affected items are general"
    )
    general_start_row: int = Field(14, ge=1)
    specific_start_row: int = Field(42, ge=1)
    general_capacity: int = Field(21, ge=1, description="Rows available for general issues")
    specific_capacity: int = Field(100, ge=1, description="Rows available for specific issues")
    clear_ranges: List[str] = Field(
        default_factory=lambda: ["C14:I34", "C42:I141"],
        description="Ranges cleared in the RFI sheet before writing new issues",
    )

    @model_validator(mode="after")
    def _validate_sections(self) -> "ScanLayoutConfig":
        general_end = self.general_start_row + self.general_capacity - 1
        if self.general_start_row <= self.specific_start_row <= general_end:
            raise ValueError("specific_start_row falls inside the general issues section")
        if self.excluded_column is not None and self.excluded_column == self.identifier_column:
            raise ValueError("excluded_column cannot be the identifier column")
        return self


class ResponsesLayoutConfig(BaseModel):
    """Fixed positions of the client RFI responses template."""

    row_windows: List[Tuple[int, int]] = Field(
        ...,
        description="1-based inclusive row windows holding general and specific responses",
    )
    id_column: int = Field(0, ge=0)
    filter_column: int = Field(
        2, ge=0, description="Rows are kept when this column or id_column is non-empty"
    )
    issue_column: int = Field(1, ge=0)
    response_column: int = Field(3, ge=0)
    notes_column: str = Field("F", description="Column letter that receives drafted notes")
    notes_first_row: int = Field(13, ge=1)
    notes_last_row: int = Field(141, ge=1)
    general_row_offset: int = Field(13, description="Row of G.<n> is offset + n")
    specific_row_offset: int = Field(41, description="Row of S.<n> is offset + n")
    general_capacity: int = Field(21, ge=1, description="Highest n accepted for G.<n> ids")
    specific_capacity: int = Field(100, ge=1, description="Highest n accepted for S.<n> ids")

    @field_validator("row_windows")
    @classmethod
    def _validate_windows(cls, value: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
        if not value:
            raise ValueError("At least one row window must be configured")
        for start, end in value:
            if start < 1 or start > end:
                raise ValueError(f"Invalid row window [{start}, {end}]")
        ordered = sorted(value)
        for (_, prev_end), (next_start, _) in zip(ordered, ordered[1:]):
            if next_start <= prev_end:
                raise ValueError("Row windows must not overlap")
        return value

    @field_validator("notes_column")
    @classmethod
    def _validate_notes_column(cls, value: str) -> str:
        column_index(value)
        return value.upper()

    @model_validator(mode="after")
    def _validate_span(self) -> "ResponsesLayoutConfig":
        if self.notes_last_row < self.notes_first_row:
            raise ValueError("notes_last_row must not precede notes_first_row")
        return self


class LLMProviderConfig(BaseModel):
    """Settings for a single prioritized LLM provider."""

    name: str | None = Field(
        None,
        description="Human-friendly name for the provider; used for logging",
    )
    model: str | None = Field(
        None,
        description="LLM model or Azure deployment identifier; optional when model_env is provided",
    )
    model_env: str | None = Field(
        None,
        description="Environment variable with the model identifier",
    )
    temperature: float = Field(
        0.0,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for this provider",
    )
    max_output_tokens: int = Field(
        2048,
        gt=0,
        description="Maximum number of tokens returned by the provider",
    )
    api_key: str | None = Field(
        None,
        description="Explicit API key; if omitted the key is read from api_key_env",
    )
    api_key_env: str | None = Field(
        None,
        description="Environment variable with the API key",
    )
    base_url: str | None = Field(
        None,
        description="Optional override for the API base URL",
    )
    base_url_env: str | None = Field(
        None,
        description="Environment variable name for the API base URL",
    )
    azure_endpoint: str | None = Field(
        None,
        description="Azure OpenAI resource endpoint; selects the Azure client when set",
    )
    azure_endpoint_env: str | None = Field(
        None,
        description="Environment variable with the Azure OpenAI endpoint",
    )
    api_version: str = Field(
        "2024-10-21",
        description="Azure OpenAI API version",
    )
    organization: str | None = Field(
        None,
        description="Optional OpenAI organization identifier",
    )
    request_timeout: int = Field(
        120,
        gt=0,
        description="Timeout in seconds for API requests",
    )

    @model_validator(mode="after")
    def _ensure_required_fields(self) -> "LLMProviderConfig":
        if not self.model and not self.model_env:
            raise ValueError("LLM provider must define 'model' or 'model_env'")
        if not self.api_key and not self.api_key_env:
            raise ValueError("LLM provider must define 'api_key' or 'api_key_env'")
        return self


class LLMConfig(BaseModel):
    max_retries: int = Field(
        2,
        ge=1,
        description="Attempts per provider to obtain parseable JSON before switching provider",
    )
    providers: dict[int, LLMProviderConfig] = Field(
        ...,
        description="Mapping of priority -> provider configuration",
    )

    @field_validator("providers")
    @classmethod
    def _validate_providers(
        cls, value: dict[int, LLMProviderConfig]
    ) -> dict[int, LLMProviderConfig]:
        if not value:
            raise ValueError("At least one LLM provider must be configured")

        ordered_items = sorted(value.items(), key=lambda item: item[0])
        priorities = [priority for priority, _ in ordered_items]

        expected = list(range(1, len(ordered_items) + 1))
        if priorities != expected:
            raise ValueError(
                "LLM provider priorities must be consecutive integers starting from 1"
            )

        return dict(ordered_items)

    @property
    def provider_sequence(self) -> List[tuple[int, LLMProviderConfig]]:
        return list(self.providers.items())


class DraftingConfig(BaseModel):
    batch_size: int = Field(6, gt=0, description="Responses sent to the drafter per request")
    knowledge_base_path: Path | None = Field(
        None,
        description="YAML or JSON list of prior issue/response/note examples",
    )

    @field_validator("knowledge_base_path")
    @classmethod
    def _expand_kb_path(cls, value: Path | None) -> Path | None:
        if value is None:
            return None
        return value.expanduser()


class AppConfig(BaseModel):
    sheets: SheetsConfig
    testing: ScanLayoutConfig = Field(default_factory=ScanLayoutConfig)
    responses: ResponsesLayoutConfig
    llm: LLMConfig | None = None
    drafting: DraftingConfig = Field(default_factory=DraftingConfig)


def load_config(path: str | Path) -> AppConfig:
    """Load configuration from a YAML file and return a validated object."""

    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with config_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)

    if data is None:
        msg = f"Configuration file is empty: {config_path}"
        raise ValueError(msg)

    try:
        config = AppConfig.model_validate(data)
    except ValidationError as exc:  # pragma: no cover - passthrough for readability
        raise ValueError(f"Invalid configuration: {exc}") from exc

    # Relative knowledge base paths are resolved against the config file location
    kb_path = config.drafting.knowledge_base_path
    if kb_path is not None and not kb_path.is_absolute():
        config.drafting.knowledge_base_path = (config_path.parent / kb_path).resolve()
    return config
