"""Configuration schema for the container extractor."""

import os
from pydantic import BaseModel, Field, ConfigDict, field_validator
from tmod_extract.common import LoggingConfig

from .inflater import DEFAULT_MAX_INFLATED_SIZE
from .manifest import DEFAULT_MAX_ENTRIES


class ExtractionConfig(BaseModel):
    """Configuration for container extraction."""

    model_config = ConfigDict(extra='forbid')

    output_dir: str = Field(
        default="./extracted",
        description="Directory to extract container files to"
    )
    strict: bool = Field(
        default=False,
        description="Abort on the first entry whose path escapes the output directory"
    )
    workers: int = Field(
        default=1,
        ge=0,
        description="Writer threads (1 = sequential, 0 = auto-detect)"
    )
    verify_hash: bool = Field(
        default=False,
        description="Check the payload against the build hash in the header"
    )
    max_entries: int = Field(
        default=DEFAULT_MAX_ENTRIES,
        ge=0,
        description="Reject containers declaring more entries than this"
    )
    max_inflated_size: int = Field(
        default=DEFAULT_MAX_INFLATED_SIZE,
        ge=1,
        description="Maximum inflated payload size in bytes"
    )

    @field_validator("workers")
    @classmethod
    def auto_detect_workers(cls, v: int) -> int:
        """0 means auto-detect."""
        if v == 0:
            cpu_count = os.cpu_count() or 4
            return max(2, cpu_count)
        return v


class TModExtractConfig(BaseModel):
    """Root configuration for the container extractor."""

    model_config = ConfigDict(extra='forbid')

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
