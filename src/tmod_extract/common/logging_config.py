"""The ``[logging]`` config section."""

from pathlib import Path
from typing import Literal, Optional
from pydantic import BaseModel, Field, ConfigDict, ValidationInfo, field_validator


class LoggingConfig(BaseModel):
    """Verbosity, console format and optional log file."""

    model_config = ConfigDict(extra='forbid')

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum level written to the console and log file"
    )
    format: Literal["simple", "detailed", "json"] = Field(
        default="simple",
        description="Console format; the log file is always JSON"
    )
    file: Optional[str] = Field(
        default=None,
        description="Rotating JSON log file (disabled when unset or blank)"
    )

    @field_validator('level', 'format', mode='before')
    @classmethod
    def normalize_case(cls, v, info: ValidationInfo):
        """Accept any case: levels are upper-case names, formats lower-case."""
        if not isinstance(v, str):
            return v
        return v.upper() if info.field_name == 'level' else v.lower()

    @field_validator('file', mode='before')
    @classmethod
    def blank_file_disables(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def file_path(self) -> Optional[Path]:
        return Path(self.file) if self.file else None
