"""Window Chain - data models.

Pydantic models for data that crosses a boundary: cached blobs kept in a
backing store and capability reports supplied by the host model runtime.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class CompressedBlob(BaseModel):
    """Storage form of a cached value."""

    compressed: bool = Field(description="Whether data holds a compressed payload")
    algorithm: str = Field(default="none", description="Codec that produced data")
    data: str = Field(description="Serialized JSON, or base64 codec output when compressed")


class Availability(str, Enum):
    """Model availability reported by the host."""
    READY = "ready"
    NEEDS_DOWNLOAD = "needs_download"
    UNAVAILABLE = "unavailable"


# Spellings used by the browser runtime
_HOST_AVAILABILITY = {
    "readily": Availability.READY,
    "after-download": Availability.NEEDS_DOWNLOAD,
    "no": Availability.UNAVAILABLE,
}


class OptionsValidation(BaseModel):
    """Result of validating generation options against capabilities."""

    valid: bool
    issues: List[str] = Field(default_factory=list)


class ModelCapabilities(BaseModel):
    """Capabilities of the host language model."""

    availability: Availability = Field(description="Whether the model can be used")
    default_temperature: Optional[float] = Field(default=None, ge=0)
    default_top_k: Optional[int] = Field(default=None, ge=1)
    max_top_k: Optional[int] = Field(default=None, ge=1)

    @field_validator('availability', mode='before')
    @classmethod
    def normalize_availability(cls, v):
        """Accept host spellings as well as enum values."""
        if isinstance(v, str):
            return _HOST_AVAILABILITY.get(v, v)
        return v

    def is_ready(self) -> bool:
        return self.availability == Availability.READY

    def needs_download(self) -> bool:
        return self.availability == Availability.NEEDS_DOWNLOAD

    def is_unavailable(self) -> bool:
        return self.availability == Availability.UNAVAILABLE

    def recommended_params(self, temperature: Optional[float] = None,
                           top_k: Optional[int] = None) -> Dict[str, Any]:
        """Fill unset sampling parameters with the model defaults."""
        return {
            "temperature": temperature if temperature is not None else self.default_temperature,
            "top_k": top_k if top_k is not None else self.default_top_k,
        }

    def validate_options(self, temperature: Optional[float] = None,
                         top_k: Optional[int] = None) -> OptionsValidation:
        """Check sampling parameters against the model limits."""
        issues = []

        if top_k is not None and self.max_top_k is not None and top_k > self.max_top_k:
            issues.append(f"top_k value {top_k} exceeds maximum {self.max_top_k}")

        if temperature is not None and not 0 <= temperature <= 2:
            issues.append("temperature must be between 0 and 2")

        return OptionsValidation(valid=not issues, issues=issues)
