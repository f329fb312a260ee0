"""
Pydantic schemas for chain file validation.

These models check the shape of a chain file document before any chain
is built from it, so a malformed file fails at load time with one
readable message instead of deep inside the builder.

Validation includes:
- Chain name length
- Config block ranges (channels, amplitudes, fade time, blend weights)
- Spec is a non-empty list of tags, stage pairs or stage mappings
- Stage mappings carry a string kind

Semantic checks (registered kinds, tag order, duplicate ids) stay with
the validator, which reports them as structured chain errors.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, field_validator

from ..config import MAX_AMP, MAX_CHANNELS, MAX_FADE_TIME


class ChainConfigSchema(BaseModel):
    """Validated ``config`` block of a chain file."""

    model_config = ConfigDict(extra='forbid')

    channels: StrictInt = Field(default=2, ge=1, le=MAX_CHANNELS, description="Signal channels")
    real_input: StrictBool = Field(default=True, description="Live input vs synthetic source")
    noise_source: StrictBool = Field(default=False, description="Synthetic source emits noise")
    equal_energy: StrictBool = Field(default=True, description="Equal-energy stereo downmix")
    src_amp: float = Field(default=1.0, ge=0.0, le=MAX_AMP)
    dest_amp: float = Field(default=1.0, ge=0.0, le=MAX_AMP)
    fade_time: float = Field(default=0.2, ge=0.0, le=MAX_FADE_TIME)
    blend_left: float = Field(default=0.5, ge=0.0, le=1.0)
    blend_right: float = Field(default=0.5, ge=0.0, le=1.0)


class ChainFileSchema(BaseModel):
    """Validated chain file document.

    Only the keys present in the file are kept when dumping the config
    block, so defaults stay owned by ChainConfig.
    """

    model_config = ConfigDict(extra='forbid')

    name: Optional[str] = Field(default=None, min_length=1, max_length=64)
    description: str = Field(default="", max_length=512)
    config: ChainConfigSchema = Field(default_factory=ChainConfigSchema)
    spec: List[Any] = Field(..., min_length=1, description="Chain spec list")

    @field_validator('spec')
    @classmethod
    def validate_spec_items(cls, v: List[Any]) -> List[Any]:
        """Each element is a tag, a [kind, {params}] pair or a {kind: ...} mapping."""
        for index, item in enumerate(v):
            if isinstance(item, str):
                continue
            if isinstance(item, (list, tuple)):
                if len(item) == 2 and isinstance(item[0], str) and isinstance(item[1], dict):
                    continue
                raise ValueError(f"spec[{index}]: stage pair must be [kind, {{params}}]")
            if isinstance(item, dict):
                if not isinstance(item.get('kind'), str):
                    raise ValueError(f"spec[{index}]: stage mapping needs a string 'kind'")
                continue
            raise ValueError(f"spec[{index}]: unsupported element {item!r}")
        return v


def validate_chain_file(data: Dict[str, Any]) -> ChainFileSchema:
    """
    Validate a raw chain file document.

    Raises:
        pydantic.ValidationError: If the document is malformed
    """
    return ChainFileSchema.model_validate(data)
