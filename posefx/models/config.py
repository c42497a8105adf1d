from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from posefx.core.audio import unit_params
from posefx.core.mapping import DEFAULT_RULES, MappingRule

FeatureName = Literal[
    "right_arm_angle",
    "left_arm_angle",
    "right_foot_shift",
    "left_foot_shift",
    "head_shift",
]
EffectKind = Literal["pitch_shift", "phaser", "feedback_delay", "distortion", "playback_rate"]


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    token: str = "change-me"
    log_level: str = "INFO"


class ModelConfig(BaseModel):
    path: str = "yolo11n-pose.pt"
    conf: float = 0.25
    iou: float = 0.45
    device: str = "cpu"
    keypoint_conf: float = 0.3


class CameraConfig(BaseModel):
    device: int = 0
    width: int = 640
    height: int = 480
    fps_cap: int = 30


class TrackingConfig(BaseModel):
    expected_persons: int = Field(default=1, ge=1)
    throttle_interval: int = Field(default=10, ge=1)
    angle_smoothing_alpha: float = Field(default=1.0, gt=0.0, le=1.0)


class AudioConfig(BaseModel):
    sample_rate: int = 44100
    block_size: int = 512
    output_device: Optional[str] = None
    track_path: Optional[str] = None
    loop: bool = True


class ParameterMapping(BaseModel):
    param: str
    feature: FeatureName
    scale: float
    offset: float = 0.0
    absolute: bool = True
    min: float
    max: float

    @model_validator(mode="after")
    def _validate_bounds(self) -> "ParameterMapping":
        if self.min > self.max:
            raise ValueError(f"{self.param}: min must not exceed max")
        return self

    def to_rule(self) -> MappingRule:
        return MappingRule(
            param=self.param,
            feature=self.feature,
            scale=self.scale,
            offset=self.offset,
            absolute=self.absolute,
            lo=self.min,
            hi=self.max,
        )


class EffectConfig(BaseModel):
    name: str
    kind: EffectKind
    enabled: bool = False
    mappings: list[ParameterMapping] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_mapping_params(self) -> "EffectConfig":
        accepted = unit_params(self.kind)
        unknown = sorted({m.param for m in self.mappings} - set(accepted))
        if unknown:
            raise ValueError(
                f"{self.name}: {self.kind} has no parameters {unknown}, "
                f"expected one of {sorted(accepted)}"
            )
        return self

    def rules(self) -> tuple[MappingRule, ...]:
        if self.mappings:
            return tuple(mapping.to_rule() for mapping in self.mappings)
        return DEFAULT_RULES[self.kind]


def default_effects() -> list[EffectConfig]:
    return [
        EffectConfig(name="pitch shift", kind="pitch_shift"),
        EffectConfig(name="phaser", kind="phaser"),
        EffectConfig(name="feedback delay", kind="feedback_delay"),
        EffectConfig(name="distortion", kind="distortion"),
        EffectConfig(name="playback rate", kind="playback_rate"),
    ]


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    camera: CameraConfig = Field(default_factory=CameraConfig)
    tracking: TrackingConfig = Field(default_factory=TrackingConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    effects: list[EffectConfig] = Field(default_factory=default_effects)

    @field_validator("effects")
    @classmethod
    def _validate_effect_names(cls, value: list[EffectConfig]) -> list[EffectConfig]:
        names = [effect.name for effect in value]
        if len(set(names)) != len(names):
            raise ValueError("effect names must be unique")
        return value

    def maybe_masked_dump(self, mask_token: bool = True) -> dict:
        data = self.model_dump()
        if mask_token:
            token = data["server"].get("token", "")
            if token:
                data["server"]["token"] = "*" * max(4, len(token))
        return data


class ConfigUpdate(BaseModel):
    server: Optional[ServerConfig] = None
    model: Optional[ModelConfig] = None
    camera: Optional[CameraConfig] = None
    tracking: Optional[TrackingConfig] = None
    audio: Optional[AudioConfig] = None
    effects: Optional[list[EffectConfig]] = None
