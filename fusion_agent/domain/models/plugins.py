from typing import Dict, Any, Optional, Literal, Union
from pydantic import BaseModel, Field, model_validator
from datetime import datetime, timezone


class MathResult(BaseModel):
    """Evaluated arithmetic expression"""
    kind: Literal["math"] = "math"
    expression: str
    result: Union[int, float]


class WeatherResult(BaseModel):
    """Current weather for a location"""
    kind: Literal["weather"] = "weather"
    location: str
    temperature: float = Field(description="Degrees Celsius")
    condition: str
    humidity: Optional[int] = Field(None, description="Relative humidity in percent")
    wind_speed: Optional[float] = Field(None, description="Wind speed in km/h")
    source: Literal["openweather", "synthetic"] = "synthetic"
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class GenericPluginResult(BaseModel):
    """Payload for plugins without a dedicated result type"""
    kind: str = "generic"
    payload: Dict[str, Any] = Field(default_factory=dict)


PluginPayload = Union[MathResult, WeatherResult, GenericPluginResult]


class PluginOutcome(BaseModel):
    """Result of running one plugin against a message"""
    name: str
    input: str = ""
    success: bool
    data: Optional[PluginPayload] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "PluginOutcome":
        if self.success and (self.data is None or self.error is not None):
            raise ValueError("successful outcome requires data and no error")
        if not self.success and (self.error is None or self.data is not None):
            raise ValueError("failed outcome requires an error and no data")
        return self

    @classmethod
    def ok(cls, name: str, input: str, data: PluginPayload) -> "PluginOutcome":
        return cls(name=name, input=input, success=True, data=data)

    @classmethod
    def failed(cls, name: str, input: str, error: str) -> "PluginOutcome":
        return cls(name=name, input=input, success=False, error=error or "Unknown error")
