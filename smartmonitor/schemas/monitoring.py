from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReadingIn(BaseModel):
    temperature: float = Field(..., description="Temperature in °C", examples=[23.5])
    humidity: float = Field(..., description="Relative humidity in %", examples=[45.2])
    gas_emission: float = Field(..., description="Gas emission in ppm", examples=[150.0])
    vibration: float = Field(..., description="Vibration level (sensor units)", examples=[12000.0])
    current: float = Field(..., description="Motor current in A", examples=[1.8])
    device_id: Optional[str] = Field(None, description="Device identifier", examples=["ESP32-001"])
    timestamp: Optional[datetime] = Field(None, description="Measurement time (default: now)")


class ReadingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    device_id: str
    timestamp: datetime
    temperature: float
    humidity: float
    gas_emission: float
    vibration: float
    current: float


class AlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    severity: str = Field(..., description="info, warning or danger")
    title: str
    message: str
    sensor: str
    metric: str
    value: float
    threshold: float
    suggestions: List[str] = Field(default_factory=list)
    contact_info: Optional[str] = None
    created_at: datetime
    state: str = Field(..., description="active, acknowledged or fixed")
    acknowledged_at: Optional[datetime] = None
    fixed_at: Optional[datetime] = None
    resolution: Optional[str] = Field(None, description="manual or auto once fixed")


class RiskAssessmentOut(BaseModel):
    risk_level: str = Field(..., description="low, medium, high or critical")
    failure_probability: float = Field(..., ge=0.0, le=100.0, description="Failure probability in %")
    time_to_failure: str
    recommendations: List[str]
    confidence: float = Field(..., ge=0.0, le=100.0)
    risk_score: float
    generated_at: datetime
    trigger: str
    sequence: int


class IngestOut(BaseModel):
    reading: ReadingOut
    bands: Dict[str, str]
    created_alerts: List[AlertOut]
    cleared_alerts: List[AlertOut]
