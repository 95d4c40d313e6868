# smartmonitor/models/models.py
from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, Integer, String, Float, DateTime, JSON

from smartmonitor.models.domain import utcnow

Base = declarative_base()


class SensorReading(Base):
    """
    Recent readings backing the per-metric history.
    Only the bounded window kept in memory is stored here.
    """

    __tablename__ = "sensor_readings"

    id           = Column(String, primary_key=True)
    device_id    = Column(String, index=True, nullable=False)      # e.g. "ESP32-001"
    timestamp    = Column(DateTime, index=True, nullable=False)
    temperature  = Column(Float, nullable=False)                    # °C
    humidity     = Column(Float, nullable=False)                    # %
    gas_emission = Column(Float, nullable=False)                    # ppm
    vibration    = Column(Float, nullable=False)
    current      = Column(Float, nullable=False)                    # A
    position     = Column(Integer, nullable=False, default=0)       # order within the window
    stored_at    = Column(DateTime, default=utcnow)


class AlertRecord(Base):
    """
    Full alert set including fixed alerts kept for audit.
    """

    __tablename__ = "alerts"

    id              = Column(String, primary_key=True)
    severity        = Column(String, nullable=False)
    title           = Column(String, nullable=False)
    message         = Column(String, nullable=False)
    sensor          = Column(String, index=True, nullable=False)
    metric          = Column(String, nullable=False)
    value           = Column(Float, nullable=False)
    threshold       = Column(Float, nullable=False)
    suggestions     = Column(JSON, nullable=False, default=list)
    contact_info    = Column(String, nullable=True)
    created_at      = Column(DateTime, index=True, nullable=False)
    state           = Column(String, index=True, nullable=False)   # active / acknowledged / fixed
    acknowledged_at = Column(DateTime, nullable=True)
    fixed_at        = Column(DateTime, nullable=True)
    resolution      = Column(String, nullable=True)                # manual / auto


class AnalysisRun(Base):
    """
    Log of risk analysis passes (scheduled, manual, startup).
    """

    __tablename__ = "analysis_runs"

    id                  = Column(Integer, primary_key=True)
    sequence            = Column(Integer, index=True, nullable=False)
    trigger             = Column(String, nullable=False)
    risk_level          = Column(String, nullable=False)
    risk_score          = Column(Float, nullable=False)
    failure_probability = Column(Float, nullable=False)
    time_to_failure     = Column(String, nullable=False)
    confidence          = Column(Float, nullable=False)
    recommendations     = Column(JSON, nullable=False, default=list)
    generated_at        = Column(DateTime, index=True, nullable=False)
