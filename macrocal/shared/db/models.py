from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base


class Indicator(Base):
    __tablename__ = "indicators"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    country_code = Column(String(8), nullable=False)
    category = Column(String(100))
    source_name = Column(String(255))
    source_url = Column(String(500))

    releases = relationship("Release", back_populates="indicator")

    __table_args__ = (UniqueConstraint("name", "country_code", name="uq_indicators_name_country"),)


class Release(Base):
    __tablename__ = "releases"

    id = Column(Integer, primary_key=True)
    indicator_id = Column(Integer, ForeignKey("indicators.id"), nullable=False)
    release_at = Column(DateTime, nullable=False)  # naive UTC
    period = Column(String(50), nullable=False)
    actual = Column(String(50))
    forecast = Column(String(50))
    previous = Column(String(50))
    revised = Column(String(50))
    unit = Column(String(100))
    notes = Column(Text)
    revision_history = Column(JSON, nullable=False, default=list)

    indicator = relationship("Indicator", back_populates="releases")

    __table_args__ = (
        UniqueConstraint("indicator_id", "release_at", "period", name="uq_releases_natural_key"),
        Index("idx_releases_release_at", "release_at"),
    )


class RequestLog(Base):
    __tablename__ = "request_logs"

    id = Column(Integer, primary_key=True)
    api_key_id = Column(String(100), nullable=False)
    endpoint = Column(String(255))
    created_at = Column(DateTime, nullable=False)  # naive UTC

    __table_args__ = (Index("idx_request_logs_key_time", "api_key_id", "created_at"),)
