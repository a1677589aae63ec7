from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from ..db import Base
from ..vendors import VENDOR_NAMES

INDICATOR_KINDS = ("ipv4", "domain")


class RawIndicator(Base):
    __tablename__ = "raw_indicators"

    id = Column(Integer, primary_key=True, autoincrement=True)
    indicator = Column(String(255), nullable=False)
    kind = Column(String(16), nullable=False)  # ipv4 | domain
    source = Column(String(128), nullable=False)
    first_seen = Column(DateTime, nullable=False)
    last_seen = Column(DateTime, nullable=False)
    removed_at = Column(DateTime, nullable=True)  # tombstone

    __table_args__ = (
        UniqueConstraint("indicator", "kind", "source", name="uq_raw_indicator_source"),
        Index("idx_raw_kind_indicator", "kind", "indicator", "source"),
        Index("idx_raw_removed_at", "removed_at"),
    )


class MergedIndicator(Base):
    """One row per (indicator, kind); every vendor owns a fixed set of columns."""

    __tablename__ = "merged_indicators"

    id = Column(Integer, primary_key=True, autoincrement=True)
    indicator = Column(String(255), nullable=False)
    kind = Column(String(16), nullable=False)
    confidence = Column(Integer, nullable=False, default=0)
    source_count = Column(Integer, nullable=False, default=0)
    whitelisted = Column(Boolean, nullable=False, default=False)
    whitelist_source = Column(String(64), nullable=True)
    last_validated = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    version = Column(Integer, nullable=False)

    abuseipdb_checked = Column(Boolean, nullable=False, default=False)
    abuseipdb_score = Column(Float, nullable=True)
    abuseipdb_in_blacklist = Column(Boolean, nullable=True)

    virustotal_checked = Column(Boolean, nullable=False, default=False)
    virustotal_score = Column(Float, nullable=True)
    virustotal_malicious = Column(Boolean, nullable=True)

    otx_checked = Column(Boolean, nullable=False, default=False)
    otx_score = Column(Float, nullable=True)
    otx_verdict = Column(String(32), nullable=True)

    safebrowsing_checked = Column(Boolean, nullable=False, default=False)
    safebrowsing_score = Column(Float, nullable=True)
    safebrowsing_verdict = Column(String(32), nullable=True)

    ipqs_checked = Column(Boolean, nullable=False, default=False)
    ipqs_score = Column(Float, nullable=True)
    ipqs_category = Column(String(32), nullable=True)

    honeydb_checked = Column(Boolean, nullable=False, default=False)
    honeydb_score = Column(Float, nullable=True)

    neutrinoapi_checked = Column(Boolean, nullable=False, default=False)
    neutrinoapi_score = Column(Float, nullable=True)
    neutrinoapi_in_blocklist = Column(Boolean, nullable=True)

    urlscan_checked = Column(Boolean, nullable=False, default=False)
    urlscan_score = Column(Float, nullable=True)
    urlscan_malicious = Column(Boolean, nullable=True)

    abuse_ch_checked = Column(Boolean, nullable=False, default=False)
    abuse_ch_score = Column(Float, nullable=True)
    abuse_ch_is_fp = Column(Boolean, nullable=True)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("indicator", "kind", name="uq_merged_indicator_kind"),
        Index("idx_merged_kind_confidence", "kind", "confidence"),
    )

    def to_dict(self):
        """Convert to dictionary for API responses"""
        data = {
            "indicator": self.indicator,
            "kind": self.kind,
            "confidence": self.confidence,
            "source_count": self.source_count,
            "whitelisted": self.whitelisted,
            "whitelist_source": self.whitelist_source,
            "last_validated": self.last_validated.isoformat() if self.last_validated else None,
        }
        for column in VENDOR_FIELD_NAMES:
            data[column] = getattr(self, column)
        return data


def _vendor_columns():
    columns = []
    for attr in MergedIndicator.__table__.columns.keys():
        if any(attr.startswith(f"{vendor}_") for vendor in VENDOR_NAMES):
            columns.append(attr)
    return tuple(columns)


# Every column a validator is allowed to write through a merge
VENDOR_FIELD_NAMES = _vendor_columns()
