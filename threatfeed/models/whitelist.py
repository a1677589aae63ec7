from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from ..db import Base


class TrustedDomain(Base):
    __tablename__ = "trusted_domains"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain = Column(String(255), nullable=False, index=True)
    source = Column(String(32), nullable=False)  # cisco | cloudflare | ...
    rank = Column(Integer, nullable=True)
    imported_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("domain", "source", name="uq_trusted_domain_source"),
    )
