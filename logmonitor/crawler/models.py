"""SQLAlchemy table models for packages, visits, and subscriptions.

Column names follow the on-disk schema of existing `data.db` files
(`pkgid`, `error`, `mxid`) so the monitor can resume from them.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship


Base = declarative_base()


class PackageModel(Base):
    __tablename__ = "packages"

    id = Column(Integer, primary_key=True)
    name = Column(Text, unique=True, nullable=False)

    visits = relationship("VisitModel", back_populates="package")
    subscriptions = relationship("SubscriptionModel", back_populates="package")

    def __repr__(self):
        return f"<PackageModel(id={self.id}, name={self.name})>"


class VisitModel(Base):
    __tablename__ = "visited"
    __table_args__ = (UniqueConstraint("pkgid", "date"),)

    id = Column(Integer, primary_key=True)
    package_id = Column("pkgid", Integer, ForeignKey("packages.id"), nullable=False)
    date = Column(Text, nullable=False)
    had_error = Column("error", Boolean, nullable=False, default=False)

    package = relationship("PackageModel", back_populates="visits")

    def __repr__(self):
        return f"<VisitModel(package_id={self.package_id}, date={self.date}, error={self.had_error})>"


class SubscriptionModel(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (UniqueConstraint("mxid", "pkgid"),)

    id = Column(Integer, primary_key=True)
    recipient = Column("mxid", Text, nullable=False)
    package_id = Column("pkgid", Integer, ForeignKey("packages.id"), nullable=False)

    package = relationship("PackageModel", back_populates="subscriptions")


__all__ = ["Base", "PackageModel", "SubscriptionModel", "VisitModel"]
