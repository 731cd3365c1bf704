# mlm_system/services/package_service.py
"""
Package catalogue access and seeding.
"""
import logging
from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from models.package import Package
from mlm_system.config.defaults import DEFAULT_PACKAGES, DEFAULT_ROI_MULTIPLIER
from mlm_system.errors import PackageNotFoundError

logger = logging.getLogger(__name__)


class PackageService:

    def __init__(self, session: Session):
        self.session = session

    def getPackage(self, packageIndex: int) -> Package:
        """Active catalogue entry, PackageNotFoundError otherwise."""
        package = (
            self.session.query(Package)
            .filter(Package.packageIndex == packageIndex, Package.isActive.is_(True))
            .first()
        )
        if not package:
            raise PackageNotFoundError(f"Invalid package index {packageIndex}", packageIndex=packageIndex)
        return package

    def listPackages(self, activeOnly: bool = True) -> List[Package]:
        query = self.session.query(Package)
        if activeOnly:
            query = query.filter(Package.isActive.is_(True))
        return query.order_by(Package.packageIndex).all()

    def initializeDefaultPackages(self) -> int:
        """Insert catalogue entries that do not exist yet. Returns inserted count."""
        existing = {row.packageIndex for row in self.session.query(Package.packageIndex).all()}
        inserted = 0
        for index, name, price in DEFAULT_PACKAGES:
            if index in existing:
                continue
            self.session.add(Package(
                packageIndex=index,
                name=name,
                priceUSD=Decimal(price),
                maxROIMultiplier=Decimal(DEFAULT_ROI_MULTIPLIER),
                isActive=True
            ))
            inserted += 1

        self.session.flush()
        if inserted:
            logger.info(f"Initialized {inserted} catalogue packages")
        return inserted
