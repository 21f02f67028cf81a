"""
Async SQLAlchemy repositories over the tables in ``models/orm_models.py``.

Driver connection failures surface as RepositoryUnavailableError (retryable);
everything else propagates unchanged.
"""
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dupa_estimator.models import domain
from dupa_estimator.models import orm_models as orm
from dupa_estimator.repositories.base import HAULING_EQUIPMENT_PATTERN, RateKind, RateRecord
from dupa_estimator.services.errors import RepositoryUnavailableError

logger = logging.getLogger("dupa-db")


class _SQLRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    @asynccontextmanager
    async def _session(self, write: bool = False) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                if write:
                    async with session.begin():
                        yield session
                else:
                    yield session
        except (OperationalError, InterfaceError, OSError) as exc:
            logger.warning("database unavailable: %s", exc)
            raise RepositoryUnavailableError(f"Database unavailable: {exc}") from exc
        except DBAPIError as exc:
            if not exc.connection_invalidated:
                raise
            logger.warning("database connection lost: %s", exc)
            raise RepositoryUnavailableError(f"Database unavailable: {exc}") from exc


def _latest_effective(stmt, column, as_of: date):
    return (
        stmt.where((column.is_(None)) | (column <= as_of))
        .order_by(column.desc().nulls_last())
        .limit(1)
    )


class SQLTemplateRepository(_SQLRepository):
    async def get(self, template_id: str) -> Optional[domain.Template]:
        async with self._session() as session:
            row = await session.get(orm.DupaTemplate, template_id)
            if row is None:
                return None
            return domain.Template(
                id=row.id,
                pay_item_number=row.pay_item_number,
                pay_item_description=row.pay_item_description,
                unit_of_measurement=row.unit_of_measurement,
                output_per_hour=row.output_per_hour,
                labor_template=row.labor_template or [],
                equipment_template=row.equipment_template or [],
                material_template=row.material_template or [],
                ocm_percentage=row.ocm_percentage,
                cp_percentage=row.cp_percentage,
                vat_percentage=row.vat_percentage,
                evaluated=row.evaluated,
                category=row.category or "",
                specification=row.specification or "",
                notes=row.notes or "",
                is_active=row.is_active,
            )


class SQLProjectRepository(_SQLRepository):
    async def get(self, project_id: str) -> Optional[domain.Project]:
        async with self._session() as session:
            row = await session.get(orm.Project, project_id)
            if row is None:
                return None
            return domain.Project(
                id=row.id,
                name=row.name or "",
                location=row.location,
                district=row.district or "",
                distance_from_office_km=row.distance_from_office_km or 0.0,
                hauling=row.hauling,
            )


class SQLMasterDataRepository(_SQLRepository):
    async def find_rate(
        self,
        kind: RateKind,
        key: str,
        location: Optional[str],
        as_of: date,
    ) -> Optional[RateRecord]:
        async with self._session() as session:
            if kind == RateKind.LABOR:
                stmt = _latest_effective(
                    select(orm.LaborRate).where(orm.LaborRate.location == location),
                    orm.LaborRate.effective_date,
                    as_of,
                )
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    return None
                return domain.LaborRate(
                    location=row.location,
                    district=row.district or "",
                    rates=row.rates or {},
                    effective_date=row.effective_date,
                )

            if kind == RateKind.EQUIPMENT:
                stmt = _latest_effective(
                    select(orm.EquipmentRate).where(orm.EquipmentRate.equipment_id == key),
                    orm.EquipmentRate.effective_date,
                    as_of,
                )
                row = (await session.execute(stmt)).scalar_one_or_none()
                return _to_equipment_rate(row) if row is not None else None

            if kind == RateKind.MATERIAL:
                location_clause = (
                    orm.MaterialPrice.location.is_(None)
                    if location is None
                    else orm.MaterialPrice.location == location
                )
                stmt = _latest_effective(
                    select(orm.MaterialPrice).where(
                        func.upper(orm.MaterialPrice.material_code) == key.strip().upper(),
                        location_clause,
                    ),
                    orm.MaterialPrice.effective_date,
                    as_of,
                )
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    return None
                return domain.MaterialPrice(
                    material_code=row.material_code,
                    description=row.description or "",
                    unit=row.unit or "",
                    base_price=row.base_price,
                    location=row.location,
                    effective_date=row.effective_date,
                    include_hauling=row.include_hauling,
                )

        raise ValueError(f"Unknown rate kind: {kind}")

    async def find_hauling_equipment(self, as_of: date) -> Optional[domain.EquipmentRate]:
        stmt = (
            select(orm.EquipmentRate)
            .where(
                orm.EquipmentRate.category.regexp_match(HAULING_EQUIPMENT_PATTERN.pattern, flags="i"),
                (orm.EquipmentRate.effective_date.is_(None)) | (orm.EquipmentRate.effective_date <= as_of),
            )
            .order_by(orm.EquipmentRate.equipment_id, orm.EquipmentRate.effective_date.desc().nulls_last())
        )
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()

        # first row per equipment id is its current rate
        current = {}
        for row in rows:
            current.setdefault(row.equipment_id, row)
        rated = [r for r in current.values() if r.hourly_rate is not None]
        if not rated:
            return None
        return _to_equipment_rate(min(rated, key=lambda r: r.hourly_rate))


class SQLBOQRepository(_SQLRepository):
    async def save(self, item: domain.ComputedBOQLineItem) -> str:
        row = orm.ProjectBOQItem(
            id=item.id,
            project_id=item.project_id,
            template_id=item.template_id,
            pay_item_number=item.pay_item_number,
            location=item.location,
            direct_cost=item.direct_cost,
            unit_cost=item.unit_cost,
            quantity=item.quantity,
            total_amount=item.total_amount,
            snapshot=item.model_dump(mode="json"),
            instantiated_at=item.instantiated_at,
        )
        async with self._session(write=True) as session:
            session.add(row)
        return item.id

    async def get(self, item_id: str) -> Optional[domain.ComputedBOQLineItem]:
        async with self._session() as session:
            row = await session.get(orm.ProjectBOQItem, item_id)
            return _to_line_item(row) if row is not None else None

    async def list_for_project(self, project_id: str) -> List[domain.ComputedBOQLineItem]:
        async with self._session() as session:
            stmt = (
                select(orm.ProjectBOQItem)
                .where(orm.ProjectBOQItem.project_id == project_id)
                .order_by(orm.ProjectBOQItem.pay_item_number)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_line_item(r) for r in rows]

    async def update_quantity(self, item_id: str, quantity: float, total_amount: float) -> bool:
        async with self._session(write=True) as session:
            result = await session.execute(
                update(orm.ProjectBOQItem)
                .where(orm.ProjectBOQItem.id == item_id)
                .values(quantity=quantity, total_amount=total_amount)
            )
            return result.rowcount > 0

    async def delete(self, item_id: str) -> bool:
        async with self._session(write=True) as session:
            result = await session.execute(
                delete(orm.ProjectBOQItem).where(orm.ProjectBOQItem.id == item_id)
            )
            return result.rowcount > 0


def _to_equipment_rate(row: orm.EquipmentRate) -> domain.EquipmentRate:
    return domain.EquipmentRate(
        equipment_id=row.equipment_id,
        description=row.description or "",
        category=row.category or "",
        hourly_rate=row.hourly_rate,
        rental_rate=row.rental_rate,
        effective_date=row.effective_date,
    )


def _to_line_item(row: orm.ProjectBOQItem) -> domain.ComputedBOQLineItem:
    data = dict(row.snapshot)
    data["quantity"] = row.quantity
    data["total_amount"] = row.total_amount
    return domain.ComputedBOQLineItem.model_validate(data)
