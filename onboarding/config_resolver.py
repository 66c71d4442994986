"""
Capability matrix: resolves a sale type to the ticket groups, capabilities
and items the onboarding orchestrator creates tickets for.

Matrix layout:
    SaleType x Capability -> enabled
    Capability -> TicketGroup (optional) -> one child ticket per group
    Capability -> CapabilityItem (listed in the child description)
"""

from typing import Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from core.exceptions import StoreError
from models.base import ItemType
from models.onboarding_config import (
    Capability,
    CapabilityItem,
    CapabilityMatrixEntry,
    SaleType,
    TicketGroup,
)
from schemas.onboarding import (
    MatrixCapability,
    MatrixCell,
    MatrixResponse,
    MatrixSaleType,
    MatrixUpdate,
    ResolvedCapability,
    ResolvedItem,
    ResolvedTicketGroup,
)
import logging

logger = logging.getLogger(__name__)


class OnboardingConfigRepository:
    """Read and maintain the capability matrix"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve_for_sale_type(self, sale_type_name: str) -> List[ResolvedTicketGroup]:
        """
        Resolve a sale type to ordered ticket groups.

        Only enabled matrix cells and active sale types, groups, capabilities
        and items take part. Capabilities without a group become a bundle of
        their own (ticket_group_id None, named after the capability), placed
        after the grouped bundles.

        Returns:
            Ticket groups in (sort_order, id) order; [] for an unknown sale type
        """
        sale_type = await self._get_sale_type(sale_type_name)
        if sale_type is None:
            logger.info(f"Sale type not found or inactive: {sale_type_name}")
            return []

        result = await self.db.execute(
            select(Capability, TicketGroup)
            .join(CapabilityMatrixEntry, CapabilityMatrixEntry.capability_id == Capability.id)
            .outerjoin(TicketGroup, Capability.ticket_group_id == TicketGroup.id)
            .where(
                CapabilityMatrixEntry.sale_type_id == sale_type.id,
                CapabilityMatrixEntry.enabled.is_(True),
                Capability.is_active.is_(True),
            )
            .order_by(Capability.sort_order, Capability.id)
        )
        rows = result.all()
        if not rows:
            return []

        items_by_capability = await self._items_for([capability.id for capability, _ in rows])

        grouped: Dict[int, ResolvedTicketGroup] = {}
        group_order: Dict[int, tuple] = {}
        ungrouped: List[ResolvedTicketGroup] = []

        for capability, group in rows:
            resolved = ResolvedCapability(
                capability_id=capability.id,
                capability_name=capability.name,
                items=items_by_capability.get(capability.id, []),
            )

            if capability.ticket_group_id is None:
                ungrouped.append(ResolvedTicketGroup(
                    ticket_group_id=None,
                    ticket_group_name=capability.name,
                    capabilities=[resolved],
                ))
                continue

            # Capability assigned to a missing or inactive group
            if group is None or not group.is_active:
                continue

            if group.id not in grouped:
                grouped[group.id] = ResolvedTicketGroup(
                    ticket_group_id=group.id,
                    ticket_group_name=group.name,
                )
                group_order[group.id] = (group.sort_order, group.id)
            grouped[group.id].capabilities.append(resolved)

        ordered = [grouped[group_id] for group_id in sorted(grouped, key=group_order.get)]
        return ordered + ungrouped

    async def _get_sale_type(self, name: str) -> Optional[SaleType]:
        result = await self.db.execute(
            select(SaleType).where(SaleType.name == name, SaleType.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    async def _items_for(self, capability_ids: List[int]) -> Dict[int, List[ResolvedItem]]:
        result = await self.db.execute(
            select(CapabilityItem)
            .where(
                CapabilityItem.capability_id.in_(capability_ids),
                CapabilityItem.is_active.is_(True),
            )
            .order_by(CapabilityItem.sort_order, CapabilityItem.id)
        )

        items: Dict[int, List[ResolvedItem]] = {}
        for item in result.scalars().all():
            items.setdefault(item.capability_id, []).append(
                ResolvedItem(name=item.name, item_type=item.item_type)
            )
        return items

    # ------------------------------------------------------------------
    # Matrix maintenance
    # ------------------------------------------------------------------

    async def batch_update_matrix(self, updates: List[MatrixUpdate]) -> int:
        """
        Apply matrix cell updates in one transaction.

        Re-applying the same batch leaves the matrix unchanged. Any failure
        rolls back the whole batch.

        Returns:
            Number of cells written
        """
        try:
            for update in updates:
                result = await self.db.execute(
                    select(CapabilityMatrixEntry).where(
                        CapabilityMatrixEntry.sale_type_id == update.sale_type_id,
                        CapabilityMatrixEntry.capability_id == update.capability_id,
                    )
                )
                entry = result.scalar_one_or_none()

                if entry is None:
                    entry = CapabilityMatrixEntry(
                        sale_type_id=update.sale_type_id,
                        capability_id=update.capability_id,
                    )
                    self.db.add(entry)

                entry.enabled = update.enabled
                if update.notes is not None:
                    entry.notes = update.notes

                # Keep the next SELECT from missing a cell added earlier in this batch
                await self.db.flush()

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(
                "Matrix update failed",
                context={"updates": len(updates)},
                original_exception=e
            )

        logger.info(f"Applied {len(updates)} matrix updates")
        return len(updates)

    async def get_full_matrix(self) -> MatrixResponse:
        """Every active sale type and capability, plus every stored cell"""
        sale_types = (await self.db.execute(
            select(SaleType)
            .where(SaleType.is_active.is_(True))
            .order_by(SaleType.sort_order, SaleType.id)
        )).scalars().all()

        capability_rows = (await self.db.execute(
            select(Capability, TicketGroup)
            .outerjoin(TicketGroup, Capability.ticket_group_id == TicketGroup.id)
            .where(Capability.is_active.is_(True))
            .order_by(Capability.sort_order, Capability.id)
        )).all()

        cells = (await self.db.execute(
            select(CapabilityMatrixEntry).order_by(
                CapabilityMatrixEntry.sale_type_id, CapabilityMatrixEntry.capability_id
            )
        )).scalars().all()

        return MatrixResponse(
            sale_types=[MatrixSaleType(id=s.id, name=s.name) for s in sale_types],
            capabilities=[
                MatrixCapability(
                    id=capability.id,
                    name=capability.name,
                    ticket_group_id=capability.ticket_group_id,
                    ticket_group_name=group.name if group else None,
                )
                for capability, group in capability_rows
            ],
            cells=[
                MatrixCell(
                    sale_type_id=cell.sale_type_id,
                    capability_id=cell.capability_id,
                    enabled=cell.enabled,
                    notes=cell.notes,
                )
                for cell in cells
            ],
        )

    # ------------------------------------------------------------------
    # Creation helpers
    # ------------------------------------------------------------------

    async def _add(self, record):
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        return record

    async def add_ticket_group(self, name: str, sort_order: int = 0) -> TicketGroup:
        return await self._add(TicketGroup(name=name, sort_order=sort_order))

    async def add_capability(
        self,
        name: str,
        ticket_group_id: Optional[int] = None,
        sort_order: int = 0
    ) -> Capability:
        return await self._add(Capability(name=name, ticket_group_id=ticket_group_id, sort_order=sort_order))

    async def add_item(
        self,
        capability_id: int,
        name: str,
        item_type: ItemType = ItemType.STANDARD,
        sort_order: int = 0
    ) -> CapabilityItem:
        return await self._add(CapabilityItem(
            capability_id=capability_id,
            name=name,
            item_type=item_type,
            sort_order=sort_order,
        ))

    async def add_sale_type(self, name: str, sort_order: int = 0) -> SaleType:
        return await self._add(SaleType(name=name, sort_order=sort_order))
