"""Read-only catalog lookups"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.menu import Item


def _as_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value).strip())
    except (ValueError, AttributeError):
        return None


async def find_item_by_name_or_id(db: AsyncSession, business_id: UUID, query: str) -> Optional[Item]:
    """
    Resolve an item by id or by name against the live catalog.
    
    Name matching tries, in order: exact, prefix, contains, and the item
    name appearing inside the query ("two large pizzas please"). Within a
    tier available items win over unavailable ones.
    """
    if not query or not str(query).strip():
        return None
    
    item_id = _as_uuid(query)
    if item_id:
        result = await db.execute(
            select(Item).where(
                Item.id == item_id,
                Item.business_id == business_id,
                Item.is_active == True,
            )
        )
        return result.scalar_one_or_none()
    
    result = await db.execute(
        select(Item)
        .where(Item.business_id == business_id, Item.is_active == True)
        .order_by(Item.sort_order, Item.name)
    )
    items = result.scalars().all()
    
    needle = " ".join(str(query).casefold().split())
    tiers = [
        lambda name: name == needle,
        lambda name: name.startswith(needle),
        lambda name: needle in name,
        lambda name: len(name) >= 3 and name in needle,
    ]
    for matches in tiers:
        found = [item for item in items if matches(item.name.casefold())]
        if found:
            found.sort(key=lambda item: not item.is_available)
            return found[0]
    
    return None


async def find_available_items(
    db: AsyncSession,
    business_id: UUID,
    category: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[Item]:
    """Active, available items for a business"""
    stmt = (
        select(Item)
        .where(
            Item.business_id == business_id,
            Item.is_active == True,
            Item.is_available == True,
        )
        .order_by(Item.category, Item.sort_order, Item.name)
    )
    if category:
        stmt = stmt.where(Item.category.ilike(f"%{category.strip()}%"))
    if limit:
        stmt = stmt.limit(limit)
    
    result = await db.execute(stmt)
    return list(result.scalars().all())
