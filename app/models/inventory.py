"""
Inventory management utilities
Stock moves at most once per order in each direction
"""

import logging
from typing import List
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, case, or_

from app.models.order import Order, OrderItem
from app.models.product import Product
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)


class InventoryManager:
    """
    Manages inventory operations for paid and failed orders
    """
    
    async def _order_items(self, db: AsyncSession, order_id: UUID) -> List[OrderItem]:
        result = await db.execute(
            select(OrderItem).where(OrderItem.order_id == order_id)
        )
        return list(result.scalars().all())
    
    async def decrement_for_order(self, db: AsyncSession, order_id: UUID) -> bool:
        """
        Take the order's items out of stock.
        
        The order row is stamped with a conditional update first, so a
        replayed or concurrent call finds the stamp already set and leaves
        stock alone. An order whose stock was restored after a failed
        payment can be decremented again once it is paid.
        
        Returns:
            True if this call decremented stock, False if it was already done
        """
        guard = await db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                or_(Order.stock_decremented_at.is_(None), Order.stock_restored_at.is_not(None))
            )
            .values(stock_decremented_at=utcnow(), stock_restored_at=None)
            .execution_options(synchronize_session=False)
        )
        if guard.rowcount != 1:
            logger.info(f"Stock already decremented for order {order_id}")
            return False
        
        for item in await self._order_items(db, order_id):
            result = await db.execute(
                update(Product)
                .where(Product.id == item.product_id, Product.track_inventory.is_(True))
                .values(
                    stock=case(
                        (Product.stock >= item.quantity, Product.stock - item.quantity),
                        else_=0
                    )
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                logger.debug(f"Decremented product {item.product_id} by {item.quantity}")
        
        return True
    
    async def restore_for_order(self, db: AsyncSession, order_id: UUID) -> bool:
        """
        Put the order's items back into stock.
        
        Only applies to orders whose stock was decremented and not yet
        restored.
        
        Returns:
            True if this call restored stock
        """
        guard = await db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.stock_decremented_at.is_not(None),
                Order.stock_restored_at.is_(None)
            )
            .values(stock_restored_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if guard.rowcount != 1:
            return False
        
        for item in await self._order_items(db, order_id):
            await db.execute(
                update(Product)
                .where(Product.id == item.product_id, Product.track_inventory.is_(True))
                .values(stock=Product.stock + item.quantity)
                .execution_options(synchronize_session=False)
            )
        
        logger.info(f"Restored stock for order {order_id}")
        return True
    
    async def get_stock(self, db: AsyncSession, product_id: UUID) -> int:
        result = await db.execute(
            select(Product.stock).where(Product.id == product_id)
        )
        return result.scalar_one()
