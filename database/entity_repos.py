"""实体仓库 —— 顾客档案的数据访问层。

负责 Customer 数据类与 customers 表之间的转换，以及按 id 的
写入、读取、软删除和清空。校验与事件通知由 DatabaseManager 负责。
"""
from typing import List, Optional

from sqlalchemy import delete, select

from business.customer import Customer, format_timestamp, utcnow
from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import CustomerRow


def customer_to_row(customer: Customer) -> CustomerRow:
    """把 Customer 转换为 ORM 行对象。"""
    return CustomerRow(
        id=customer.id,
        name=customer.name,
        phone=customer.phone,
        notes=customer.notes,
        measurements=dict(customer.measurements),
        models=customer.models.to_dict(),
        sewing_price=customer.sewing_price,
        delivery_day=customer.delivery_day,
        payment_received=customer.payment_received,
        payment_date=customer.payment_date,
        orders=[o.to_dict() for o in customer.orders],
        created_at=customer.created_at,
        updated_at=customer.updated_at,
        deleted=customer.deleted,
        version=customer.version,
    )


def row_to_customer(row: CustomerRow) -> Customer:
    """把 ORM 行对象转换为规范化的 Customer。"""
    return Customer.from_dict({
        "id": row.id,
        "name": row.name,
        "phone": row.phone,
        "notes": row.notes,
        "measurements": row.measurements,
        "models": row.models,
        "sewingPrice": row.sewing_price,
        "deliveryDay": row.delivery_day,
        "paymentReceived": row.payment_received,
        "paymentDate": format_timestamp(row.payment_date),
        "orders": row.orders,
        "createdAt": format_timestamp(row.created_at),
        "updatedAt": format_timestamp(row.updated_at),
        "deleted": row.deleted,
        "version": row.version,
    })


class CustomerRepository(BaseCRUD):
    """顾客档案 仓库。

    以 id 为键的单一键空间，写入为整行覆盖（后写者胜）。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    async def upsert(self, customer: Customer) -> None:
        """插入或整体覆盖一条顾客记录。"""
        async with self._get_session() as session:
            await session.merge(customer_to_row(customer))
            await session.commit()

    async def get(self, customer_id: str) -> Optional[Customer]:
        """按 id 获取顾客，不存在返回 None。"""
        row = await self.get_by_id(CustomerRow, customer_id)
        return row_to_customer(row) if row is not None else None

    async def list_all(self, include_deleted: bool = False) -> List[Customer]:
        """获取顾客列表，按创建时间倒序（最新在前）。

        Args:
            include_deleted: 是否包含已软删除的顾客。
        """
        stmt = select(CustomerRow).order_by(CustomerRow.created_at.desc())
        if not include_deleted:
            stmt = stmt.where(CustomerRow.deleted.is_(False))

        async with self._get_session() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()
        return [row_to_customer(row) for row in rows]

    async def list_visible_unordered(self) -> List[Customer]:
        """按存储顺序获取所有未删除的顾客（用于全表扫描搜索）。"""
        stmt = select(CustomerRow).where(CustomerRow.deleted.is_(False))
        async with self._get_session() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()
        return [row_to_customer(row) for row in rows]

    async def soft_delete(self, customer_id: str) -> Optional[Customer]:
        """标记顾客为已删除（记录仍保留在表中）。

        Returns:
            更新后的 Customer，不存在返回 None。
        """
        async with self._get_session() as session:
            row = await session.get(CustomerRow, customer_id)
            if row is None:
                return None
            row.deleted = True
            row.updated_at = utcnow()
            await session.commit()
            return row_to_customer(row)

    async def clear(self) -> int:
        """物理删除全部顾客记录。

        Returns:
            删除的行数。
        """
        async with self._get_session() as session:
            result = await session.execute(delete(CustomerRow))
            await session.commit()
            return result.rowcount or 0
