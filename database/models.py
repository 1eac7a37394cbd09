"""SQLAlchemy ORM 模型定义。

本模块定义了本地存储的所有表：
- customers: 顾客档案（按 id 存取，name/phone/created_at 建有二级索引）
- settings: 键值设置，带更新时间
- backups: 只追加的备份快照
- schema_info: 存储结构版本，用于一次性升级
"""
from typing import Dict, Any, List, Optional
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, JSON, Index
)
from sqlalchemy.orm import declarative_base
from datetime import datetime

# SQLAlchemy declarative base，所有模型都继承自此类
Base = declarative_base()

# 允许使用旧式类型注解
Base.__allow_unmapped__ = True


class CustomerRow(Base):
    """顾客表模型。

    一行对应一位顾客的完整档案。尺寸、款式和订单以 JSON 保存，
    其余字段为普通列。软删除的顾客仍保留在表中，通过 deleted 标记过滤。

    Attributes:
        id: 主键，短数字字符串（由应用生成）。
        name: 顾客姓名，必填，建索引。
        phone: 联系电话，必填，建索引。
        notes: 备注，文本类型。
        measurements: 尺寸字段 → 数值或空字符串，JSON。
        models: 款式选择 {collar, sleeve, skirt, features}，JSON。
        sewing_price: 缝制价格，JSON（通常为整数，也可能是未通过校验前的原值）。
        delivery_day: 交付日。
        payment_received: 是否已付款。
        payment_date: 付款时间。
        orders: 订单列表，JSON。
        created_at: 创建时间，建索引。
        updated_at: 最后修改时间。
        deleted: 软删除标记。
        version: 记录结构版本，仅透传。
    """
    __tablename__ = "customers"

    id: str = Column(String(16), primary_key=True)
    name: str = Column(String(100), nullable=False)
    phone: str = Column(String(32), nullable=False)
    notes: Optional[str] = Column(Text, default="")
    measurements: Dict[str, Any] = Column(JSON, default={})
    models: Dict[str, Any] = Column(JSON, default={})
    sewing_price: Any = Column(JSON)
    delivery_day: Optional[str] = Column(String(20), default="")
    payment_received: bool = Column(Boolean, default=False)
    payment_date: Optional[datetime] = Column(DateTime)
    orders: List[Dict[str, Any]] = Column(JSON, default=[])
    created_at: datetime = Column(DateTime, nullable=False)
    updated_at: datetime = Column(DateTime, nullable=False)
    deleted: bool = Column(Boolean, default=False)
    version: int = Column(Integer, default=1)

    __table_args__ = (
        Index("ix_customers_name", "name"),
        Index("ix_customers_phone", "phone"),
        Index("ix_customers_created_at", "created_at"),
    )


class SettingRow(Base):
    """设置表模型。

    Attributes:
        key: 设置名，主键。
        value: 设置值，JSON（字符串、布尔、数字均可）。
        updated_at: 更新时间。
    """
    __tablename__ = "settings"

    key: str = Column(String(50), primary_key=True)
    value: Any = Column(JSON)
    updated_at: datetime = Column(DateTime, nullable=False)


class BackupRow(Base):
    """备份快照表模型。

    快照一经写入不再修改，核心层也不做清理。

    Attributes:
        id: 主键，自增整数。
        date: 快照时间，建索引。
        data: 快照内容 {customers, timestamp, version, totalCustomers}。
    """
    __tablename__ = "backups"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    date: datetime = Column(DateTime, nullable=False, index=True)
    data: Dict[str, Any] = Column(JSON, nullable=False)


class SchemaInfo(Base):
    """存储结构版本表，只有一行。"""
    __tablename__ = "schema_info"

    id: int = Column(Integer, primary_key=True)
    version: int = Column(Integer, nullable=False)
    upgraded_at: datetime = Column(DateTime, nullable=False)
