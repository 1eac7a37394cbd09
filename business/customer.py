"""顾客记录模型。

定义顾客记录（Customer）的结构、默认值、校验规则，以及存储形态
（宽松类型的字典）与内存形态（数据类）之间的规范化转换。

核心概念：
- Customer: 一位顾客的完整档案（联系方式、尺寸、款式、价格、付款、交付日、订单）
- GarmentModels: 款式选择（领口、袖口单选；下摆、附加工艺多选）
- Order: 顾客名下的一条订单
- normalize_record: 把任意来源的字典整理为规范形态（幂等）

字典形态使用导入/导出文件中的 camelCase 键名，
数据类属性使用 Python 的 snake_case 命名。
"""
import random
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Collection, Dict, List, Optional, Union

from config.shop_config import MEASUREMENT_FIELDS, shop_config


MeasurementValue = Union[float, str]

ORDER_STATUS_PENDING = "pending"

_PHONE_PATTERN = re.compile(r"[0-9]+")

MAX_ID_ATTEMPTS = 100


# ================================================================
# 工具函数
# ================================================================

def utcnow() -> datetime:
    """当前 UTC 时间（不带时区信息，便于 SQLite 存储和比较）。"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """把 datetime 或 ISO 8601 字符串解析为不带时区的 UTC 时间。

    无法解析时返回 None。
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def generate_customer_id(existing: Optional[Collection[str]] = None) -> str:
    """生成顾客编号：时间戳末 6 位 + 4 位随机数，截取前 4 个字符。

    编号短、便于手写，但不保证全局唯一：100 毫秒内生成的编号前缀相同。
    传入 existing 时，若编号已被占用，改用随机 4 位数重试。
    """
    timestamp = str(int(time.time() * 1000))[-6:]
    suffix = random.randint(1000, 9999)
    candidate = str(int(timestamp + str(suffix)))[:4]
    if existing:
        attempts = 0
        while candidate in existing and attempts < MAX_ID_ATTEMPTS:
            candidate = str(random.randint(1000, 9999))
            attempts += 1
    return candidate


def generate_order_id() -> str:
    return str(int(time.time() * 1000))


def empty_measurements() -> Dict[str, MeasurementValue]:
    """返回包含全部尺寸字段、值均为空的字典。"""
    return {name: "" for name in MEASUREMENT_FIELDS}


def _coerce_measurement(value: Any) -> MeasurementValue:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return ""
    try:
        return float(text)
    except ValueError:
        # 保留原值，由 validate 报告
        return text


def _coerce_price(value: Any) -> Any:
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else value
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return text


def _as_choice(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _as_tag_list(value: Any) -> List[str]:
    """把多选字段整理为去重后的列表（保持原有顺序）。"""
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (set, frozenset)):
        value = sorted(str(item) for item in value)
    if not isinstance(value, (list, tuple)):
        return []

    tags: List[str] = []
    for item in value:
        if item is None or item == "":
            continue
        tag = str(item)
        if tag not in tags:
            tags.append(tag)
    return tags


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


_TRUE_STRINGS = {"true", "1", "yes", "on"}


def _as_bool(value: Any) -> bool:
    """布尔字段：导入文件中的 "false" / "0" 等字符串按字面意义解析。"""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


# ================================================================
# 规范化
# ================================================================

def normalize_order(raw: Dict[str, Any]) -> Dict[str, Any]:
    created_at = parse_timestamp(raw.get("createdAt", raw.get("date")))
    return {
        "id": str(raw.get("id") or generate_order_id()),
        "details": str(raw.get("details") or ""),
        "createdAt": format_timestamp(created_at or utcnow()),
        "status": str(raw.get("status") or ORDER_STATUS_PENDING),
    }


def normalize_record(raw: Any) -> Dict[str, Any]:
    """把宽松类型的存储对象整理为规范的顾客字典。

    - 补齐 models 的缺失子字段，多选字段统一为去重列表
    - 补齐完整的尺寸字段集合，丢弃未知字段
    - 数字字符串形式的尺寸转为 float，价格转为 int
    - 兼容旧版文件中的 ``models.yakhun``、``sewingPriceAfghani``、``orders[].date``

    该函数是幂等的：对已规范化的字典再次调用结果不变。

    Args:
        raw: 任意对象，通常是数据库行或导入文件中的一条记录。

    Returns:
        规范化后的新字典（不修改入参）。
    """
    if not isinstance(raw, dict):
        raw = {}

    models_raw = raw.get("models")
    if not isinstance(models_raw, dict):
        models_raw = {}
    collar = models_raw.get("collar")
    if collar is None:
        collar = models_raw.get("yakhun")

    measurements_raw = raw.get("measurements")
    if not isinstance(measurements_raw, dict):
        measurements_raw = {}

    price = raw.get("sewingPrice")
    if price is None:
        price = raw.get("sewingPriceAfghani")

    orders_raw = raw.get("orders")
    if not isinstance(orders_raw, list):
        orders_raw = []

    created_at = parse_timestamp(raw.get("createdAt")) or utcnow()
    updated_at = parse_timestamp(raw.get("updatedAt")) or created_at
    record_id = raw.get("id")

    return {
        "id": str(record_id) if record_id not in (None, "") else generate_customer_id(),
        "name": _as_choice(raw.get("name")),
        "phone": _as_choice(raw.get("phone")),
        "notes": _as_choice(raw.get("notes")),
        "measurements": {
            name: _coerce_measurement(measurements_raw.get(name))
            for name in MEASUREMENT_FIELDS
        },
        "models": {
            "collar": _as_choice(collar),
            "sleeve": _as_choice(models_raw.get("sleeve")),
            "skirt": _as_tag_list(models_raw.get("skirt")),
            "features": _as_tag_list(models_raw.get("features")),
        },
        "sewingPrice": _coerce_price(price),
        "deliveryDay": _as_choice(raw.get("deliveryDay")),
        "paymentReceived": _as_bool(raw.get("paymentReceived", False)),
        "paymentDate": format_timestamp(parse_timestamp(raw.get("paymentDate"))),
        "orders": [normalize_order(o) for o in orders_raw if isinstance(o, dict)],
        "createdAt": format_timestamp(created_at),
        "updatedAt": format_timestamp(updated_at),
        "deleted": _as_bool(raw.get("deleted", False)),
        "version": _as_int(raw.get("version"), 1),
    }


# ================================================================
# 数据类
# ================================================================

@dataclass
class Order:
    """顾客名下的一条订单。

    Attributes:
        id: 订单编号（毫秒时间戳）
        details: 订单内容（自由文本）
        created_at: 创建时间
        status: 状态标签，新订单为 pending
    """
    id: str
    details: str
    created_at: datetime = field(default_factory=utcnow)
    status: str = ORDER_STATUS_PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "details": self.details,
            "createdAt": format_timestamp(self.created_at),
            "status": self.status,
        }


@dataclass
class GarmentModels:
    """款式选择：领口、袖口为单选，下摆和附加工艺为多选。"""
    collar: str = ""
    sleeve: str = ""
    skirt: List[str] = field(default_factory=list)
    features: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collar": self.collar,
            "sleeve": self.sleeve,
            "skirt": list(self.skirt),
            "features": list(self.features),
        }


@dataclass
class Customer:
    """顾客档案。

    Attributes:
        id: 短数字编号，创建时分配，之后不再改变
        name: 姓名（必填）
        phone: 电话（必填，至少 10 位数字）
        notes: 备注
        measurements: 尺寸字段 → 数值或空字符串，始终包含全部字段
        models: 款式选择
        sewing_price: 缝制价格（非负整数，可为空）
        delivery_day: 交付日（星期目录中的一项，可为空）
        payment_received: 是否已付款
        payment_date: 付款时间，付款状态由否变是时设置，由是变否时清空
        orders: 订单列表（有序）
        created_at: 创建时间
        updated_at: 最后修改时间，每次持久化时刷新
        deleted: 软删除标记
        version: 结构版本号，仅透传
    """
    id: str
    name: str
    phone: str
    notes: str = ""
    measurements: Dict[str, MeasurementValue] = field(default_factory=empty_measurements)
    models: GarmentModels = field(default_factory=GarmentModels)
    sewing_price: Any = None
    delivery_day: str = ""
    payment_received: bool = False
    payment_date: Optional[datetime] = None
    orders: List[Order] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    deleted: bool = False
    version: int = 1

    @classmethod
    def create(cls, name: str, phone: str,
               existing_ids: Optional[Collection[str]] = None) -> "Customer":
        """创建新顾客（不做校验，校验在保存时进行）。

        Args:
            name: 姓名。
            phone: 电话。
            existing_ids: 已占用的编号，用于避开冲突（可选）。
        """
        now = utcnow()
        return cls(
            id=generate_customer_id(existing_ids),
            name=name or "",
            phone=phone or "",
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def from_dict(cls, raw: Any) -> "Customer":
        """从任意字典构建顾客（先规范化）。"""
        data = normalize_record(raw)
        models = data["models"]
        return cls(
            id=data["id"],
            name=data["name"],
            phone=data["phone"],
            notes=data["notes"],
            measurements=data["measurements"],
            models=GarmentModels(
                collar=models["collar"],
                sleeve=models["sleeve"],
                skirt=models["skirt"],
                features=models["features"],
            ),
            sewing_price=data["sewingPrice"],
            delivery_day=data["deliveryDay"],
            payment_received=data["paymentReceived"],
            payment_date=parse_timestamp(data["paymentDate"]),
            orders=[
                Order(
                    id=o["id"],
                    details=o["details"],
                    created_at=parse_timestamp(o["createdAt"]),
                    status=o["status"],
                )
                for o in data["orders"]
            ],
            created_at=parse_timestamp(data["createdAt"]),
            updated_at=parse_timestamp(data["updatedAt"]),
            deleted=data["deleted"],
            version=data["version"],
        )

    def to_dict(self) -> Dict[str, Any]:
        """导出为导入/导出文件使用的字典形态。"""
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "notes": self.notes,
            "measurements": dict(self.measurements),
            "models": self.models.to_dict(),
            "sewingPrice": self.sewing_price,
            "deliveryDay": self.delivery_day,
            "paymentReceived": self.payment_received,
            "paymentDate": format_timestamp(self.payment_date),
            "orders": [o.to_dict() for o in self.orders],
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "deleted": self.deleted,
            "version": self.version,
        }

    def validate(self) -> List[str]:
        return validate(self)

    def touch(self) -> None:
        self.updated_at = utcnow()

    # ========== 编辑操作 ==========

    def set_measurement(self, name: str, value: Any) -> None:
        if name not in MEASUREMENT_FIELDS:
            raise ValueError(f"Unknown measurement field: {name}")
        self.measurements[name] = _coerce_measurement(value)

    def set_price(self, price: Any) -> None:
        self.sewing_price = _coerce_price(price)

    def set_payment_received(self, received: bool) -> None:
        """设置付款状态，并维护付款时间。"""
        if received and not self.payment_received:
            self.payment_date = utcnow()
        elif not received:
            self.payment_date = None
        self.payment_received = bool(received)

    def toggle_payment(self) -> bool:
        self.set_payment_received(not self.payment_received)
        return self.payment_received

    def set_delivery_day(self, day: str) -> None:
        if day and day not in shop_config.get_delivery_days():
            raise ValueError(f"Unknown delivery day: {day}")
        self.delivery_day = day or ""

    def select_model(self, kind: str, value: str) -> None:
        """设置单选款式（collar / sleeve），空字符串表示取消选择。"""
        if kind == "collar":
            catalog = shop_config.get_collar_models()
        elif kind == "sleeve":
            catalog = shop_config.get_sleeve_models()
        else:
            raise ValueError(f"Not a single-choice model: {kind}")
        if value and value not in catalog:
            raise ValueError(f"Unknown {kind} model: {value}")
        setattr(self.models, kind, value or "")

    def toggle_model_tag(self, kind: str, tag: str) -> bool:
        """切换多选款式（skirt / features）中的一项。

        Returns:
            切换后该项是否处于选中状态。
        """
        if kind == "skirt":
            catalog = shop_config.get_skirt_models()
        elif kind == "features":
            catalog = shop_config.get_features()
        else:
            raise ValueError(f"Not a multi-choice model: {kind}")
        if tag not in catalog:
            raise ValueError(f"Unknown {kind} tag: {tag}")

        tags = getattr(self.models, kind)
        if tag in tags:
            tags.remove(tag)
            return False
        tags.append(tag)
        return True

    def add_order(self, details: str) -> Order:
        details = (details or "").strip()
        if not details:
            raise ValueError("Order details must not be empty")
        order_id = generate_order_id()
        taken = {o.id for o in self.orders}
        while order_id in taken:
            order_id = str(int(order_id) + 1)
        order = Order(id=order_id, details=details)
        self.orders.append(order)
        return order

    def remove_order(self, order_id: str) -> bool:
        for index, order in enumerate(self.orders):
            if order.id == order_id:
                del self.orders[index]
                return True
        return False


# ================================================================
# 校验
# ================================================================

def validate(customer: Customer) -> List[str]:
    """校验顾客记录，返回错误信息列表（空列表表示通过）。

    所有规则独立检查，不会在第一条错误处中止。
    校验只在保存时执行，已持久化的记录不会被追溯检查。
    """
    errors: List[str] = []

    name = (customer.name or "").strip()
    if len(name) < 2:
        errors.append("نام مشتری باید حداقل ۲ کاراکتر باشد")

    phone = (customer.phone or "").strip()
    if len(phone) < 10 or not _PHONE_PATTERN.fullmatch(phone):
        errors.append("شماره تلفن باید حداقل ۱۰ رقم عددی باشد")

    for field_name in MEASUREMENT_FIELDS:
        value = customer.measurements.get(field_name, "")
        if value == "" or value is None:
            continue
        if isinstance(value, bool):
            errors.append(f"فیلد {field_name} باید عددی باشد")
            continue
        try:
            float(value)
        except (TypeError, ValueError):
            errors.append(f"فیلد {field_name} باید عددی باشد")

    price = customer.sewing_price
    if price is not None and price != "":
        if isinstance(price, bool) or not isinstance(price, (int, str)):
            errors.append("قیمت باید عددی باشد")
        else:
            try:
                if int(price) < 0:
                    errors.append("قیمت نمی‌تواند منفی باشد")
            except ValueError:
                errors.append("قیمت باید عددی باشد")

    return errors
