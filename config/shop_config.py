"""
门店配置接口 - 固定目录（尺寸字段、款式、交付日）与默认设置

新门店可以实现自己的配置，替换默认配置。
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Any


class ShopConfig(ABC):
    """门店配置抽象基类"""

    @abstractmethod
    def get_measurement_fields(self) -> List[str]:
        """获取尺寸字段列表（封闭集合）"""
        pass

    @abstractmethod
    def get_collar_models(self) -> List[str]:
        """获取领口款式列表"""
        pass

    @abstractmethod
    def get_sleeve_models(self) -> List[str]:
        """获取袖口款式列表"""
        pass

    @abstractmethod
    def get_skirt_models(self) -> List[str]:
        """获取下摆款式列表（可多选）"""
        pass

    @abstractmethod
    def get_features(self) -> List[str]:
        """获取附加工艺列表（可多选）"""
        pass

    @abstractmethod
    def get_delivery_days(self) -> List[str]:
        """获取交付日列表（7 天）"""
        pass

    @abstractmethod
    def get_default_settings(self) -> Dict[str, Any]:
        """获取默认设置项"""
        pass


class TailoringShopConfig(ShopConfig):
    """阿富汗传统服装裁缝店配置"""

    def get_measurement_fields(self) -> List[str]:
        return [
            "قد", "شانه_یک", "شانه_دو", "آستین_یک", "آستین_دو", "آستین_سه",
            "بغل", "دامن", "گردن", "دور_سینه", "شلوار", "دم_پاچه",
            "بر_تمبان", "خشتک", "چاک_پتی", "تعداد_سفارش", "مقدار_تکه",
        ]

    def get_collar_models(self) -> List[str]:
        return ["آف دار", "چپه یخن", "پاکستانی", "ملی", "شهبازی", "خامک", "قاسمی"]

    def get_sleeve_models(self) -> List[str]:
        return ["کفک", "ساده شیش بخیه", "بندک", "پر بخیه", "آف دار", "لایی یک انچ"]

    def get_skirt_models(self) -> List[str]:
        return ["دامن یک بخیه", "دامن دوبخیه", "دامن چهارکنج", "دامن ترخیز", "دامن گاوی"]

    def get_features(self) -> List[str]:
        return ["جیب رو", "جیب شلوار", "یک بخیه سند", "دو بخیه سند", "مکمل دو بخیه"]

    def get_delivery_days(self) -> List[str]:
        return ["شنبه", "یکشنبه", "دوشنبه", "سه‌شنبه", "چهارشنبه", "پنجشنبه", "جمعه"]

    def get_default_settings(self) -> Dict[str, Any]:
        return {
            "theme": "dark",
            "print_format": "thermal",
            "currency": "افغانی",
            "auto_save": True,
            "backup_interval": 24,  # 小时
        }


# 默认使用裁缝店配置
shop_config: ShopConfig = TailoringShopConfig()

# 全进程共享的尺寸字段集合
MEASUREMENT_FIELDS: List[str] = shop_config.get_measurement_fields()

# 存储结构版本（一次性升级路径）
SCHEMA_VERSION: int = 5
