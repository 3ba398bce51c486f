"""
业务配置接口 - 支持可替换的业务配置

新项目可以实现自己的业务配置，替换默认配置。
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Any


class BusinessConfig(ABC):
    """业务配置抽象基类"""

    @abstractmethod
    def get_default_product_categories(self) -> List[Dict[str, Any]]:
        """获取默认产品类别列表"""
        pass

    @abstractmethod
    def get_case_status_groups(self) -> Dict[str, List[str]]:
        """获取服务工单状态筛选分组"""
        pass

    @abstractmethod
    def get_priority_order(self) -> Dict[str, int]:
        """获取优先级排序权重（越大越靠前）"""
        pass

    @abstractmethod
    def get_log_type_labels(self) -> Dict[str, str]:
        """获取服务日志类型的显示名称"""
        pass


class FieldServiceConfig(BusinessConfig):
    """医疗转运设备现场服务业务配置"""

    def get_default_product_categories(self) -> List[Dict[str, Any]]:
        return [
            {"name": "Bårar", "description": "Ferno VIPER och andra bårar",
             "icon": "medical-bag", "color": "#EF4444"},
            {"name": "Stolar", "description": "Transcend PowerTraxx och andra stolar",
             "icon": "seat", "color": "#3B82F6"},
            {"name": "Tillbehör", "description": "Tillbehör för bårar och stolar",
             "icon": "puzzle", "color": "#10B981"},
            {"name": "Reservdelar", "description": "Reservdelar till utrustning",
             "icon": "cog", "color": "#F59E42"},
            {"name": "Elektronik", "description": "Elektroniska tillbehör",
             "icon": "cpu-64-bit", "color": "#6366F1"},
            {"name": "Vagnar", "description": "Transportvagnar",
             "icon": "cart", "color": "#F472B6"},
            {"name": "Lyftar", "description": "Lyftutrustning",
             "icon": "elevator-passenger", "color": "#34D399"},
            {"name": "Övrigt", "description": "Övriga produkter",
             "icon": "help-circle-outline", "color": "#6B7280"},
        ]

    def get_case_status_groups(self) -> Dict[str, List[str]]:
        # 空列表表示不过滤
        return {
            "all": [],
            "active": ["pending", "in_progress"],
            "in_progress": ["in_progress"],
            "completed": ["completed"],
            "cancelled": ["cancelled"],
        }

    def get_priority_order(self) -> Dict[str, int]:
        return {"urgent": 4, "high": 3, "medium": 2, "low": 1}

    def get_log_type_labels(self) -> Dict[str, str]:
        return {
            "note": "Anteckning",
            "status_update": "Statusuppdatering",
            "action": "Åtgärd",
            "photo": "Foto",
            "measurement": "Mätning",
            "part_replaced": "Del bytt",
            "test_result": "Testresultat",
        }


# 全局业务配置实例（可以在项目启动时替换）
business_config: BusinessConfig = FieldServiceConfig()
