"""实体仓库 —— 基础实体的数据访问层。

管理系统中的基础实体（顾客、产品类别、产品），
这些实体被服务工单、提醒、合同等业务记录引用。

每个仓库继承 BaseCRUD 获得通用能力，并添加领域特定的查询方法。
"""
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from .base_crud import BaseCRUD
from .codecs import CUSTOMER_CODEC, PRODUCT_CATEGORY_CODEC, PRODUCT_CODEC
from .entities import Customer, ProductCategory, Product


CUSTOMERS_KEY = "customers"
PRODUCT_CATEGORIES_KEY = "product_categories"
PRODUCTS_KEY = "products"


def _normalize_name(name: str) -> str:
    return (name or "").strip().lower()


class CustomerRepository(BaseCRUD[Customer]):
    """顾客 仓库。

    顾客只做归档（软删除）：delete 等同于 archive，
    归档后的顾客不出现在 get_active 中，但 get_by_id 仍能查到，
    以便历史工单、日志、合同继续解析顾客名称。
    物理删除只通过 delete_permanently 进行。
    """

    storage_key = CUSTOMERS_KEY
    codec = CUSTOMER_CODEC

    async def get_active(self) -> List[Customer]:
        """获取所有未归档的顾客。"""
        return [c for c in await self.get_all() if c.is_active]

    async def get_archived(self) -> List[Customer]:
        """获取所有已归档的顾客。"""
        return [c for c in await self.get_all() if not c.is_active]

    async def archive(self, customer_id: str) -> Optional[Customer]:
        """归档顾客：is_active 置为 False，记录归档时间，不删除记录。

        Args:
            customer_id: 顾客ID。

        Returns:
            更新后的 Customer，不存在时返回 None。
        """
        customer = await self._update_fields(
            customer_id, is_active=False, archived_at=self.now()
        )
        if customer:
            logger.info(f"Customer archived: {customer_id}")
        return customer

    async def unarchive(self, customer_id: str) -> Optional[Customer]:
        """取消归档，恢复为活跃顾客。

        Returns:
            更新后的 Customer，不存在时返回 None。
        """
        customer = await self._update_fields(
            customer_id, is_active=True, archived_at=None
        )
        if customer:
            logger.info(f"Customer restored from archive: {customer_id}")
        return customer

    async def delete(self, customer_id: str) -> bool:
        """删除顾客即归档顾客。

        Returns:
            是否找到并归档了该顾客。
        """
        return await self.archive(customer_id) is not None

    async def delete_permanently(self, customer_id: str) -> bool:
        """物理删除顾客记录，无法恢复。"""
        removed = await super().delete(customer_id)
        if removed:
            logger.warning(f"Customer permanently deleted: {customer_id}")
        return removed

    async def search(self, keyword: str,
                     include_archived: bool = False) -> List[Customer]:
        """按名称、邮箱或电话搜索顾客（不区分大小写）。

        Args:
            keyword: 搜索关键词。
            include_archived: 是否包含已归档顾客。

        Returns:
            匹配的顾客列表。
        """
        customers = await (self.get_all() if include_archived else self.get_active())
        needle = (keyword or "").strip().lower()
        if not needle:
            return customers
        return [
            c for c in customers
            if any(needle in (value or "").lower()
                   for value in (c.name, c.email, c.phone))
        ]


class ProductCategoryRepository(BaseCRUD[ProductCategory]):
    """产品类别 仓库。

    类别名称不区分大小写视为唯一，但存储层不拒绝重复写入，
    而是在列出时按规范化名称去重（先出现者保留）。
    """

    storage_key = PRODUCT_CATEGORIES_KEY
    codec = PRODUCT_CATEGORY_CODEC

    async def get_unique(self) -> List[ProductCategory]:
        """获取按名称去重后的类别列表。"""
        seen = set()
        unique = []
        for category in await self.get_all():
            key = _normalize_name(category.name)
            if key in seen:
                continue
            seen.add(key)
            unique.append(category)
        return unique

    async def get_by_name(self, name: str) -> Optional[ProductCategory]:
        """按名称查找类别（不区分大小写）。"""
        target = _normalize_name(name)
        for category in await self.get_all():
            if _normalize_name(category.name) == target:
                return category
        return None

    async def get_or_create(self, name: str,
                            description: Optional[str] = None,
                            icon: Optional[str] = None,
                            color: Optional[str] = None) -> ProductCategory:
        """获取或创建类别（按名称匹配，不区分大小写）。

        Args:
            name: 类别名称。
            description: 描述（可选）。
            icon: 图标名（可选）。
            color: 颜色（可选）。

        Returns:
            ProductCategory 对象。
        """
        category = await self.get_by_name(name)
        if category:
            return category
        return await self.save(ProductCategory(
            id="", name=name.strip(), description=description,
            icon=icon, color=color,
        ))

    async def ensure_defaults(self, defaults: Iterable[Dict[str, Any]]) -> List[ProductCategory]:
        """补齐缺失的默认类别，已有类别（按名称）保持不变。

        Args:
            defaults: 默认类别定义，包含 name / description / icon / color。

        Returns:
            新创建的类别列表。
        """
        created = []
        for definition in defaults:
            if await self.get_by_name(definition["name"]):
                continue
            category = await self.save(ProductCategory(
                id="",
                name=definition["name"],
                description=definition.get("description"),
                icon=definition.get("icon"),
                color=definition.get("color"),
            ))
            created.append(category)
            logger.info(f"Created product category: {category.name}")
        return created


class ProductRepository(BaseCRUD[Product]):
    """产品/设备 仓库。

    delete 为物理删除；deactivate / reactivate 只切换 is_active。
    """

    storage_key = PRODUCTS_KEY
    codec = PRODUCT_CODEC

    async def get_active(self) -> List[Product]:
        """获取所有启用中的产品。"""
        return [p for p in await self.get_all() if p.is_active]

    async def get_by_customer_id(self, customer_id: str) -> List[Product]:
        """获取顾客名下启用中的产品。"""
        return [p for p in await self.get_all()
                if p.customer_id == customer_id and p.is_active]

    async def get_standalone(self) -> List[Product]:
        """获取不绑定顾客的独立产品（仅启用中）。"""
        return [p for p in await self.get_all()
                if p.is_standalone and p.is_active]

    async def get_by_category_id(self, category_id: str) -> List[Product]:
        """获取某类别下启用中的产品。"""
        return [p for p in await self.get_all()
                if p.category_id == category_id and p.is_active]

    async def deactivate(self, product_id: str) -> Optional[Product]:
        """停用产品，记录保留。"""
        product = await self._update_fields(product_id, is_active=False)
        if product:
            logger.info(f"Product deactivated: {product_id}")
        return product

    async def reactivate(self, product_id: str) -> Optional[Product]:
        """重新启用已停用的产品。"""
        product = await self._update_fields(product_id, is_active=True)
        if product:
            logger.info(f"Product reactivated: {product_id}")
        return product
