"""初始化数据库"""
import argparse
import asyncio
import sys
import os

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database.manager import DatabaseManager
from config.business_config import business_config
from config.settings import setup_logging
from loguru import logger


async def init_database(database_url: str = None, demo: bool = False,
                        remove_demo: bool = False) -> None:
    """初始化数据库和种子数据"""
    logger.info("Initializing database...")

    # 创建数据库管理器
    db = DatabaseManager(database_url)

    try:
        # 创建存储表
        logger.info("Creating tables...")
        await db.initialize()

        # 插入默认产品类别（从 business_config 获取）
        logger.info("Inserting default product categories...")
        await db.product_categories.ensure_defaults(
            business_config.get_default_product_categories()
        )

        if remove_demo:
            await db.remove_demo_data()
        if demo:
            await db.add_demo_data()
    finally:
        await db.close()

    logger.info("Database initialization completed!")


def main():
    parser = argparse.ArgumentParser(description="初始化现场服务数据库")
    parser.add_argument("--db", default=None, help="数据库连接 URL")
    parser.add_argument("--demo", action="store_true", help="写入演示数据")
    parser.add_argument("--remove-demo", action="store_true", help="删除演示数据")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(init_database(args.db, demo=args.demo, remove_demo=args.remove_demo))


if __name__ == "__main__":
    main()
