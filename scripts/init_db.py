"""初始化数据库"""
import asyncio
import sys
import os

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import DatabaseManager
from loguru import logger


async def init_database(database_url=None):
    """初始化数据库结构和默认设置"""
    logger.info("Initializing database...")

    db = DatabaseManager(database_url)
    try:
        # 建表、建索引、写入默认设置
        await db.init()
        for key, value in (await db.get_all_settings()).items():
            logger.info(f"Setting {key} = {value!r}")
    finally:
        await db.close()

    logger.info("Database initialization completed!")


if __name__ == "__main__":
    asyncio.run(init_database(sys.argv[1] if len(sys.argv) > 1 else None))
