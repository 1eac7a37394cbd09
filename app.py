#!/usr/bin/env python3
"""裁缝店顾客档案 - 命令行入口

使用方式：
    python app.py list
    python app.py add "Ali Khan" 0799123456
    python app.py search 0799
    python app.py show 1234
    python app.py price 1234 500
    python app.py pay 1234
    python app.py export backup.json
    python app.py import backup.json

    # 指定数据库
    python app.py --db sqlite:///data/tailor.db list

环境变量（在 .env 文件中配置）：
    DATABASE_URL      数据库连接地址（默认 sqlite:///data/tailor.db）
    AUTOSAVE_DELAY    自动保存静默期，秒（默认 1.5）
    LOG_LEVEL         日志级别（默认 INFO）
    EXPORT_DIR        导出文件目录（默认 data/exports）
"""
import argparse
import asyncio
import json
import sys

from loguru import logger

from business.customer import Customer
from business.shop import TailorShop
from config.settings import settings
from config.shop_config import MEASUREMENT_FIELDS
from database import DatabaseManager, StoreError, ValidationFailedError


def print_customer_line(customer: Customer) -> None:
    badges = []
    if customer.sewing_price:
        badges.append(f"{customer.sewing_price}")
    if customer.payment_received:
        badges.append("paid")
    if customer.delivery_day:
        badges.append(customer.delivery_day)
    suffix = f"  [{', '.join(badges)}]" if badges else ""
    print(f"{customer.id:>6}  {customer.name:<24} {customer.phone}{suffix}")


def print_customer_detail(customer: Customer) -> None:
    print(f"编号: {customer.id}")
    print(f"姓名: {customer.name}")
    print(f"电话: {customer.phone}")
    if customer.notes:
        print(f"备注: {customer.notes}")
    print("尺寸:")
    for name in MEASUREMENT_FIELDS:
        value = customer.measurements.get(name, "")
        if value != "":
            print(f"  {name}: {value}")
    models = customer.models
    print(f"领口: {models.collar or '-'}  袖口: {models.sleeve or '-'}")
    print(f"下摆: {', '.join(models.skirt) or '-'}  工艺: {', '.join(models.features) or '-'}")
    print(f"价格: {customer.sewing_price if customer.sewing_price is not None else '-'}")
    paid = customer.payment_date.isoformat() if customer.payment_date else "未付款"
    print(f"付款: {paid}")
    print(f"交付日: {customer.delivery_day or '-'}")
    for index, order in enumerate(customer.orders, 1):
        print(f"  订单 #{index} [{order.status}] {order.details}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="裁缝店顾客档案")
    parser.add_argument("--db", default=None, help="数据库连接 URL")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="列出顾客")
    p.add_argument("--all", action="store_true", help="包含已删除的顾客")

    p = sub.add_parser("add", help="添加顾客")
    p.add_argument("name")
    p.add_argument("phone")

    p = sub.add_parser("show", help="查看顾客档案")
    p.add_argument("id")

    p = sub.add_parser("search", help="搜索顾客")
    p.add_argument("query")

    p = sub.add_parser("delete", help="删除顾客")
    p.add_argument("id")

    p = sub.add_parser("measure", help="设置尺寸")
    p.add_argument("id")
    p.add_argument("field", choices=MEASUREMENT_FIELDS)
    p.add_argument("value")

    p = sub.add_parser("price", help="设置缝制价格")
    p.add_argument("id")
    p.add_argument("amount")

    p = sub.add_parser("pay", help="切换付款状态")
    p.add_argument("id")

    p = sub.add_parser("order", help="添加订单")
    p.add_argument("id")
    p.add_argument("details")

    sub.add_parser("stats", help="统计")
    sub.add_parser("backup", help="生成备份快照")
    sub.add_parser("backups", help="列出备份快照")

    p = sub.add_parser("export", help="导出到 JSON 文件")
    p.add_argument("path", nargs="?")

    p = sub.add_parser("import", help="从 JSON 文件导入")
    p.add_argument("path")
    p.add_argument("--merge", action="store_true", help="保留现有数据，不先清空")

    p = sub.add_parser("clear", help="清空全部顾客数据")
    p.add_argument("--yes", action="store_true", help="确认清空")

    p = sub.add_parser("setting", help="查看或修改设置")
    p.add_argument("key", nargs="?")
    p.add_argument("value", nargs="?", help="JSON 值，如 true、24、\"light\"")

    return parser


async def edit_and_save(shop: TailorShop, customer_id: str, edit) -> Customer:
    """打开档案、执行编辑并立即保存"""
    shop.open(customer_id)
    edit()
    return await shop.save_current()


async def run(args: argparse.Namespace) -> int:
    db = DatabaseManager(args.db)
    shop = TailorShop(db)
    try:
        await shop.start()
        command = args.command
        if command == "list":
            customers = await db.get_all(include_deleted=args.all)
            for customer in customers:
                print_customer_line(customer)
            print(f"共 {len(customers)} 位顾客")
        elif command == "add":
            customer = await shop.add_customer(args.name, args.phone)
            print(f"已添加顾客 {customer.id}")
        elif command == "show":
            customer = await db.get_by_id(args.id)
            if customer is None or customer.deleted:
                print(f"顾客不存在: {args.id}")
                return 1
            print_customer_detail(customer)
        elif command == "search":
            for customer in await shop.search(args.query):
                print_customer_line(customer)
        elif command == "delete":
            await shop.delete_customer(args.id)
            print(f"已删除顾客 {args.id}")
        elif command == "measure":
            await edit_and_save(
                shop, args.id, lambda: shop.update_measurement(args.field, args.value)
            )
        elif command == "price":
            await edit_and_save(shop, args.id, lambda: shop.update_price(args.amount))
        elif command == "pay":
            customer = await edit_and_save(shop, args.id, shop.toggle_payment)
            print("已付款" if customer.payment_received else "未付款")
        elif command == "order":
            await edit_and_save(shop, args.id, lambda: shop.add_order(args.details))
        elif command == "stats":
            for key, value in shop.stats().items():
                print(f"{key}: {value}")
        elif command == "backup":
            payload = await db.create_backup()
            print(f"备份已创建，共 {payload['totalCustomers']} 位顾客")
        elif command == "backups":
            for backup in await db.list_backups():
                print(f"#{backup['id']}  {backup['date']:%Y-%m-%d %H:%M}  {backup['total_customers']}")
        elif command == "export":
            path = await shop.export_to_file(args.path)
            print(f"已导出到 {path}")
        elif command == "import":
            result = await shop.import_from_file(args.path, replace=not args.merge)
            print(f"导入 {result.imported}，跳过 {result.skipped}，失败 {result.failed}")
        elif command == "clear":
            if not args.yes:
                print("清空操作不可恢复，请加 --yes 确认")
                return 1
            removed = await shop.clear_all()
            print(f"已清空 {removed} 条记录")
        elif command == "setting":
            if args.key is None:
                for key, value in (await db.get_all_settings()).items():
                    print(f"{key} = {json.dumps(value, ensure_ascii=False)}")
            elif args.value is None:
                value = await shop.get_setting(args.key)
                print(json.dumps(value, ensure_ascii=False))
            else:
                try:
                    value = json.loads(args.value)
                except json.JSONDecodeError:
                    value = args.value
                await shop.save_setting(args.key, value)
        return 0
    except ValidationFailedError as e:
        for message in e.messages:
            print(message, file=sys.stderr)
        return 1
    except StoreError as e:
        print(f"错误: {e}", file=sys.stderr)
        return 1
    finally:
        await shop.shutdown()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
