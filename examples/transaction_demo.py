"""
Pylayer 事务功能演示

展示如何使用事务保证数据一致性
- Store 级事务：多个实例的修改一起提交
- 异常时自动回滚
- 实例级事务：提交后修改合并回原实例
- 使用 JSON 引擎持久化
"""

import asyncio
import os
import sys

# 添加父目录到路径
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from pylayer import Store, Model, Field, PrimaryKey, ForeignKey
from _common import json_store_url


class User(Model):
    """用户模型"""
    id = PrimaryKey()
    name = Field(str, nullable=False)
    balance = Field(int, default=0)  # 账户余额


class Order(Model):
    """订单模型"""
    id = PrimaryKey()
    user_id = ForeignKey()
    amount = Field(int)


async def print_balances(store: Store) -> None:
    for user in await store.User.find(order='name'):
        print(f"   - {user.name}: {user.balance}")


async def main() -> None:
    print("=" * 60)
    print("Pylayer 事务功能演示")
    print("=" * 60)

    store = Store('TransactionDemo', json_store_url('transaction_demo'), [User, Order])

    alice = await store.User.put({'name': 'Alice', 'balance': 1000})
    bob = await store.User.put({'name': 'Bob', 'balance': 500})

    print("\n初始余额：")
    await print_balances(store)

    # ========================================================================
    # 1. 成功的转账
    # ========================================================================
    print("\n1. 转账 200（提交）")

    async with store.transaction() as tx:
        sender = await tx.User.get(alice.id)
        receiver = await tx.User.get(bob.id)
        sender.balance -= 200
        receiver.balance += 200
        await sender.save()
        await receiver.save()
        await tx.Order.put({'user_id': alice.id, 'amount': 200})

    await print_balances(store)
    print(f"   - 订单数量: {await store.Order.count()}")

    # ========================================================================
    # 2. 失败的转账
    # ========================================================================
    print("\n2. 转账 5000（余额不足，回滚）")

    try:
        async with store.transaction() as tx:
            sender = await tx.User.get(alice.id)
            sender.balance -= 5000
            await sender.save()
            await tx.Order.put({'user_id': alice.id, 'amount': 5000})
            if sender.balance < 0:
                raise ValueError("余额不足")
    except ValueError as e:
        print(f"   - 事务已回滚: {e}")

    await print_balances(store)
    print(f"   - 订单数量: {await store.Order.count()}")

    # ========================================================================
    # 3. 实例级事务
    # ========================================================================
    print("\n3. 实例级事务")

    async with bob.transaction() as transaction_bob:
        transaction_bob.balance += 50
        await transaction_bob.save()
    print(f"   - Bob 的余额（原实例）: {bob.balance}")
    print(f"   - 是否有未保存的修改: {bob.is_modified}")

    await store.close()

    print("\n" + "=" * 60)
    print("演示完成")
    print("=" * 60)


if __name__ == '__main__':
    asyncio.run(main())
