"""
Pylayer 关系示例

展示关系的各种使用方式：
- 一对一（HasOne / BelongsTo）
- 一对多（HasMany / BelongsTo）
- 直接给 BelongsTo 赋值
- 删除所属实例时的级联删除
"""

import asyncio
import os
import sys

# 添加父目录到路径
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from pylayer import Store, Model, Field, PrimaryKey, ForeignKey, HasOne, HasMany, BelongsTo


class User(Model):
    """用户模型"""
    id = PrimaryKey()
    name = Field(str)

    # 一对一：用户 -> 个人资料（外键在 Profile 上）
    profile = HasOne('Profile', foreign_key='user_id')


class Profile(Model):
    """个人资料模型"""
    id = PrimaryKey()
    user_id = ForeignKey()
    country = Field(str)

    user = BelongsTo('User', foreign_key='user_id')


class Album(Model):
    """相册模型"""
    id = PrimaryKey()
    name = Field(str)

    # 一对多：相册 -> 照片（使用类名引用，此时 Photo 尚未定义）
    photos = HasMany('Photo', foreign_key='album_id')


class Photo(Model):
    """照片模型"""
    id = PrimaryKey()
    album_id = ForeignKey()
    title = Field(str)

    album = BelongsTo('Album', foreign_key='album_id')


async def main() -> None:
    print("=" * 70)
    print("Pylayer 关系示例")
    print("=" * 70)

    store = Store('RelationshipDemo', 'memory://', [User, Profile, Album, Photo])

    # ========================================================================
    # 1. 一对一
    # ========================================================================
    print("\n1. 一对一：User.profile / Profile.user")

    alice = await store.User.put({'name': 'Alice'})
    alice.profile.country = 'Japan'
    await alice.profile.save()
    print(f"   - 用户: {alice.name} (id={alice.id})")
    print(f"   - 资料: {alice.profile.serialize()}")

    loaded = await store.User.get(alice.id)
    await loaded.profile.load()
    print(f"   - 重新加载的资料: country={loaded.profile.country}")
    print(f"   - 反向关系复用所属实例: {loaded.profile.user is loaded}")

    # ========================================================================
    # 2. 一对多
    # ========================================================================
    print("\n2. 一对多：Album.photos / Photo.album")

    album = await store.Album.put({'id': 'holidays', 'name': 'Holidays'})
    await album.photos.put({'title': 'Beach'})
    await album.photos.put({'title': 'Mountain'})
    await store.Photo.put({'title': 'Unsorted'})

    photos = await album.photos.find(order='title')
    print(f"   - 相册中的照片数量: {await album.photos.count()}")
    for photo in photos:
        print(f"     * {photo.title} (album_id={photo.album_id})")
    print(f"   - 全部照片数量: {await store.Photo.count()}")

    # ========================================================================
    # 3. BelongsTo 赋值
    # ========================================================================
    print("\n3. 给 BelongsTo 赋值")

    unsorted = (await store.Photo.find(query={'title': 'Unsorted'}))[0]
    unsorted.album = album
    await unsorted.save()
    print(f"   - Unsorted 的 album_id: {unsorted.album_id}")
    print(f"   - 相册中的照片数量: {await album.photos.count()}")

    # ========================================================================
    # 4. 级联删除
    # ========================================================================
    print("\n4. 级联删除")

    await album.delete()
    print(f"   - 删除相册后的照片数量: {await store.Photo.count()}")
    await alice.delete()
    print(f"   - 删除用户后的资料数量: {await store.Profile.count()}")

    print("\n" + "=" * 70)
    print("示例完成")
    print("=" * 70)


if __name__ == '__main__':
    asyncio.run(main())
