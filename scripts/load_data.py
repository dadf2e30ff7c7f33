#!/usr/bin/env python3
"""
Seed users, follows and posts through the API, then compare cold and cached
feed reads and show how a popular author's new post invalidates follower feeds.
"""
import argparse
import asyncio
import random
import time

import aiohttp


async def create_user(session, api_url, user_id):
    async with session.post(
        f"{api_url}/users/",
        json={
            "username": f"user{user_id}",
            "email": f"user{user_id}@example.com"
        }
    ) as resp:
        return await resp.json()


async def follow(session, api_url, follower_id, followed_id):
    async with session.post(
        f"{api_url}/follows/{followed_id}",
        headers={"X-User-ID": str(follower_id)}
    ) as resp:
        return await resp.json()


async def create_post(session, api_url, user_id, caption):
    start = time.time()
    async with session.post(
        f"{api_url}/posts/",
        headers={"X-User-ID": str(user_id)},
        json={"caption": caption}
    ) as resp:
        result = await resp.json()
    return time.time() - start, result


async def read_feed(session, api_url, user_id, page=1, limit=10):
    start = time.time()
    async with session.get(
        f"{api_url}/feed/",
        params={"page": page, "limit": limit},
        headers={"X-User-ID": str(user_id)}
    ) as resp:
        data = await resp.json()
    return time.time() - start, len(data["data"]["posts"])


async def run_batched(coros, batch_size=100):
    for i in range(0, len(coros), batch_size):
        await asyncio.gather(*coros[i:i + batch_size])


async def load_data(api_url="http://localhost:8000/api", num_users=500,
                    popular_followers=200, posts_per_user=5):
    print(f"\n=== Loading Data ===")
    print(f"API URL: {api_url}")

    connector = aiohttp.TCPConnector(limit=100)
    async with aiohttp.ClientSession(connector=connector) as session:
        print(f"\n1. Creating {num_users} users...")
        start = time.time()
        await run_batched([create_user(session, api_url, i) for i in range(1, num_users + 1)])
        print(f"   ✓ Created {num_users} users in {time.time() - start:.2f} sec")

        print(f"\n2. User 1 gets {popular_followers} followers, others follow at random...")
        start = time.time()
        follows = [follow(session, api_url, f, 1) for f in range(2, min(popular_followers + 2, num_users + 1))]
        for user_id in range(2, num_users + 1):
            for followed_id in random.sample(range(2, num_users + 1), min(20, num_users - 1)):
                if followed_id != user_id:
                    follows.append(follow(session, api_url, user_id, followed_id))
        await run_batched(follows, batch_size=200)
        print(f"   ✓ Created {len(follows)} follows in {time.time() - start:.2f} sec")

        print(f"\n3. Creating {posts_per_user} posts per user...")
        start = time.time()
        await run_batched([
            create_post(session, api_url, user_id, f"Post #{n} from user{user_id}")
            for user_id in range(1, num_users + 1)
            for n in range(posts_per_user)
        ])
        print(f"   ✓ Created posts in {time.time() - start:.2f} sec")

        print("\n4. Feed read performance (user 2)...")
        cold, count = await read_feed(session, api_url, 2)
        warm, _ = await read_feed(session, api_url, 2)
        print(f"   Cold read: {cold * 1000:.1f} ms ({count} posts)")
        print(f"   Cached read: {warm * 1000:.1f} ms")

        print(f"\n5. Popular author posts ({popular_followers} follower feeds invalidated)...")
        elapsed, _ = await create_post(session, api_url, 1, "Hello followers")
        after, _ = await read_feed(session, api_url, 2)
        print(f"   Post with fan-out invalidation: {elapsed * 1000:.1f} ms")
        print(f"   Follower feed read after invalidation: {after * 1000:.1f} ms")


async def main():
    parser = argparse.ArgumentParser(description='Seed the social feed API')
    parser.add_argument('--url', default='http://localhost:8000/api', help='API URL')
    parser.add_argument('--users', type=int, default=500, help='Number of users')
    parser.add_argument('--popular', type=int, default=200, help='Followers of user 1')
    parser.add_argument('--posts', type=int, default=5, help='Posts per user')
    args = parser.parse_args()

    await load_data(
        api_url=args.url,
        num_users=args.users,
        popular_followers=args.popular,
        posts_per_user=args.posts
    )


if __name__ == "__main__":
    asyncio.run(main())
