#!/usr/bin/env uv run
# /// script
# requires-python = ">=3.9"
# dependencies = [
#     "fetchcache",
# ]
#
# [tool.uv.sources]
# fetchcache = { path = "../", editable = true }
# ///

import anyio

import fetchcache


async def fetch_and_print(url: str, **options):
    print(f"\n➡ Fetching {url}...")
    response = await fetchcache.fetch(url, **options)
    body = await response.aread()

    print(f"🔢 Request: {response.extensions['fetchcache_request_id']} (status {response.status_code})")
    print(f"🚀 Was Stored: {response.extensions['fetchcache_stored']}")
    print(f"⏰ Received At: {response.extensions['fetchcache_received_at']}")
    print(f"🔄 From Cache: {response.extensions['fetchcache_from_cache']}")
    print(f"📍 Revalidated: {response.extensions['fetchcache_revalidated']}")
    print(f"📦 Body: {len(body)} bytes")


async def main():
    url = "https://www.python.org/"
    fetchcache.set_parameter("cacheFolder", ".crawl-cache")
    fetchcache.set_parameter("logToConsole", True)

    # Entries stored by a previous run are fetched again, once
    await fetch_and_print(url, refresh="once")

    # Concurrent fetches of the same URL share a single request
    async with anyio.create_task_group() as tg:
        for _ in range(3):
            tg.start_soon(fetch_and_print, url)

    # Ask for a conditional answer, as a cache-aware client would
    cached = await fetchcache.fetch(url, refresh="never")
    etag = cached.headers.get("etag")
    await cached.aclose()
    if etag is not None:
        await fetch_and_print(url, refresh="never", headers={"If-None-Match": etag})


if __name__ == "__main__":
    anyio.run(main)
