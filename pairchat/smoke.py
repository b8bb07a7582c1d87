#!/usr/bin/env python3
"""
Smoke test against a running pairchat relay (python -m pairchat.smoke)
"""

import asyncio
import websockets
import json
import os
import requests
import time

# Configuration
BACKEND_URL = os.getenv("PAIRCHAT_URL", "http://localhost:3000")
WS_URL = BACKEND_URL.replace("http", "ws", 1) + "/ws"


async def recv_event(websocket, timeout=5.0):
    message = await asyncio.wait_for(websocket.recv(), timeout=timeout)
    return json.loads(message)


async def test_websocket():
    """Pair two clients and relay one text message"""
    print("🔌 Testing WebSocket pairing...")

    try:
        async with websockets.connect(WS_URL) as first:
            event = await recv_event(first)
            print(f"📨 First client received: {event['type']}")

            async with websockets.connect(WS_URL) as second:
                ready_first = await recv_event(first)
                ready_second = await recv_event(second)
                print(f"✅ Paired: {ready_second['data']['peerId']} <-> {ready_first['data']['peerId']}")

                await first.send(json.dumps({
                    "type": "chat message",
                    "data": {"text": "hi", "timestamp": int(time.time() * 1000)},
                }))
                print("📤 Sent chat message")

                try:
                    relayed = await recv_event(second)
                    print(f"✅ Relayed: {relayed['data']}")
                except asyncio.TimeoutError:
                    print("⚠️  Message was not relayed within timeout")

            try:
                notice = await recv_event(first)
                print(f"✅ After peer left: {notice['type']}")
            except asyncio.TimeoutError:
                print("⚠️  No peer disconnected notice received")

    except Exception as e:
        print(f"❌ WebSocket test failed: {e}")


def test_rest_api():
    """Check the HTTP endpoints"""
    print("\n🌐 Testing REST API endpoints...")

    for path in ("/health", "/session"):
        try:
            response = requests.get(f"{BACKEND_URL}{path}", timeout=5)
            if response.status_code == 200:
                print(f"✅ {path} working: {response.json()}")
            else:
                print(f"❌ {path} failed: {response.status_code}")
        except Exception as e:
            print(f"❌ {path} error: {e}")

    try:
        response = requests.post(
            f"{BACKEND_URL}/upload",
            files={"file": ("smoke.txt", b"pairchat smoke test\n", "text/plain")},
            timeout=5,
        )
        if response.status_code == 200:
            print(f"✅ Upload stored at {response.json()['url']}")
        else:
            print(f"❌ Upload failed: {response.status_code}")
    except Exception as e:
        print(f"❌ Upload error: {e}")


async def main():
    """Main smoke test function"""
    print("🧪 Starting pairchat smoke test...")
    print(f"📍 Backend URL: {BACKEND_URL}")
    print(f"🌐 WebSocket URL: {WS_URL}")
    print("=" * 50)

    test_rest_api()
    await test_websocket()

    print("\n" + "=" * 50)
    print("🏁 Smoke test completed!")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n🛑 Smoke test interrupted by user")
    except Exception as e:
        print(f"\n❌ Smoke test failed: {e}")
        print("\n💡 Make sure the relay is running:")
        print("   pairchat")


if __name__ == "__main__":
    run()
