#!/usr/bin/env python3
"""
Posts one turn to a running relay and prints the reply and the wish list.

    python tools/smoke_client.py --text "Hi Pepper, I want a red bike" --child emma-1
"""
import argparse
import json
import sys

import requests


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--base", default="http://127.0.0.1:8787")
    ap.add_argument("--text", default="Hi! I want a puzzle")
    ap.add_argument("--child", default="demo-child", help="childId to talk as")
    ap.add_argument("--name", default="", help="optional display-name hint")
    ap.add_argument("--speak", action="store_true", help="also request TTS audio")
    args = ap.parse_args()

    payload = {"childId": args.child, "text": args.text, "speak": bool(args.speak)}
    if args.name:
        payload["name"] = args.name

    print("POST /chat with payload:")
    print(json.dumps(payload, indent=2))

    try:
        r = requests.post(f"{args.base}/chat", json=payload, timeout=60)
        r.raise_for_status()
        data = r.json()
    except Exception as e:
        print(f"❌ /chat failed: {e}")
        sys.exit(1)

    print("\n=== Chat Response ===")
    print(f"Reply: {data.get('replyText') or '<empty>'}")
    if "audioUrl" in data:
        print(f"Audio: {data['audioUrl'] or '<tts failed>'}")

    try:
        g = requests.get(f"{args.base}/gifts", params={"childId": args.child}, timeout=10)
        print("\nWish list:", json.dumps(g.json(), indent=2))
    except Exception as e:
        print(f"\n(could not fetch /gifts: {e})")


if __name__ == "__main__":
    main()
