#!/usr/bin/env python3
"""
サーバー起動用エントリポイント
"""
import argparse

import uvicorn

from tunefetch.main import app

if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--port", type=int, help="TCP Port binding")
    parser.add_argument("--uds", type=str, help="Unix Domain Socket path")
    args = parser.parse_args()

    if args.uds:
        uvicorn.run(app, uds=args.uds)
    elif args.port:
        uvicorn.run(app, host="127.0.0.1", port=args.port)
    else:
        uvicorn.run(app, host="127.0.0.1", port=8000)
