#!/usr/bin/env python3
"""
Web server for the conversational people/company search agent.

Usage:
    python server.py              # start on port 8000
    python server.py --port 3001  # custom port
    python server.py --reload     # auto-reload during development
"""

import argparse

import uvicorn


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
