#!/usr/bin/env python3
"""Run the parla API server."""

import os

import uvicorn


def main():
    port = int(os.environ.get('PARLA_PORT', 8000))
    print("Starting Parla API server...")
    print(f"API documentation available at: http://localhost:{port}/docs")
    uvicorn.run(
        "server.app:app",
        host="0.0.0.0",
        port=port,
        reload=True
    )


if __name__ == "__main__":
    main()
