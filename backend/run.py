"""
Certificate Protection System — Uvicorn Launcher
Run this file to start the development server.

Usage:
    python run.py
    python run.py --port 5000
    python run.py --reload
"""
import argparse
import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Certificate Protection System API Server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=5000, help="Bind port (default: 5000)")
    parser.add_argument("--reload", action="store_true", help="Enable hot reload for development")

    args = parser.parse_args()

    print(f"Certificate Protection System API on http://{args.host}:{args.port} (docs at /docs)")

    uvicorn.run(
        "certrbac.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
