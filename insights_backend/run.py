#!/usr/bin/env python3
"""
Quick runner for InsightsLM Backend
===================================

Usage:
    python -m insights_backend.run
"""

import uvicorn

if __name__ == "__main__":
    print("Starting InsightsLM Backend...")
    print("API docs: http://localhost:8000/docs")
    print("Health:   http://localhost:8000/health")
    print()

    uvicorn.run(
        "insights_backend.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
