#!/usr/bin/env python3
"""
Development startup script for Test-Pilot API
"""

import sys
import shutil
from pathlib import Path

from testpilot.config.settings import settings


def main():
    """Main startup function"""
    print("🚀 Starting Test-Pilot API...")
    
    # Check if .env exists
    env_file = Path(".env")
    if not env_file.exists() and Path(".env.example").exists():
        print("⚠️  .env file not found. Creating from .env.example...")
        shutil.copy(".env.example", ".env")
        print("✅ .env file created.")
    
    # Check if virtual environment is activated
    if not (hasattr(sys, 'base_prefix') and sys.base_prefix != sys.prefix):
        print("⚠️  Virtual environment not detected. Consider using venv or conda.")
    
    # Create data directory
    Path("data").mkdir(exist_ok=True)
    
    base_url = f"http://localhost:{settings.api_port}{settings.api_prefix}"
    print("🌟 Starting FastAPI server...")
    print(f"📚 API Documentation: {base_url}/docs")
    print(f"🏥 Health Check: {base_url}/health")
    print("🔄 Use Ctrl+C to stop the server")
    
    # Start the server
    try:
        import uvicorn
        uvicorn.run(
            "main:app",
            host=settings.api_host,
            port=settings.api_port,
            reload=True,
            log_level=settings.log_level.lower()
        )
    except KeyboardInterrupt:
        print("\n👋 Server stopped by user")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
