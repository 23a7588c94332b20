# main.py (in backend root)
#!/usr/bin/env python3
"""
Entry point for the Source Server Manager API
"""
import uvicorn

from server_manager.config import API_HOST, API_PORT

if __name__ == "__main__":
    uvicorn.run(
        "server_manager.main:app",
        host=API_HOST,
        port=API_PORT,
        reload=False
    )
