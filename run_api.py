#!/usr/bin/env python3
"""Simple script to run the Curriculum Admin API"""
import uvicorn

if __name__ == "__main__":
    uvicorn.run("curriculum_admin.api:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
